from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .keys import InputEvent


@dataclass
class CompositeInput:
    """Polls several sources in order; the first event wins.

    Put the source that blocks (the keyboard) first so the loop does not spin.
    """

    sources: list[Any] = field(default_factory=list)

    def poll(self) -> InputEvent | None:
        for src in self.sources:
            evt = src.poll()
            if evt is not None:
                return evt
        return None

    def close(self) -> None:
        for src in self.sources:
            src.close()
