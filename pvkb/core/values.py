from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import ValueExtractionError

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Payload = Union[int, float, bool, str]


class ValueKind(str, Enum):
    INTEGER = "int"
    FLOAT = "double"
    BOOLEAN = "bool"
    TEXT = "string"

    @property
    def is_numeric(self) -> bool:
        return self in (ValueKind.INTEGER, ValueKind.FLOAT)


@dataclass(frozen=True)
class TypedValue:
    kind: ValueKind
    payload: Payload

    @staticmethod
    def integer(v: int) -> "TypedValue":
        return TypedValue(kind=ValueKind.INTEGER, payload=int(v))

    @staticmethod
    def float_(v: float) -> "TypedValue":
        return TypedValue(kind=ValueKind.FLOAT, payload=float(v))

    @staticmethod
    def boolean(v: bool) -> "TypedValue":
        return TypedValue(kind=ValueKind.BOOLEAN, payload=bool(v))

    @staticmethod
    def text(v: str) -> "TypedValue":
        return TypedValue(kind=ValueKind.TEXT, payload=str(v))

    def __str__(self) -> str:
        return f"{self.kind.value}({self.payload!r})"


def extract_value(raw: Any, *, where: str = "value") -> TypedValue:
    """Convert one config scalar into a TypedValue.

    No coercion between kinds: a configured "1" stays text, 1 stays an integer.
    Tables, arrays, None and date/time values are rejected.
    """

    # bool is a subclass of int; test it first.
    if isinstance(raw, bool):
        return TypedValue.boolean(raw)
    if isinstance(raw, int):
        if not (_INT64_MIN <= raw <= _INT64_MAX):
            raise ValueExtractionError(f"Invalid {where}: integer {raw} does not fit in 64 bits")
        return TypedValue.integer(raw)
    if isinstance(raw, float):
        return TypedValue.float_(raw)
    if isinstance(raw, str):
        return TypedValue.text(raw)
    raise ValueExtractionError(f"Invalid {where}: expected string, integer, float or boolean, got {type(raw).__name__}")


def is_compatible(remote_type: str, kind: ValueKind) -> bool:
    """Return True when a value of `kind` may be written to a PV of `remote_type`.

    - float/double accept floats and integers (integers widen)
    - boolean accepts booleans only
    - string accepts text only
    - anything else accepts integers only

    The last rule is the fallback for every integer width (byte, short, int,
    ulong, ...) and for enum_t. Unknown type names land there too, so a new
    integer-like type works without changes here.
    """

    name = str(remote_type).strip().lower()
    if name in ("float", "double"):
        return kind in (ValueKind.FLOAT, ValueKind.INTEGER)
    if name == "boolean":
        return kind is ValueKind.BOOLEAN
    if name == "string":
        return kind is ValueKind.TEXT
    return kind is ValueKind.INTEGER
