from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pvkb.core.errors import ConnectionError, UnsupportedTypeError, WriteError

from .base import ENUM_INDEX_FIELD, VALUE_FIELD, ChannelHandle, Number


@dataclass
class MemoryPV:
    # None means the value field is not a supported scalar (e.g. an array).
    remote_type: str | None
    value: Any = 0
    index: int = 0
    fail_writes: bool = False


@dataclass
class MemoryClient:
    """In-process PV client with canned types and values.

    Records every connect, release and put so tests can assert on them.
    """

    pvs: dict[str, MemoryPV] = field(default_factory=dict)
    debug: bool = False

    opened: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    puts: list[tuple[str, str, Any]] = field(default_factory=list)
    closed: bool = False

    def add(self, name: str, remote_type: str | None, value: Any = 0, **kw: Any) -> MemoryPV:
        pv = MemoryPV(remote_type=remote_type, value=value, **kw)
        self.pvs[name] = pv
        return pv

    @property
    def open_channels(self) -> list[str]:
        out = list(self.opened)
        for name in self.released:
            if name in out:
                out.remove(name)
        return out

    def _pv(self, handle: ChannelHandle) -> MemoryPV:
        pv = self.pvs.get(handle.name)
        if pv is None:
            raise WriteError(f"PV {handle.name!r} disappeared")
        return pv

    def connect(self, full_name: str) -> ChannelHandle:
        pv = self.pvs.get(full_name)
        if pv is None:
            raise ConnectionError(full_name, "no such PV")
        self.opened.append(full_name)
        if pv.remote_type is None:
            # A real client has the channel open by the time it sees the type.
            self.released.append(full_name)
            raise UnsupportedTypeError(f"PV {full_name!r} is not a supported type")
        return ChannelHandle(name=full_name, remote_type=pv.remote_type)

    def get_numeric(self, handle: ChannelHandle) -> Number:
        pv = self._pv(handle)
        if handle.is_enum:
            return int(pv.index)
        if isinstance(pv.value, bool) or not isinstance(pv.value, (int, float)):
            raise WriteError(f"PV {handle.name!r} value {pv.value!r} is not numeric")
        return pv.value

    def put(self, handle: ChannelHandle, field_path: str, value: Any) -> None:
        pv = self._pv(handle)
        if pv.fail_writes:
            raise WriteError(f"Put to {handle.name!r} failed")
        if field_path == ENUM_INDEX_FIELD:
            pv.index = int(value)
        elif field_path == VALUE_FIELD:
            pv.value = value
        else:
            raise WriteError(f"PV {handle.name!r} has no field {field_path!r}")
        self.puts.append((handle.name, field_path, value))
        if self.debug:
            print(f"[debug] memory put {handle.name}.{field_path} = {value!r}")

    def release(self, handle: ChannelHandle) -> None:
        self.released.append(handle.name)

    def close(self) -> None:
        self.closed = True
