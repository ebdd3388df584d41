from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Union

Number = Union[int, float]

VALUE_FIELD = "value"
ENUM_INDEX_FIELD = "value.index"
ENUM_TYPE = "enum_t"


@dataclass(frozen=True)
class ChannelHandle:
    """A connected channel to one PV.

    `remote_type` is the type name of the PV's `value` field, queried once at
    connect time (pvData names: "double", "int", "string", "boolean", ...,
    or "enum_t" for enumerated PVs).
    """

    name: str
    remote_type: str
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def is_enum(self) -> bool:
        return self.remote_type.lower() == ENUM_TYPE


class RemoteClient(Protocol):
    """What the binder and dispatcher need from a PV client.

    connect() raises pvkb ConnectionError / UnsupportedTypeError;
    get_numeric() and put() raise WriteError.
    """

    def connect(self, full_name: str) -> ChannelHandle: ...

    def get_numeric(self, handle: ChannelHandle) -> Number: ...

    def put(self, handle: ChannelHandle, field_path: str, value: Any) -> None: ...

    def release(self, handle: ChannelHandle) -> None: ...

    def close(self) -> None: ...
