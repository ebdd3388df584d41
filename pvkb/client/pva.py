from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pvkb.core.errors import ConnectionError, UnsupportedTypeError, WriteError

from .base import ENUM_INDEX_FIELD, ENUM_TYPE, VALUE_FIELD, ChannelHandle, Number

# p4p type codes -> pvData scalar type names.
_TYPE_CODES = {
    "?": "boolean",
    "s": "string",
    "b": "byte",
    "B": "ubyte",
    "h": "short",
    "H": "ushort",
    "i": "int",
    "I": "uint",
    "l": "long",
    "L": "ulong",
    "f": "float",
    "d": "double",
}


def remote_type_from_spec(name: str, spec: Any) -> str:
    """Classify the type spec of a `value` field as returned by p4p's Type.aspy().

    Scalars are a one-letter code; structures are ("S", id, fields). Only
    scalars and enum_t are supported.
    """

    if isinstance(spec, str):
        remote_type = _TYPE_CODES.get(spec)
        if remote_type is not None:
            return remote_type
    elif isinstance(spec, tuple) and len(spec) >= 2 and spec[0] == "S" and spec[1] == ENUM_TYPE:
        return ENUM_TYPE
    raise UnsupportedTypeError(f"PV {name!r} is not a supported type (value field: {spec!r})")


@dataclass
class PvaClient:
    """pvAccess client backed by p4p.

    p4p keeps its own channel cache inside the Context, so a handle only
    carries the PV name and its type.
    """

    timeout_sec: float = 5.0
    debug: bool = False

    _ctxt: Any = None

    def _context(self) -> Any:
        if self._ctxt is None:
            try:
                from p4p.client.thread import Context  # type: ignore
            except ImportError as e:
                raise RuntimeError("provider 'pva' requires p4p (pip install p4p)") from e
            # unwrap=False: we want raw Values so the type of `value` is visible.
            self._ctxt = Context("pva", unwrap=False)
        return self._ctxt

    def connect(self, full_name: str) -> ChannelHandle:
        ctxt = self._context()
        try:
            v = ctxt.get(full_name, timeout=self.timeout_sec)
        except Exception as e:
            raise ConnectionError(full_name, e) from e
        try:
            spec = v.type().aspy(VALUE_FIELD)
        except (KeyError, AttributeError, TypeError) as e:
            raise UnsupportedTypeError(f"PV {full_name!r} has no scalar value field") from e
        remote_type = remote_type_from_spec(full_name, spec)
        if self.debug:
            print(f"[debug] pva connect {full_name} type={remote_type}")
        return ChannelHandle(name=full_name, remote_type=remote_type)

    def get_numeric(self, handle: ChannelHandle) -> Number:
        field_path = ENUM_INDEX_FIELD if handle.is_enum else VALUE_FIELD
        try:
            v = self._context().get(handle.name, timeout=self.timeout_sec)
            current = v[field_path]
        except Exception as e:
            raise WriteError(f"Failed to read {handle.name!r}: {e}") from e
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            raise WriteError(f"PV {handle.name!r} value {current!r} is not numeric")
        return current

    def put(self, handle: ChannelHandle, field_path: str, value: Any) -> None:
        if self.debug:
            print(f"[debug] pva put {handle.name} {field_path}={value!r}")
        try:
            self._context().put(handle.name, {field_path: value}, timeout=self.timeout_sec)
        except Exception as e:
            raise WriteError(f"Failed to write {value!r} to {handle.name!r}: {e}") from e

    def release(self, handle: ChannelHandle) -> None:
        return None

    def close(self) -> None:
        if self._ctxt is not None:
            try:
                self._ctxt.close()
            finally:
                self._ctxt = None
