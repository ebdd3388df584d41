from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pvkb.core.errors import ConnectionError, UnsupportedTypeError, WriteError

from .base import ENUM_TYPE, ChannelHandle, Number

# CA native field types -> pvData scalar type names (what the pva provider reports).
# DBR_CHAR is unsigned in CA; DBR_SHORT is also called "int" by pyepics.
_CA_TYPES = {
    "string": "string",
    "short": "short",
    "int": "short",
    "float": "float",
    "enum": ENUM_TYPE,
    "char": "ubyte",
    "long": "int",
    "double": "double",
}


def remote_type_from_ca(name: str, ca_type: str | None, count: int | None) -> str:
    """Map a pyepics PV.type string ("double", "time_enum", ...) to a type name."""

    base = str(ca_type or "").lower()
    for form in ("time_", "ctrl_"):
        if base.startswith(form):
            base = base[len(form):]
    remote_type = _CA_TYPES.get(base)
    if remote_type is None or (count is not None and int(count) != 1):
        raise UnsupportedTypeError(f"PV {name!r} is not a supported type ({ca_type}, count={count})")
    return remote_type


@dataclass
class CaClient:
    """Channel Access client backed by pyepics.

    Each handle owns one epics.PV, which is disconnected on release().
    """

    timeout_sec: float = 5.0
    debug: bool = False

    # One entry per connect(); the same PV name may be bound more than once.
    _pvs: list[Any] = field(default_factory=list)

    def _make_pv(self, full_name: str) -> Any:
        try:
            from epics import PV  # type: ignore
        except ImportError as e:
            raise RuntimeError("provider 'ca' requires pyepics (pip install pyepics)") from e
        return PV(full_name, auto_monitor=False, connection_timeout=self.timeout_sec)

    def connect(self, full_name: str) -> ChannelHandle:
        pv = self._make_pv(full_name)
        try:
            connected = pv.wait_for_connection(timeout=self.timeout_sec)
        except Exception as e:
            pv.disconnect()
            raise ConnectionError(full_name, e) from e
        if not connected:
            pv.disconnect()
            raise ConnectionError(full_name, f"not connected after {self.timeout_sec:.1f}s")

        try:
            remote_type = remote_type_from_ca(full_name, pv.type, pv.count)
        except UnsupportedTypeError:
            pv.disconnect()
            raise

        if self.debug:
            print(f"[debug] ca connect {full_name} type={remote_type} ({pv.type})")
        self._pvs.append(pv)
        return ChannelHandle(name=full_name, remote_type=remote_type, raw=pv)

    def _require_pv(self, handle: ChannelHandle) -> Any:
        pv = handle.raw
        if pv is None or not any(pv is p for p in self._pvs):
            raise WriteError(f"PV {handle.name!r} is not connected")
        return pv

    def get_numeric(self, handle: ChannelHandle) -> Number:
        pv = self._require_pv(handle)
        try:
            # Enum PVs read back as their integer index.
            current = pv.get(timeout=self.timeout_sec, use_monitor=False)
        except Exception as e:
            raise WriteError(f"Failed to read {handle.name!r}: {e}") from e
        if current is None:
            raise WriteError(f"Timed out reading {handle.name!r}")
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            try:
                # numpy scalars
                return current.item()
            except AttributeError:
                raise WriteError(f"PV {handle.name!r} value {current!r} is not numeric") from None
        return current

    def put(self, handle: ChannelHandle, field_path: str, value: Any) -> None:
        # CA has no sub-fields; an enum put of an integer sets the index.
        pv = self._require_pv(handle)
        if self.debug:
            print(f"[debug] ca put {handle.name} {field_path}={value!r}")
        try:
            result = pv.put(value, wait=True, timeout=self.timeout_sec)
        except Exception as e:
            raise WriteError(f"Failed to write {value!r} to {handle.name!r}: {e}") from e
        if result is not None and result < 0:
            raise WriteError(f"Timed out writing {value!r} to {handle.name!r}")

    def release(self, handle: ChannelHandle) -> None:
        for i, pv in enumerate(self._pvs):
            if pv is handle.raw:
                del self._pvs[i]
                pv.disconnect()
                return

    def close(self) -> None:
        for pv in self._pvs:
            try:
                pv.disconnect()
            except Exception:
                pass
        self._pvs.clear()
