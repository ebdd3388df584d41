from __future__ import annotations


class PvkbError(Exception):
    """Base class for every error raised by pvkb."""


class BindError(PvkbError):
    """Startup resolution failed; the event loop must not start."""


class ConfigError(BindError):
    pass


class KeyNameError(BindError):
    pass


class ConnectionError(BindError):  # noqa: A001 - mirrors the taxonomy name
    def __init__(self, pv_name: str, reason: object = None) -> None:
        self.pv_name = pv_name
        msg = f"Failed to connect to PV {pv_name!r}"
        if reason is not None:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class UnsupportedTypeError(BindError):
    pass


class ValueExtractionError(BindError):
    pass


class TypeMismatchError(BindError):
    def __init__(self, key: str, remote_type: str, value_kind: str) -> None:
        self.key = key
        self.remote_type = remote_type
        self.value_kind = value_kind
        super().__init__(f"Type mismatch for {key!r}: PV type {remote_type!r} does not accept a {value_kind} value")


class WriteError(PvkbError):
    """A get/put round trip failed at runtime. Non-fatal inside the event loop."""
