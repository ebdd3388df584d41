"""PV client adapters.

`ca` uses pyepics (Channel Access), `pva` uses p4p (pvAccess). Both libraries
are imported on first connect, so the rest of pvkb works without them.
"""

from __future__ import annotations

from .base import ENUM_INDEX_FIELD, VALUE_FIELD, ChannelHandle, RemoteClient
from .ca import CaClient
from .memory import MemoryClient
from .pva import PvaClient

PROVIDERS = ("ca", "pva")


def make_client(provider: str, *, timeout_sec: float = 5.0, debug: bool = False) -> RemoteClient:
    if provider == "ca":
        return CaClient(timeout_sec=timeout_sec, debug=debug)
    if provider == "pva":
        return PvaClient(timeout_sec=timeout_sec, debug=debug)
    raise ValueError(f"Unknown provider {provider!r} (expected one of {', '.join(PROVIDERS)})")


__all__ = [
    "CaClient",
    "ChannelHandle",
    "ENUM_INDEX_FIELD",
    "MemoryClient",
    "PROVIDERS",
    "PvaClient",
    "RemoteClient",
    "VALUE_FIELD",
    "make_client",
]
