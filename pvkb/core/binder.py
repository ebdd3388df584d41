from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator

from pvkb.client.base import ChannelHandle, RemoteClient
from pvkb.input.keys import KeyCode, char_key, resolve_key_name

from .errors import ConfigError, TypeMismatchError
from .values import TypedValue, extract_value, is_compatible


class Mode(str, Enum):
    SET = "set"
    INCREMENT = "increment"


@dataclass(frozen=True)
class BoundAction:
    channel: ChannelHandle
    value: TypedValue
    mode: Mode
    key_name: str = ""

    def describe(self) -> str:
        verb = "+=" if self.mode is Mode.INCREMENT else "="
        return f"{self.channel.name} ({self.channel.remote_type}) {verb} {self.value}"


@dataclass(frozen=True)
class StartupWrite:
    channel: ChannelHandle
    value: TypedValue


KeybindingTable = dict[KeyCode, BoundAction]


@dataclass(frozen=True)
class Bindings:
    keybindings: KeybindingTable
    startup_writes: tuple[StartupWrite, ...]

    def channels(self) -> list[ChannelHandle]:
        out = [w.channel for w in self.startup_writes]
        out.extend(a.channel for a in self.keybindings.values())
        return out


def release_all(client: RemoteClient, handles: Iterable[ChannelHandle]) -> None:
    for h in handles:
        client.release(h)


def _pv_name(entry: dict[str, Any], where: str) -> str:
    pv = entry.get("pv")
    if not isinstance(pv, str) or not pv.strip():
        raise ConfigError(f"Missing or invalid PV name in {where}")
    return pv.strip()


def _target_value(entry: dict[str, Any], where: str) -> TypedValue:
    if "value" not in entry:
        raise ConfigError(f"Missing value in {where}")
    return extract_value(entry["value"], where=f"value for {where}")


def _mode(entry: dict[str, Any], value: TypedValue, where: str, *, debug: bool) -> Mode:
    flag = entry.get("increment", False)
    if not isinstance(flag, bool):
        raise ConfigError(f"'increment' in {where} must be true or false, got {flag!r}")
    if not flag:
        return Mode.SET
    if not value.kind.is_numeric:
        if debug:
            print(f"[debug] {where}: increment ignored for {value.kind.value} value")
        return Mode.SET
    return Mode.INCREMENT


def _bind_channel(
    client: RemoteClient,
    prefix: str,
    entry: dict[str, Any],
    where: str,
) -> tuple[ChannelHandle, TypedValue]:
    """Connect to the entry's PV and check its value against the PV type.

    The channel is released again if anything after connect() fails.
    """

    pv = _pv_name(entry, where)
    handle = client.connect(prefix + pv)
    try:
        value = _target_value(entry, where)
        if not is_compatible(handle.remote_type, value.kind):
            raise TypeMismatchError(where, handle.remote_type, value.kind.value)
    except Exception:
        client.release(handle)
        raise
    return handle, value


def _keybinding_entries(section: Any) -> Iterator[tuple[str, Any]]:
    if isinstance(section, dict):
        yield from section.items()
        return
    if isinstance(section, list):
        for i, entry in enumerate(section):
            if not isinstance(entry, dict) or not isinstance(entry.get("key"), str):
                raise ConfigError(f"keybindings[{i}] must be a table with a 'key' name")
            yield entry["key"], entry
        return
    raise ConfigError("'keybindings' must be a table")


def bind_keybindings(
    section: Any,
    client: RemoteClient,
    prefix: str = "",
    *,
    quit_key: str | None = None,
    debug: bool = False,
) -> KeybindingTable:
    """Resolve every keybinding entry into a BoundAction keyed by KeyCode.

    Fails fast: on the first bad entry every channel opened so far is released
    and the error propagates, so no partial table is ever returned.
    """

    quit_code = char_key(quit_key) if quit_key else None
    table: KeybindingTable = {}
    try:
        for key_name, entry in _keybinding_entries(section):
            where = f"keybind {key_name!r}"
            if not isinstance(entry, dict):
                raise ConfigError(f"{where} must be a table like {{pv = \"...\", value = ...}}")
            # Validate the PV name before touching the key so errors come in entry order.
            _pv_name(entry, where)
            code = resolve_key_name(key_name)
            if code in table:
                raise ConfigError(f"Duplicate binding for key {str(code)!r} ({where})")
            if quit_code is not None and code == quit_code:
                raise ConfigError(f"{where} uses the quit key {quit_key!r}")

            handle, value = _bind_channel(client, prefix, entry, where)
            try:
                mode = _mode(entry, value, where, debug=debug)
            except Exception:
                client.release(handle)
                raise
            table[code] = BoundAction(channel=handle, value=value, mode=mode, key_name=key_name)
            if debug:
                print(f"[debug] bind {key_name} -> {table[code].describe()}")
    except Exception:
        release_all(client, (a.channel for a in table.values()))
        raise
    return table


def bind_startup_writes(
    section: Any,
    client: RemoteClient,
    prefix: str = "",
    *,
    debug: bool = False,
) -> tuple[StartupWrite, ...]:
    """Resolve the [[put]] array: writes applied once, in file order, before the loop."""

    if section is None:
        return ()
    if not isinstance(section, list):
        raise ConfigError("'put' must be an array of tables like [[put]] pv = \"...\" value = ...")

    writes: list[StartupWrite] = []
    try:
        for i, entry in enumerate(section):
            where = f"put[{i}]"
            if not isinstance(entry, dict):
                raise ConfigError(f"{where} must be a table with 'pv' and 'value'")
            handle, value = _bind_channel(client, prefix, entry, where)
            writes.append(StartupWrite(channel=handle, value=value))
            if debug:
                print(f"[debug] bind {where} -> {handle.name} = {value}")
    except Exception:
        release_all(client, (w.channel for w in writes))
        raise
    return tuple(writes)


def bind_all(
    tree: dict[str, Any],
    client: RemoteClient,
    prefix: str = "",
    *,
    quit_key: str | None = None,
    debug: bool = False,
) -> Bindings:
    writes = bind_startup_writes(tree.get("put"), client, prefix, debug=debug)
    try:
        table = bind_keybindings(tree.get("keybindings"), client, prefix, quit_key=quit_key, debug=debug)
    except Exception:
        release_all(client, (w.channel for w in writes))
        raise
    return Bindings(keybindings=table, startup_writes=writes)
