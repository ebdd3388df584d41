from __future__ import annotations

import sys
from typing import Any, Callable, Iterable, Protocol

from pvkb.client.base import ENUM_INDEX_FIELD, VALUE_FIELD, ChannelHandle, Number, RemoteClient
from pvkb.input.keys import InputEvent, KeyCode

from .binder import BoundAction, KeybindingTable, Mode, StartupWrite
from .errors import WriteError
from .values import TypedValue, ValueKind

_FLOAT_TYPES = ("float", "double")


class InputSource(Protocol):
    def poll(self) -> InputEvent | None: ...

    def close(self) -> None: ...


def _is_float_channel(handle: ChannelHandle) -> bool:
    return handle.remote_type.lower() in _FLOAT_TYPES


def target_field(handle: ChannelHandle) -> str:
    """Enum PVs are written through their index, everything else through `value`."""

    return ENUM_INDEX_FIELD if handle.is_enum else VALUE_FIELD


def wire_value(handle: ChannelHandle, value: TypedValue) -> Any:
    if value.kind is ValueKind.INTEGER and _is_float_channel(handle):
        return float(value.payload)
    return value.payload


def incremented(handle: ChannelHandle, current: Number, delta: TypedValue) -> Number:
    """current + delta, in floating point if either side is a float, else integer."""

    if delta.kind is ValueKind.FLOAT or _is_float_channel(handle):
        return float(current) + float(delta.payload)
    return int(current) + int(delta.payload)


def put_value(client: RemoteClient, handle: ChannelHandle, value: TypedValue) -> None:
    client.put(handle, target_field(handle), wire_value(handle, value))


def execute(action: BoundAction, client: RemoteClient) -> None:
    """Perform the write bound to one key press. Raises WriteError.

    Increment mode does a read then a write, so it must run once per press.
    """

    handle = action.channel
    if action.mode is Mode.INCREMENT:
        current = client.get_numeric(handle)
        new = incremented(handle, current, action.value)
        client.put(handle, target_field(handle), new)
        return
    put_value(client, handle, action.value)


def apply_startup_writes(writes: Iterable[StartupWrite], client: RemoteClient) -> None:
    """Run the preliminary puts in config order. The first failure propagates."""

    for w in writes:
        put_value(client, w.channel, w.value)
        print(f"[put] {w.channel.name} = {w.value.payload!r}")


def handle_key(
    table: KeybindingTable,
    key: KeyCode | None,
    client: RemoteClient,
    *,
    debug: bool = False,
) -> WriteError | None:
    """Dispatch one key press. Unbound keys are ignored; a failed write is returned, not raised."""

    if key is None:
        return None
    action = table.get(key)
    if action is None:
        if debug:
            print(f"[debug] key {key} is not bound")
        return None
    if debug:
        print(f"[debug] key {key}: {action.describe()}")
    try:
        execute(action, client)
    except WriteError as e:
        return e
    return None


def _print_write_error(err: WriteError) -> None:
    print(f"[error] {err}", file=sys.stderr)


def run_event_loop(
    table: KeybindingTable,
    source: InputSource,
    client: RemoteClient,
    *,
    debug: bool = False,
    on_error: Callable[[WriteError], None] | None = None,
) -> int:
    """Block on the input source and dispatch key presses until quit. Returns the exit code.

    Writes happen one at a time on this thread, in key press order. A failed
    write goes to `on_error` (default: an `[error]` line on stderr) and the
    loop keeps running.
    """

    if on_error is None:
        on_error = _print_write_error

    while True:
        evt = source.poll()
        if evt is None:
            continue
        if evt.kind == "quit":
            print("Exiting.")
            return 0
        err = handle_key(table, evt.key, client, debug=debug)
        if err is not None:
            on_error(err)
