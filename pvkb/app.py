from __future__ import annotations

import argparse
import sys
from pathlib import Path

from pvkb.client import PROVIDERS, RemoteClient, make_client
from pvkb.core.binder import Bindings, bind_all, release_all
from pvkb.core.config import Config, Settings, load_config
from pvkb.core.dispatch import InputSource, apply_startup_writes, run_event_loop
from pvkb.core.errors import BindError, ConfigError, PvkbError, WriteError
from pvkb.input.composite import CompositeInput


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pvkb", description="Bind key presses to EPICS PV writes.")
    parser.add_argument("config", type=str, help="Path to the TOML (or JSON) keybinding file.")
    parser.add_argument(
        "--prefix",
        type=str,
        default=None,
        help="Override the PV prefix from the config file.",
    )
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="Override the provider from the config file (default: ca).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print [debug] lines for bindings and writes.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Connect and validate every binding, print the table, then exit without writing.",
    )
    return parser.parse_args(argv)


def _error(msg: object) -> None:
    print(f"[error] {msg}", file=sys.stderr)


def make_input(settings: Settings) -> InputSource:
    """Keyboard first (it blocks briefly per poll), then optional GPIO buttons."""

    from pvkb.input.keyboard import KeyboardInput

    sources: list[InputSource] = []
    gpio_cfg = settings.gpio
    sources.append(KeyboardInput(quit_key=settings.quit_key))
    if gpio_cfg is not None:
        from pvkb.input.gpio_buttons import GpioButtons

        try:
            sources.append(
                GpioButtons(
                    buttons={pin: key for key, pin in gpio_cfg.buttons},
                    pull_up=gpio_cfg.pull_up,
                    bounce_sec=gpio_cfg.bounce_sec,
                    repeat_guard_sec=gpio_cfg.repeat_guard_sec,
                    pin_factory=gpio_cfg.pin_factory,
                )
            )
        except Exception:
            sources[0].close()
            raise
    return CompositeInput(sources=sources)


def _print_bindings(bindings: Bindings, settings: Settings) -> None:
    for w in bindings.startup_writes:
        print(f"[bind] put {w.channel.name} ({w.channel.remote_type}) = {w.value}")
    for code, action in sorted(bindings.keybindings.items(), key=lambda kv: kv[0].name):
        print(f"[bind] {code}: {action.describe()}")
    print(f"[bind] quit: {settings.quit_key}")


def run(
    cfg: Config,
    client: RemoteClient,
    *,
    source: InputSource | None = None,
    check_only: bool = False,
) -> int:
    """Bind, apply the startup puts, then run the key loop. Returns the exit code."""

    settings = cfg.settings
    try:
        bindings = bind_all(
            cfg.tree,
            client,
            settings.prefix,
            quit_key=settings.quit_key,
            debug=settings.debug,
        )
    except BindError as e:
        _error(e)
        return 1

    try:
        _print_bindings(bindings, settings)
        if check_only:
            return 0

        try:
            apply_startup_writes(bindings.startup_writes, client)
        except WriteError as e:
            _error(e)
            return 1

        try:
            inp = source if source is not None else make_input(settings)
        except (PvkbError, RuntimeError) as e:
            _error(e)
            return 1

        print(f"pvkb: {len(bindings.keybindings)} key(s) bound, press {settings.quit_key!r} to quit")
        try:
            return run_event_loop(bindings.keybindings, inp, client, debug=settings.debug)
        finally:
            inp.close()
    finally:
        release_all(client, bindings.channels())


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        cfg = load_config(
            Path(args.config).expanduser(),
            prefix_override=args.prefix,
            provider_override=args.provider,
            debug_override=args.debug,
        )
    except ConfigError as e:
        _error(e)
        return 1

    settings = cfg.settings
    client = make_client(settings.provider, timeout_sec=settings.timeout_sec, debug=settings.debug)
    try:
        return run(cfg, client, check_only=args.check)
    except RuntimeError as e:
        # Missing client library.
        _error(e)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
