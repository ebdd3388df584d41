from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pvkb.input.keys import KeyCode, resolve_key_name

from .errors import ConfigError, KeyNameError

DEFAULT_PROVIDER = "ca"
PROVIDERS = ("ca", "pva")


@dataclass(frozen=True)
class GpioConfig:
    buttons: tuple[tuple[KeyCode, int], ...]  # (key, BCM pin)
    pull_up: bool = True
    bounce_sec: float = 0.05
    repeat_guard_sec: float = 0.15
    pin_factory: str | None = None  # gpiozero factory name, e.g. "lgpio" or "mock"


@dataclass(frozen=True)
class Settings:
    prefix: str
    provider: str
    quit_key: str
    debug: bool
    timeout_sec: float
    gpio: GpioConfig | None = None


@dataclass(frozen=True)
class Config:
    path: Path
    tree: dict[str, Any]
    settings: Settings

    @property
    def keybindings(self) -> Any:
        return self.tree.get("keybindings")


def _unique_names(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    # json keeps the last of a repeated name; TOML already refuses them.
    data: dict[str, Any] = {}
    for name, value in pairs:
        if name in data:
            raise ConfigError(f"Duplicate name {name!r} in JSON object")
        data[name] = value
    return data


def load_config_tree(path: Path) -> dict[str, Any]:
    """Parse a .toml (default) or .json config file into a plain dict tree."""

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(path.read_text(encoding="utf-8"), object_pairs_hook=_unique_names)
        else:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
    except OSError as e:
        raise ConfigError(f"Cannot read config {str(path)!r}: {e}") from e
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Parsing {str(path)!r} failed: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: top level must be a table")
    return data


def _get(data: dict[str, Any], key: str, kind: type | tuple[type, ...], default: Any) -> Any:
    raw = data.get(key, default)
    # bool is an int; reject it where a number is expected.
    if isinstance(raw, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ConfigError(f"{key!r} must be {_kind_name(kind)}, got {raw!r}")
    if not isinstance(raw, kind):
        raise ConfigError(f"{key!r} must be {_kind_name(kind)}, got {raw!r}")
    return raw


def _kind_name(kind: type | tuple[type, ...]) -> str:
    kinds = kind if isinstance(kind, tuple) else (kind,)
    return " or ".join(k.__name__ for k in kinds)


def load_gpio(data: Any) -> GpioConfig | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigError("'gpio' must be a table")
    buttons_raw = _get(data, "buttons", dict, {})
    buttons: list[tuple[KeyCode, int]] = []
    for key_name, pin in buttons_raw.items():
        if isinstance(pin, bool) or not isinstance(pin, int) or pin < 0:
            raise ConfigError(f"gpio.buttons.{key_name}: pin must be a non-negative integer, got {pin!r}")
        try:
            key = resolve_key_name(str(key_name))
        except KeyNameError as e:
            raise ConfigError(f"gpio.buttons: {e}") from e
        buttons.append((key, int(pin)))
    if not buttons:
        raise ConfigError("'gpio' requires a non-empty 'buttons' table")

    pin_factory = _get(data, "pin_factory", (str, type(None)), None)
    if pin_factory is not None:
        pin_factory = pin_factory.strip().lower()
        if not pin_factory:
            raise ConfigError("'gpio.pin_factory' must not be empty")

    return GpioConfig(
        buttons=tuple(buttons),
        pull_up=_get(data, "pull_up", bool, True),
        bounce_sec=float(_get(data, "bounce_sec", (int, float), 0.05)),
        repeat_guard_sec=float(_get(data, "repeat_guard_sec", (int, float), 0.15)),
        pin_factory=pin_factory,
    )


def load_settings(
    data: dict[str, Any],
    *,
    prefix_override: str | None = None,
    provider_override: str | None = None,
    debug_override: bool | None = None,
) -> Settings:
    prefix = _get(data, "prefix", str, "")
    if prefix_override is not None:
        prefix = prefix_override

    provider = _get(data, "provider", str, DEFAULT_PROVIDER).strip().lower()
    if provider_override is not None:
        provider = provider_override.strip().lower()
    if provider not in PROVIDERS:
        raise ConfigError(f"Unknown provider {provider!r} (expected one of {', '.join(PROVIDERS)})")

    quit_key = _get(data, "quit", str, "q")
    # The terminal decoder only reads printable ASCII.
    if len(quit_key) != 1 or not (" " <= quit_key <= "~"):
        raise ConfigError(f"'quit' must be a single printable ASCII character, got {quit_key!r}")

    debug = _get(data, "debug", bool, False)
    if debug_override:
        debug = True

    timeout_sec = float(_get(data, "timeout", (int, float), 5.0))
    if timeout_sec <= 0:
        raise ConfigError(f"'timeout' must be > 0, got {timeout_sec}")

    return Settings(
        prefix=prefix,
        provider=provider,
        quit_key=quit_key,
        debug=debug,
        timeout_sec=timeout_sec,
        gpio=load_gpio(data.get("gpio")),
    )


def load_config(
    path: Path,
    *,
    prefix_override: str | None = None,
    provider_override: str | None = None,
    debug_override: bool | None = None,
) -> Config:
    """Load the config file and the settings the app needs before binding."""

    tree = load_config_tree(path)
    settings = load_settings(
        tree,
        prefix_override=prefix_override,
        provider_override=provider_override,
        debug_override=debug_override,
    )
    if "keybindings" not in tree:
        raise ConfigError(f"{path.name} has no [keybindings] section")
    print(f"[config] {path} provider={settings.provider} prefix={settings.prefix or '-'}")
    return Config(path=path, tree=tree, settings=settings)
