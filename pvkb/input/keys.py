from __future__ import annotations

import string
from dataclasses import dataclass

from pvkb.core.errors import KeyNameError

KEY_PREFIX = "key_"

# Named keys; everything else is a single alphanumeric character.
RESERVED_KEYS = ("up", "down", "left", "right", "enter", "space")

_ALNUM = frozenset(string.ascii_letters + string.digits)


@dataclass(frozen=True)
class KeyCode:
    name: str  # "up" | "down" | "left" | "right" | "enter" | "space" | single char

    def __str__(self) -> str:
        return self.name


UP = KeyCode("up")
DOWN = KeyCode("down")
LEFT = KeyCode("left")
RIGHT = KeyCode("right")
ENTER = KeyCode("enter")
SPACE = KeyCode("space")


@dataclass(frozen=True)
class InputEvent:
    kind: str  # "key" | "quit"
    key: KeyCode | None = None


QUIT = InputEvent(kind="quit")


def key_event(key: KeyCode) -> InputEvent:
    return InputEvent(kind="key", key=key)


def resolve_key_name(name: str) -> KeyCode:
    """Map a config key name like "key_right" or "key_a" to a KeyCode."""

    if not isinstance(name, str) or not name.startswith(KEY_PREFIX):
        raise KeyNameError(f"Invalid key {name!r}: key names must start with {KEY_PREFIX!r}")

    rest = name[len(KEY_PREFIX):]
    if rest in RESERVED_KEYS:
        return KeyCode(rest)
    if len(rest) == 1 and rest in _ALNUM:
        return KeyCode(rest)
    raise KeyNameError(f"Invalid key {name!r}")


def char_key(ch: str) -> KeyCode | None:
    """KeyCode for a single typed character, or None if it can never be bound."""

    if ch == " ":
        return SPACE
    if ch in ("\r", "\n"):
        return ENTER
    if len(ch) == 1 and ch in _ALNUM:
        return KeyCode(ch)
    return None
