from __future__ import annotations

import os
import select
import sys
import time
from dataclasses import dataclass, field
from typing import Any

from .keys import DOWN, LEFT, QUIT, RIGHT, UP, InputEvent, KeyCode, char_key, key_event

# Final byte of ESC [ X  and  ESC O X  (application cursor mode)
_ARROWS: dict[int, KeyCode] = {ord("A"): UP, ord("B"): DOWN, ord("C"): RIGHT, ord("D"): LEFT}

# Windows console scan codes that follow a '\x00' / '\xe0' prefix.
_WIN_ARROWS: dict[int, KeyCode] = {72: UP, 80: DOWN, 75: LEFT, 77: RIGHT}

MAX_BUFFERED_BYTES = 16
MAX_DECODE_ITERATIONS = 32


def _char_event(ch: str, quit_key: str) -> InputEvent | None:
    if ch == quit_key:
        return QUIT
    k = char_key(ch)
    return key_event(k) if k is not None else None


def decode_posix(buf: bytearray, *, quit_key: str = "q", max_iterations: int = MAX_DECODE_ITERATIONS) -> InputEvent | None:
    """Consume bytes from `buf` until one event is decoded.

    Incomplete escape sequences stay in the buffer for the next poll.
    Unrecognized bytes are dropped; if the iteration limit is hit the rest of
    the buffer is discarded.
    """

    iterations = 0
    while buf and iterations < max_iterations:
        iterations += 1
        b0 = buf[0]
        if b0 == 0x1B:
            if len(buf) == 1:
                return None
            if buf[1] == ord("O"):
                # SS3: exactly one final byte.
                if len(buf) < 3:
                    return None
                final = buf[2]
                del buf[:3]
                k = _ARROWS.get(final)
                if k is not None:
                    return key_event(k)
                continue
            if buf[1] != ord("["):
                # Bare ESC or Alt+key.
                del buf[0]
                continue

            # CSI: parameter/intermediate bytes 0x20-0x3F, then a final byte 0x40-0x7E.
            end = 2
            while end < len(buf) and 0x20 <= buf[end] <= 0x3F:
                end += 1
            if end == len(buf):
                return None
            final = buf[end]
            if not 0x40 <= final <= 0x7E:
                # Malformed; drop the introducer and let the byte be read normally.
                del buf[:end]
                continue
            plain = end == 2
            del buf[: end + 1]
            # F-keys, Home/End and modified arrows (ESC[1;5C) are dropped whole.
            k = _ARROWS.get(final) if plain else None
            if k is not None:
                return key_event(k)
            continue

        del buf[0]
        if b0 > 0x7F:
            continue
        evt = _char_event(chr(b0), quit_key)
        if evt is not None:
            return evt

    if buf and iterations >= max_iterations:
        buf.clear()
    return None


@dataclass
class KeyboardInput:
    """Terminal keyboard input.

    - POSIX: stdin in cbreak mode (no echo, output processing left on so
      print() still works), select() with a short timeout.
    - Windows: msvcrt polling.

    poll() waits at most `timeout_sec` and returns one event or None.
    """

    quit_key: str = "q"
    timeout_sec: float = 0.1
    use_stdin: bool = True

    _posix_fd: int | None = None
    _posix_buf: bytearray = field(default_factory=bytearray)
    _saved_tty_state: Any = None

    def __post_init__(self) -> None:
        if not self.use_stdin or os.name == "nt":
            return
        import termios
        import tty

        fd = sys.stdin.fileno()
        if not os.isatty(fd):
            raise RuntimeError("Keyboard input needs a terminal on stdin")
        self._saved_tty_state = termios.tcgetattr(fd)
        tty.setcbreak(fd, termios.TCSANOW)
        self._posix_fd = fd

    def poll(self) -> InputEvent | None:
        if os.name == "nt" and self.use_stdin:
            return self._poll_windows()
        return self._poll_posix()

    def _poll_posix(self) -> InputEvent | None:
        # Terminal noise must not pile up between presses.
        if len(self._posix_buf) > MAX_BUFFERED_BYTES:
            self._posix_buf.clear()

        evt = decode_posix(self._posix_buf, quit_key=self.quit_key)
        if evt is not None or self._posix_fd is None:
            return evt

        ready, _, _ = select.select([self._posix_fd], [], [], self.timeout_sec)
        if not ready:
            # A lone ESC or a truncated sequence; nothing more is coming.
            self._posix_buf.clear()
            return None
        data = os.read(self._posix_fd, 64)
        if not data:
            return None
        self._posix_buf += data
        return decode_posix(self._posix_buf, quit_key=self.quit_key)

    def _poll_windows(self) -> InputEvent | None:
        import msvcrt

        if not msvcrt.kbhit():
            time.sleep(self.timeout_sec)
            return None

        ch = msvcrt.getwch()

        # Special keys: msvcrt returns '\x00' or '\xe0', then a second code.
        if ch in ("\x00", "\xe0"):
            code = msvcrt.getwch()
            k = _WIN_ARROWS.get(ord(code))
            return key_event(k) if k is not None else None

        return _char_event(ch, self.quit_key)

    def close(self) -> None:
        if self._posix_fd is not None and self._saved_tty_state is not None:
            import termios

            termios.tcsetattr(self._posix_fd, termios.TCSAFLUSH, self._saved_tty_state)
        self._posix_fd = None
        self._saved_tty_state = None
