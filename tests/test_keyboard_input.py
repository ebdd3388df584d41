"""Keyboard byte decoding and buffer limits (no terminal needed)."""
from __future__ import annotations

import unittest

from pvkb.input.composite import CompositeInput
from pvkb.input.keyboard import KeyboardInput, decode_posix
from pvkb.input.keys import DOWN, ENTER, LEFT, QUIT, RIGHT, SPACE, UP, KeyCode, key_event


class DecodePosixTests(unittest.TestCase):
    def test_arrow_sequences(self) -> None:
        for raw, key in ((b"\x1b[A", UP), (b"\x1b[B", DOWN), (b"\x1b[C", RIGHT), (b"\x1b[D", LEFT), (b"\x1bOA", UP)):
            with self.subTest(raw=raw):
                buf = bytearray(raw)
                self.assertEqual(decode_posix(buf), key_event(key))
                self.assertEqual(buf, bytearray())

    def test_plain_keys(self) -> None:
        self.assertEqual(decode_posix(bytearray(b"a")), key_event(KeyCode("a")))
        self.assertEqual(decode_posix(bytearray(b"7")), key_event(KeyCode("7")))
        self.assertEqual(decode_posix(bytearray(b" ")), key_event(SPACE))
        self.assertEqual(decode_posix(bytearray(b"\r")), key_event(ENTER))
        self.assertEqual(decode_posix(bytearray(b"\n")), key_event(ENTER))

    def test_quit_key(self) -> None:
        self.assertEqual(decode_posix(bytearray(b"q")), QUIT)
        self.assertEqual(decode_posix(bytearray(b"x"), quit_key="x"), QUIT)
        self.assertEqual(decode_posix(bytearray(b"q"), quit_key="x"), key_event(KeyCode("q")))

    def test_one_event_per_call(self) -> None:
        buf = bytearray(b"ab\x1b[C")
        self.assertEqual(decode_posix(buf), key_event(KeyCode("a")))
        self.assertEqual(decode_posix(buf), key_event(KeyCode("b")))
        self.assertEqual(decode_posix(buf), key_event(RIGHT))
        self.assertIsNone(decode_posix(buf))

    def test_incomplete_escape_sequence_preserved(self) -> None:
        for raw in (b"\x1b", b"\x1b["):
            with self.subTest(raw=raw):
                buf = bytearray(raw)
                self.assertIsNone(decode_posix(buf))
                self.assertEqual(buf, bytearray(raw))

    def test_unrecognized_bytes_are_skipped(self) -> None:
        buf = bytearray(b"+-\x1bx\x1b[5~z")
        self.assertEqual(decode_posix(buf), key_event(KeyCode("x")))
        self.assertEqual(decode_posix(buf), key_event(KeyCode("z")))

    def test_parameterised_sequences_are_dropped_whole(self) -> None:
        # F5, Ctrl+Right, Home, F1 (SS3)
        for raw in (b"\x1b[15~", b"\x1b[1;5C", b"\x1b[H", b"\x1bOP"):
            with self.subTest(raw=raw):
                buf = bytearray(raw)
                self.assertIsNone(decode_posix(buf))
                self.assertEqual(buf, bytearray())

    def test_key_after_function_key_still_decodes(self) -> None:
        buf = bytearray(b"\x1b[15~\x1b[1;5Ca\x1b[D")
        self.assertEqual(decode_posix(buf), key_event(KeyCode("a")))
        self.assertEqual(decode_posix(buf), key_event(LEFT))
        self.assertEqual(buf, bytearray())

    def test_partial_parameterised_sequence_waits(self) -> None:
        buf = bytearray(b"\x1b[1;5")
        self.assertIsNone(decode_posix(buf))
        self.assertEqual(buf, bytearray(b"\x1b[1;5"))

        buf += b"C5"
        self.assertEqual(decode_posix(buf), key_event(KeyCode("5")))
        self.assertEqual(buf, bytearray())

    def test_iteration_limit_clears_garbage(self) -> None:
        buf = bytearray([0xFF] * 50)
        self.assertIsNone(decode_posix(buf, max_iterations=32))
        self.assertEqual(buf, bytearray())


class KeyboardInputBufferTests(unittest.TestCase):
    def test_buffered_key_without_terminal(self) -> None:
        inp = KeyboardInput(use_stdin=False)
        inp._posix_buf = bytearray(b"\x1b[A")
        self.assertEqual(inp.poll(), key_event(UP))
        self.assertIsNone(inp.poll())

    def test_buffer_cleared_when_exceeds_16_bytes(self) -> None:
        inp = KeyboardInput(use_stdin=False)
        inp._posix_buf = bytearray(b"\x1b" * 20)
        self.assertIsNone(inp.poll())
        self.assertEqual(len(inp._posix_buf), 0)

    def test_close_without_terminal_is_safe(self) -> None:
        inp = KeyboardInput(use_stdin=False)
        inp.close()
        inp.close()


class CompositeInputTests(unittest.TestCase):
    def test_first_source_with_an_event_wins(self) -> None:
        kb = KeyboardInput(use_stdin=False)
        other = KeyboardInput(use_stdin=False)
        both = CompositeInput(sources=[kb, other])

        other._posix_buf = bytearray(b"b")
        self.assertEqual(both.poll(), key_event(KeyCode("b")))

        kb._posix_buf = bytearray(b"a")
        other._posix_buf = bytearray(b"q")
        self.assertEqual(both.poll(), key_event(KeyCode("a")))
        self.assertEqual(both.poll(), QUIT)
        self.assertIsNone(both.poll())
        both.close()


if __name__ == "__main__":
    unittest.main()
