from __future__ import annotations

import unittest

import pytest

from pvkb.client.memory import MemoryClient
from pvkb.core.binder import BoundAction, Mode, StartupWrite, bind_keybindings
from pvkb.core.dispatch import apply_startup_writes, execute, handle_key, run_event_loop
from pvkb.core.errors import WriteError
from pvkb.core.values import TypedValue
from pvkb.input.keys import QUIT, RIGHT, InputEvent, KeyCode, key_event


class FakeSource:
    """Replays a fixed list of events, then asks to quit."""

    def __init__(self, events: list[InputEvent | None]) -> None:
        self.events = list(events)
        self.polls = 0
        self.closed = False

    def poll(self) -> InputEvent | None:
        self.polls += 1
        if not self.events:
            return QUIT
        return self.events.pop(0)

    def close(self) -> None:
        self.closed = True


def _bind(client: MemoryClient, entry: dict) -> BoundAction:
    table = bind_keybindings({"key_right": entry}, client, "")
    return table[RIGHT]


class ExecuteTests(unittest.TestCase):
    def test_set_integer_on_double_pv(self) -> None:
        c = MemoryClient()
        c.add("m1.TWF", "double", 0.0)
        action = _bind(c, {"pv": "m1.TWF", "value": 1})

        execute(action, c)

        self.assertEqual(c.puts, [("m1.TWF", "value", 1.0)])
        self.assertIsInstance(c.puts[0][2], float)

    def test_increment_double_pv_with_integer_delta(self) -> None:
        c = MemoryClient()
        pv = c.add("m1.TWF", "double", 5.0)
        action = _bind(c, {"pv": "m1.TWF", "value": 1, "increment": True})

        execute(action, c)

        self.assertEqual(pv.value, pytest.approx(6.0))
        self.assertEqual(c.puts, [("m1.TWF", "value", 6.0)])

    def test_increment_is_state_dependent(self) -> None:
        c = MemoryClient()
        pv = c.add("m1.TWF", "double", 5.0)
        action = _bind(c, {"pv": "m1.TWF", "value": 0.25, "increment": True})

        execute(action, c)
        execute(action, c)

        self.assertEqual(pv.value, pytest.approx(5.5))

    def test_increment_integer_pv_stays_integer(self) -> None:
        c = MemoryClient()
        pv = c.add("count", "int", 7)
        action = _bind(c, {"pv": "count", "value": -2, "increment": True})

        execute(action, c)

        self.assertEqual(pv.value, 5)
        self.assertIsInstance(pv.value, int)

    def test_set_is_repeatable(self) -> None:
        c = MemoryClient()
        pv = c.add("count", "int", 7)
        action = _bind(c, {"pv": "count", "value": 3})

        execute(action, c)
        execute(action, c)

        self.assertEqual(pv.value, 3)

    def test_enum_writes_index(self) -> None:
        c = MemoryClient()
        pv = c.add("mode", "enum_t", index=0)
        action = _bind(c, {"pv": "mode", "value": 2})

        execute(action, c)

        self.assertEqual(c.puts, [("mode", "value.index", 2)])
        self.assertEqual(pv.index, 2)

    def test_enum_increment_reads_index(self) -> None:
        c = MemoryClient()
        pv = c.add("mode", "enum_t", index=1)
        action = _bind(c, {"pv": "mode", "value": 1, "increment": True})

        execute(action, c)

        self.assertEqual(pv.index, 2)
        self.assertEqual(c.puts, [("mode", "value.index", 2)])

    def test_text_and_boolean(self) -> None:
        c = MemoryClient()
        c.add("name", "string", "")
        c.add("flag", "boolean", False)
        table = bind_keybindings(
            {"key_n": {"pv": "name", "value": "sample-1"}, "key_f": {"pv": "flag", "value": True}},
            c,
            "",
        )

        execute(table[KeyCode("n")], c)
        execute(table[KeyCode("f")], c)

        self.assertEqual(c.puts, [("name", "value", "sample-1"), ("flag", "value", True)])

    def test_write_failure_raises(self) -> None:
        c = MemoryClient()
        c.add("count", "int", 0, fail_writes=True)
        action = _bind(c, {"pv": "count", "value": 3})

        with self.assertRaises(WriteError):
            execute(action, c)


class StartupWriteTests(unittest.TestCase):
    def test_applied_in_order(self) -> None:
        c = MemoryClient()
        c.add("mode", "enum_t")
        c.add("speed", "double", 0.0)
        mode = c.connect("mode")
        speed = c.connect("speed")
        writes = [
            StartupWrite(channel=mode, value=TypedValue.integer(1)),
            StartupWrite(channel=speed, value=TypedValue.integer(2)),
            StartupWrite(channel=mode, value=TypedValue.integer(0)),
        ]

        apply_startup_writes(writes, c)

        self.assertEqual(
            c.puts,
            [("mode", "value.index", 1), ("speed", "value", 2.0), ("mode", "value.index", 0)],
        )

    def test_first_failure_stops(self) -> None:
        c = MemoryClient()
        c.add("a", "int", fail_writes=True)
        c.add("b", "int")
        writes = [
            StartupWrite(channel=c.connect("a"), value=TypedValue.integer(1)),
            StartupWrite(channel=c.connect("b"), value=TypedValue.integer(1)),
        ]
        with self.assertRaises(WriteError):
            apply_startup_writes(writes, c)
        self.assertEqual(c.puts, [])


class EventLoopTests(unittest.TestCase):
    def _table(self, c: MemoryClient) -> dict:
        c.add("m1.TWF", "double", 5.0)
        c.add("count", "int", 0)
        return bind_keybindings(
            {
                "key_right": {"pv": "m1.TWF", "value": 1, "increment": True},
                "key_c": {"pv": "count", "value": 9},
            },
            c,
            "",
        )

    def test_quit_exits_without_dispatch(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        src = FakeSource([QUIT, key_event(RIGHT)])

        self.assertEqual(run_event_loop(table, src, c), 0)
        self.assertEqual(c.puts, [])
        self.assertEqual(src.polls, 1)

    def test_dispatches_in_press_order(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        src = FakeSource([key_event(RIGHT), None, key_event(KeyCode("c")), key_event(RIGHT)])

        self.assertEqual(run_event_loop(table, src, c), 0)
        self.assertEqual(
            c.puts,
            [("m1.TWF", "value", 6.0), ("count", "value", 9), ("m1.TWF", "value", 7.0)],
        )

    def test_unbound_keys_are_ignored(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        src = FakeSource([key_event(KeyCode("z"))])

        self.assertEqual(run_event_loop(table, src, c), 0)
        self.assertEqual(c.puts, [])

    def test_write_error_does_not_stop_the_loop(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        c.pvs["count"].fail_writes = True
        src = FakeSource([key_event(KeyCode("c")), key_event(RIGHT)])

        self.assertEqual(run_event_loop(table, src, c), 0)
        self.assertEqual(c.puts, [("m1.TWF", "value", 6.0)])

    def test_write_errors_go_to_on_error(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        c.pvs["count"].fail_writes = True
        src = FakeSource([key_event(KeyCode("c")), key_event(RIGHT), key_event(KeyCode("c"))])
        errors: list[WriteError] = []

        self.assertEqual(run_event_loop(table, src, c, on_error=errors.append), 0)
        self.assertEqual(len(errors), 2)
        self.assertTrue(all(isinstance(e, WriteError) for e in errors))
        self.assertIn("count", str(errors[0]))
        self.assertEqual(c.puts, [("m1.TWF", "value", 6.0)])

    def test_handle_key_returns_the_error(self) -> None:
        c = MemoryClient()
        table = self._table(c)
        c.pvs["count"].fail_writes = True

        err = handle_key(table, KeyCode("c"), c)
        self.assertIsInstance(err, WriteError)
        self.assertIsNone(handle_key(table, RIGHT, c))
        self.assertIsNone(handle_key(table, None, c))


class BoundActionTests(unittest.TestCase):
    def test_describe(self) -> None:
        c = MemoryClient()
        c.add("m1.TWF", "double", 5.0)
        action = BoundAction(channel=c.connect("m1.TWF"), value=TypedValue.float_(0.5), mode=Mode.INCREMENT)
        self.assertEqual(action.describe(), "m1.TWF (double) += double(0.5)")


if __name__ == "__main__":
    unittest.main()
