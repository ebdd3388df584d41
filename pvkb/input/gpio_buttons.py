from __future__ import annotations

import os
import queue
import time
from dataclasses import dataclass
from typing import Callable

from .keys import InputEvent, KeyCode, key_event


@dataclass
class RepeatGate:
    """Time-based gate to prevent hold/repeat spam.

    This is intentionally pure-Python so it can be unit tested without GPIO libs.
    """

    min_interval_sec: float = 0.15
    time_fn: Callable[[], float] = time.monotonic
    _last_allowed: float | None = None

    def allow(self) -> bool:
        now = float(self.time_fn())
        if self._last_allowed is None:
            self._last_allowed = now
            return True
        if (now - self._last_allowed) >= float(self.min_interval_sec):
            self._last_allowed = now
            return True
        return False


class GpioButtons:
    """Raspberry Pi push buttons acting as extra keys.

    - Prefers gpiozero if available.
    - Falls back to RPi.GPIO.
    - Edge callbacks run on the GPIO library's threads and only enqueue
      events; poll() hands them to the event loop thread.

    Wiring expectation (default): button shorts GPIO pin -> GND, with internal pull-ups.
    """

    def __init__(
        self,
        *,
        buttons: dict[int, KeyCode],
        pull_up: bool = True,
        bounce_sec: float = 0.05,
        repeat_guard_sec: float = 0.15,
        timeout_sec: float = 0.0,
        pin_factory: str | None = None,
    ) -> None:
        if not buttons:
            raise ValueError("GpioButtons needs at least one pin")
        self._buttons = {int(pin): key for pin, key in buttons.items()}
        self._pull_up = bool(pull_up)
        self._bounce_sec = float(bounce_sec)
        self._timeout_sec = float(timeout_sec)
        self._pin_factory = pin_factory
        self._events: queue.Queue[InputEvent] = queue.Queue()

        # Per-button repeat gates.
        self._gates = {pin: RepeatGate(min_interval_sec=float(repeat_guard_sec)) for pin in self._buttons}

        self._backend: str | None = None
        self._gpiozero_buttons: list[object] | None = None
        self._rpi_gpio = None

        # Backend select.
        if self._try_init_gpiozero():
            return
        if self._try_init_rpi_gpio():
            return
        raise RuntimeError(
            "GPIO requested but neither gpiozero nor RPi.GPIO is available. "
            "Install one of them (recommended: gpiozero)."
        )

    @property
    def backend(self) -> str | None:
        return self._backend

    def pressed(self, pin: int) -> None:
        """Edge callback body: gate repeats, then enqueue the pin's key."""

        key = self._buttons.get(int(pin))
        if key is None:
            return
        if self._gates[int(pin)].allow():
            self._events.put(key_event(key))

    def _try_init_gpiozero(self) -> bool:
        # gpiozero reads this when its first device is created.
        if self._pin_factory:
            os.environ["GPIOZERO_PIN_FACTORY"] = self._pin_factory
        try:
            from gpiozero import Button  # type: ignore
        except Exception:
            return False

        def _wrap(pin: int) -> Callable[[], None]:
            def _inner() -> None:
                self.pressed(pin)

            return _inner

        # gpiozero: pull_up=True means active_low=True (pressed connects to GND).
        btns: list[object] = []
        for pin in self._buttons:
            b = Button(pin, pull_up=self._pull_up, bounce_time=self._bounce_sec)
            b.when_pressed = _wrap(pin)
            btns.append(b)

        self._backend = "gpiozero"
        self._gpiozero_buttons = btns
        return True

    def _try_init_rpi_gpio(self) -> bool:
        try:
            import RPi.GPIO as GPIO  # type: ignore
        except Exception:
            return False

        if self._pin_factory:
            print(f"[gpio] pin_factory={self._pin_factory!r} needs gpiozero; using RPi.GPIO")

        GPIO.setmode(GPIO.BCM)

        pud = GPIO.PUD_UP if self._pull_up else GPIO.PUD_DOWN
        bouncetime_ms = max(0, int(self._bounce_sec * 1000.0))
        # Buttons are normally-open; pressed shorts to the opposite rail.
        edge = GPIO.FALLING if self._pull_up else GPIO.RISING

        for pin in self._buttons:
            GPIO.setup(pin, GPIO.IN, pull_up_down=pud)
            GPIO.add_event_detect(pin, edge, callback=self.pressed, bouncetime=bouncetime_ms)

        self._backend = "RPi.GPIO"
        self._rpi_gpio = GPIO
        return True

    def poll(self) -> InputEvent | None:
        try:
            if self._timeout_sec > 0:
                return self._events.get(timeout=self._timeout_sec)
            return self._events.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        """Release GPIO resources. Safe to call multiple times."""

        if self._backend == "gpiozero" and self._gpiozero_buttons is not None:
            for b in self._gpiozero_buttons:
                try:
                    # gpiozero Button has .close()
                    b.close()  # type: ignore[attr-defined]
                except Exception:
                    pass
            self._gpiozero_buttons = None
            self._backend = None
            return

        if self._backend == "RPi.GPIO" and self._rpi_gpio is not None:
            GPIO = self._rpi_gpio
            for p in self._buttons:
                try:
                    GPIO.remove_event_detect(p)
                except Exception:
                    pass
            try:
                GPIO.cleanup(list(self._buttons))
            except Exception:
                pass
            self._rpi_gpio = None
            self._backend = None
