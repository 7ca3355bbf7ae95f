from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Import progress: executor signal + tqdm presentation (TTY only).

The executor only knows two facts: a batch request is in flight, or it is
done. ``ProgressSignal`` carries exactly that (percent 0 while in flight, 100
once done). Anything smoother is cosmetic and lives in ``ImportProgressBar``,
which interpolates toward ``INTERPOLATION_CEILING`` while waiting and never
reaches 100 before the signal says done.
"""

__all__ = [
    "ProgressState",
    "ProgressSignal",
    "ImportProgressBar",
    "interpolate_percent",
    "is_tty_enabled",
    "INTERPOLATION_CEILING",
]

INTERPOLATION_CEILING = 90.0

ProgressListener = Callable[["ProgressState", float], None]


def is_tty_enabled() -> bool:
    """Progress bars are drawn only when stdout is a TTY."""
    return sys.stdout.isatty()


class ProgressState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    DONE = "done"


class ProgressSignal:
    """Two-state progress channel exposed by the import executor.

    Listeners are called synchronously with ``(state, percent)`` on every
    change. Percent never decreases until ``reset``.
    """

    def __init__(self) -> None:
        self._state = ProgressState.IDLE
        self._listeners: list[ProgressListener] = []

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def percent(self) -> float:
        return 100.0 if self._state is ProgressState.DONE else 0.0

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(self) -> None:
        self._set(ProgressState.IN_FLIGHT)

    def finish(self) -> None:
        self._set(ProgressState.DONE)

    def reset(self) -> None:
        self._set(ProgressState.IDLE)

    def _set(self, state: ProgressState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state, self.percent)


def interpolate_percent(
    elapsed_seconds: float,
    *,
    ceiling: float = INTERPOLATION_CEILING,
    half_life: float = 2.0,
) -> float:
    """Cosmetic estimate while waiting: approaches ``ceiling``, never passes it.

    Half of the remaining distance to the ceiling is covered every
    ``half_life`` seconds.
    """
    if elapsed_seconds <= 0:
        return 0.0
    return ceiling * (1.0 - 0.5 ** (elapsed_seconds / half_life))


class ImportProgressBar:
    """tqdm bar driven by a ProgressSignal.

    In non-TTY environments (CI, piped output) nothing is drawn and no ticker
    thread is started.
    """

    def __init__(
        self,
        signal: ProgressSignal,
        *,
        description: str = "Importing",
        tick_seconds: float = 0.5,
    ) -> None:
        self.signal = signal
        self.description = description
        self.tick_seconds = tick_seconds
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        self._shown = 0.0
        self._started_at = 0.0
        self._stop = threading.Event()
        self._ticker: threading.Thread | None = None
        self._lock = threading.Lock()
        signal.subscribe(self._on_change)

    def _on_change(self, state: ProgressState, percent: float) -> None:
        if not self.enabled:
            return
        if state is ProgressState.IN_FLIGHT:
            self._open()
        elif state is ProgressState.DONE:
            self._stop_ticker()
            self._advance_to(percent)
            self.close()

    def _open(self) -> None:
        self.pbar = tqdm(
            total=100,
            desc=self.description,
            unit="%",
            leave=True,
            ncols=80,
            ascii=True,
            bar_format="{desc}: {percentage:3.0f}%|{bar}|",
        )
        self._shown = 0.0
        self._started_at = time.monotonic()
        self._stop.clear()
        self._ticker = threading.Thread(target=self._tick, name="import-progress", daemon=True)
        self._ticker.start()

    def _tick(self) -> None:
        while not self._stop.wait(self.tick_seconds):
            self._advance_to(interpolate_percent(time.monotonic() - self._started_at))

    def _advance_to(self, percent: float) -> None:
        with self._lock:
            if self.pbar is None or percent <= self._shown:
                return
            self.pbar.update(percent - self._shown)
            self._shown = percent

    def _stop_ticker(self) -> None:
        self._stop.set()
        if self._ticker is not None:
            self._ticker.join()
            self._ticker = None

    def close(self) -> None:
        self._stop_ticker()
        with self._lock:
            if self.pbar is not None:
                self.pbar.close()
                self.pbar = None

    def __enter__(self) -> ImportProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
        self.signal.unsubscribe(self._on_change)
