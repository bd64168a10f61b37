from __future__ import annotations

import contextlib
import logging
import sys
import threading
import time
from typing import Protocol

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Receiver of per-phase progress in [0, 1]."""

    def on_progress(self, phase: str, fraction: float) -> None: ...


class CancelToken:
    """Pollable user-cancel flag, safe to set from another thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class SingleLineRenderer:
    """Thread-safe renderer that redraws a single console line."""

    def __init__(self, *, single_line: bool = True, stream=None) -> None:
        self.single_line = single_line
        self._stream = stream or sys.stdout
        self._last_len = 0
        self._lock = threading.Lock()

    def clear_line(self) -> None:
        with self._lock:
            if self.single_line and self._last_len > 0:
                self._stream.write('\r' + ' ' * self._last_len + '\r')
                self._stream.flush()
                self._last_len = 0

    def write_line(self, msg: str) -> None:
        with self._lock:
            if self.single_line:
                pad = max(0, self._last_len - len(msg))
                self._stream.write('\r' + msg + (' ' * pad))
            else:
                self._stream.write(msg + '\n')
            self._stream.flush()
            self._last_len = len(msg)


class NullProgress:
    """Sink that drops every update."""

    def on_progress(self, phase: str, fraction: float) -> None:
        return None


class ConsoleProgress:
    """Progress bar sink for the command line, one bar per phase."""

    bar_len = 30

    def __init__(self, writer: SingleLineRenderer | None = None) -> None:
        self._writer = writer or SingleLineRenderer()
        self._phase: str | None = None
        self._start = time.monotonic()

    def _format_eta(self, remaining: float) -> str:
        if remaining == float('inf'):
            return '--:--'
        m, s = divmod(int(remaining), 60)
        h, m = divmod(m, 60)
        if h > 0:
            return f'{h:02d}:{m:02d}:{s:02d}'
        return f'{m:02d}:{s:02d}'

    def on_progress(self, phase: str, fraction: float) -> None:
        if phase != self._phase:
            if self._phase is not None:
                self._writer.write_line('')
            self._phase = phase
            self._start = time.monotonic()
        elapsed = max(1e-6, time.monotonic() - self._start)
        rate = fraction / elapsed
        remaining = (1.0 - fraction) / rate if rate > 0 else float('inf')
        filled = int(self.bar_len * fraction)
        bar = '█' * filled + '░' * (self.bar_len - filled)
        self._writer.write_line(
            f'{phase}: [{bar}] {fraction * 100:5.1f}% | ETA {self._format_eta(remaining)}'
        )

    def close(self) -> None:
        self._writer.clear_line()


class PhaseProgress:
    """Counts finished steps of one phase and forwards monotonic fractions."""

    def __init__(self, sink: ProgressSink | None, phase: str, total: int) -> None:
        self.sink = sink
        self.phase = phase
        self.total = max(1, int(total))
        self.done = 0
        self._last = 0.0

    @property
    def fraction(self) -> float:
        return self._last

    def _publish(self, fraction: float) -> None:
        fraction = min(1.0, max(self._last, fraction))
        self._last = fraction
        if self.sink is not None:
            # A misbehaving UI must not break the job
            with contextlib.suppress(Exception):
                self.sink.on_progress(self.phase, fraction)

    def start(self) -> None:
        self._publish(0.0)

    def step(self, n: int = 1) -> None:
        self.done = min(self.total, self.done + n)
        self._publish(self.done / self.total)

    def finish(self) -> None:
        self.done = self.total
        self._publish(1.0)
