import asyncio
import time
from typing import Any, Callable, Optional

# scheduler(delay_seconds, callback) -> handle with .cancel(), or None if it cannot schedule
Scheduler = Callable[[float, Callable[[], None]], Any]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    """Schedule on the running asyncio loop; without one the caller has to flush()."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return loop.call_later(delay, callback)


class Throttle:
    """
    Leading + trailing throttle.

    The first call in a quiet period runs immediately. Calls arriving within
    ``wait`` seconds of the last run are coalesced: only the most recent
    arguments run, once, when the window closes.
    """

    def __init__(
        self,
        func: Callable[..., None],
        wait: float,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler = loop_scheduler,
    ) -> None:
        self._func = func
        self._wait = wait
        self._clock = clock
        self._scheduler = scheduler
        self._last_run: Optional[float] = None
        self._pending: Optional[tuple] = None
        self._handle: Any = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def __call__(self, *args, **kwargs) -> None:
        now = self._clock()
        if self._handle is None and (self._last_run is None or now - self._last_run >= self._wait):
            self._pending = None
            self._run(args, kwargs, now)
            return
        self._pending = (args, kwargs)
        if self._handle is None:
            remaining = self._wait if self._last_run is None else max(0.0, self._wait - (now - self._last_run))
            self._handle = self._scheduler(remaining, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        self.flush()

    def _run(self, args, kwargs, now: float) -> None:
        self._last_run = now
        self._func(*args, **kwargs)

    def flush(self) -> None:
        """Run the trailing call now, if one is waiting."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self._run(args, kwargs, self._clock())

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
