"""Keyed debounce timers."""

import threading
from dataclasses import dataclass

from cargo_relay.services.clock import AsyncCallback, Scheduler, TimerHandle


@dataclass
class _Armed:
    handle: TimerHandle | None = None


class Debouncer:
    """Runs a callback once a key has been quiet for a delay.

    Arming a key cancels the timer already armed for it. A superseded timer
    that still gets to run is ignored, so each quiet period fires once.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._armed: dict[str, _Armed] = {}
        self._lock = threading.Lock()

    def arm(self, key: str, delay: float, callback: AsyncCallback) -> None:
        """Schedule `callback` for `key`, replacing any pending timer."""
        token = _Armed()

        async def fire() -> None:
            with self._lock:
                if self._armed.get(key) is not token:
                    return
                del self._armed[key]
            await callback()

        with self._lock:
            previous = self._armed.get(key)
            if previous is not None and previous.handle is not None:
                previous.handle.cancel()
            self._armed[key] = token
            token.handle = self._scheduler.call_later(delay, fire)

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for `key`, if any."""
        with self._lock:
            armed = self._armed.pop(key, None)
        if armed is None:
            return False
        if armed.handle is not None:
            armed.handle.cancel()
        return True

    def pending(self, key: str) -> bool:
        """Return true while a timer is armed for `key`."""
        with self._lock:
            return key in self._armed

    def __len__(self) -> int:
        with self._lock:
            return len(self._armed)
