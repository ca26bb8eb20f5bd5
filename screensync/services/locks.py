import threading
from contextlib import contextmanager

from screensync.services.errors import ScreenBusyError


class ScreenLocks:
    """Set of screen ids currently being reconciled."""

    def __init__(self):
        self._held: set[str] = set()
        self._guard = threading.Lock()

    def try_acquire(self, screen_id: str) -> bool:
        with self._guard:
            if screen_id in self._held:
                return False
            self._held.add(screen_id)
            return True

    def release(self, screen_id: str) -> None:
        with self._guard:
            self._held.discard(screen_id)

    def is_held(self, screen_id: str) -> bool:
        with self._guard:
            return screen_id in self._held

    def held(self) -> list[str]:
        with self._guard:
            return sorted(self._held)

    @contextmanager
    def hold(self, screen_id: str):
        if not self.try_acquire(screen_id):
            raise ScreenBusyError(screen_id)
        try:
            yield
        finally:
            self.release(screen_id)
