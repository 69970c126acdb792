import itertools
import threading
from typing import Any, Callable, Dict, Hashable


class StageScheduler:
    """Cancellable one-shot timers for round stages.

    - One pending timer per key; scheduling again replaces the previous one
    - Runs callbacks in a Socket.IO background task inside an app context
    - Cancelling only invalidates the token; a worker that wakes up with a
      stale token logs a skip and returns. Callbacks must still check state
      themselves since cancel can race with a worker that already woke up.
    """

    def __init__(self, app, socketio):
        self.app = app
        self.socketio = socketio
        self._tokens = itertools.count(1)
        self._pending: Dict[Hashable, int] = {}
        self._guard = threading.Lock()

    def schedule(self, key: Hashable, delay: float, callback: Callable[..., Any], *args) -> int:
        with self._guard:
            token = next(self._tokens)
            self._pending[key] = token
        self.app.logger.info(f"[timer-set] key={key} delay={delay}s token={token}")
        self.socketio.start_background_task(self._worker, key, token, delay, callback, args)
        return token

    def cancel(self, key: Hashable) -> bool:
        with self._guard:
            token = self._pending.pop(key, None)
        if token is not None:
            self.app.logger.info(f"[timer-cancel] key={key} token={token}")
        return token is not None

    def pending(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._pending

    def _claim(self, key: Hashable, token: int) -> bool:
        with self._guard:
            if self._pending.get(key) != token:
                return False
            del self._pending[key]
            return True

    def _sleep(self, key: Hashable, delay: float) -> None:
        try:
            hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0))
        except (TypeError, ValueError):
            hb = 0
        if hb <= 0:
            self.socketio.sleep(delay)
            return
        slept = 0.0
        while slept < delay:
            step = min(hb, delay - slept)
            self.socketio.sleep(step)
            slept += step
            self.app.logger.info(f"[timer-heartbeat] key={key} remaining={max(0, delay - slept)}s")

    def _worker(self, key, token, delay, callback, args) -> None:
        self._sleep(key, delay)
        self.fire(key, token, callback, args)

    def fire(self, key, token, callback, args=()) -> bool:
        if not self._claim(key, token):
            self.app.logger.info(f"[timer-skip] key={key} token={token} cancelled or replaced")
            return False
        self.app.logger.info(f"[timer-fire] key={key} token={token}")
        with self.app.app_context():
            try:
                callback(*args)
            except Exception:
                self.app.logger.exception(f"[timer-error] key={key}")
        return True
