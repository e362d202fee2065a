import logging
import threading
from typing import TYPE_CHECKING, Callable, List, Optional

from models.errors import ClipboardUnavailable

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from clipboard.base import ClipboardAdapter

logger = logging.getLogger(__name__)


class ClipboardWatcher:
    """Polls the adapter's change counter and notifies listeners when it moves."""

    def __init__(self, adapter: "ClipboardAdapter", poll_interval: float = 0.25) -> None:
        self._adapter = adapter
        self._listeners: List[Callable[[int], None]] = []
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._is_running = False
        self.poll_interval = poll_interval

    @property
    def is_running(self) -> bool:
        return self._is_running

    def add_listener(self, listener: Callable[[int], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[int], None]) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def start(self) -> None:
        with self._lock:
            if self._is_running:
                return

            self._stop_event.clear()
            self._is_running = True
            self._poll_thread = threading.Thread(
                target=self._poll_loop, name="clipboard-watcher", daemon=True)
            self._poll_thread.start()

    def stop(self) -> None:
        with self._lock:
            if not self._is_running:
                return

            self._is_running = False
            self._stop_event.set()

        if self._poll_thread is not None:
            self._poll_thread.join(timeout=1.0)
            self._poll_thread = None

    def _current(self) -> Optional[int]:
        try:
            return self._adapter.sequence_id()
        except ClipboardUnavailable as e:
            logger.debug("Clipboard counter unavailable: %s", e)
            return None

    def _poll_loop(self) -> None:
        last_seen = self._current()

        while not self._stop_event.wait(self.poll_interval):
            current = self._current()
            if current is None or current == last_seen:
                continue
            last_seen = current
            self._dispatch(current)

    def _dispatch(self, sequence_id: int) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("Clipboard changed, sequence %d", sequence_id)
        for listener in listeners:
            try:
                listener(sequence_id)
            except Exception:
                logger.exception("Clipboard change listener failed")

    def __enter__(self) -> "ClipboardWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
