import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping

from clipboard.base import ChangeCallback, ClipboardAdapter
from models.errors import ClipboardUnavailable, WriteFailure

logger = logging.getLogger(__name__)


class InMemoryClipboard(ClipboardAdapter):
    """Process-local clipboard for tests and headless runs.

    Change listeners are called synchronously from whichever thread changed the
    content, the same way an OS callback arrives on a foreign thread.
    """

    def __init__(self, contents: Mapping[str, bytes] = None, poll_interval: float = 0.25) -> None:
        super().__init__(poll_interval=poll_interval)
        self._state_lock = threading.RLock()
        self._contents: Dict[str, bytes] = dict(contents or {})
        self._sequence = 1
        self._listeners: List[ChangeCallback] = []
        self.locked = False
        self.fail_writes = False
        self.writes: List[Dict[str, bytes]] = []

    def sequence_id(self) -> int:
        with self._state_lock:
            return self._sequence

    @property
    def contents(self) -> Dict[str, bytes]:
        with self._state_lock:
            return dict(self._contents)

    def copy(self, payloads: Mapping[str, bytes]) -> int:
        """Simulate another application taking the clipboard."""
        return self._replace(payloads)

    def _read_formats(self, formats: Iterable[str]) -> Dict[str, bytes]:
        if self.locked:
            raise ClipboardUnavailable("clipboard is held by another process")
        with self._state_lock:
            return {fmt: self._contents[fmt] for fmt in formats if fmt in self._contents}

    def _write_formats(self, payloads: Mapping[str, bytes]) -> None:
        if self.locked:
            raise ClipboardUnavailable("clipboard is held by another process")
        if self.fail_writes:
            raise WriteFailure("clipboard rejected the write")
        self.writes.append(dict(payloads))
        self._replace(payloads)

    def _replace(self, payloads: Mapping[str, bytes]) -> int:
        with self._state_lock:
            self._contents = dict(payloads)
            self._sequence += 1
            sequence_id = self._sequence
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(sequence_id)
            except Exception:
                logger.exception("Clipboard change listener failed")
        return sequence_id

    def subscribe(self, on_change: ChangeCallback) -> Callable[[], None]:
        with self._state_lock:
            self._listeners.append(on_change)

        def unsubscribe() -> None:
            with self._state_lock:
                if on_change in self._listeners:
                    self._listeners.remove(on_change)

        return unsubscribe

    def close(self) -> None:
        with self._state_lock:
            self._listeners.clear()
