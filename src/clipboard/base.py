import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Mapping, Optional

from models.formats import ALL_FORMATS, IMAGE_FORMATS
from models.snapshot import ClipboardSnapshot

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[int], None]


class ClipboardAdapter(ABC):
    """OS clipboard access by format, plus change notification.

    Writes replace the whole clipboard. Every supported OS clears all formats
    when a new owner takes the clipboard, so formats that are not part of a
    write are lost. This is a platform constraint, not something the adapter
    can work around.
    """

    def __init__(self, poll_interval: float = 0.25) -> None:
        self.poll_interval = poll_interval
        self._watcher_lock = threading.Lock()
        self._watcher = None

    @abstractmethod
    def sequence_id(self) -> int:
        """Current clipboard change counter."""

    @abstractmethod
    def _read_formats(self, formats: Iterable[str]) -> Dict[str, bytes]:
        pass

    @abstractmethod
    def _write_formats(self, payloads: Mapping[str, bytes]) -> None:
        pass

    def read(self, formats: Iterable[str] = ALL_FORMATS) -> ClipboardSnapshot:
        wanted = tuple(formats)
        sequence_id = self.sequence_id()
        data = self._read_formats(wanted)
        payload = {fmt: data[fmt] for fmt in wanted if data.get(fmt)}
        return ClipboardSnapshot.of(payload, sequence_id)

    def write(self, payload: bytes, fmt: str) -> int:
        return self.write_formats({fmt: payload})

    def write_formats(self, payloads: Mapping[str, bytes]) -> int:
        if not payloads:
            raise ValueError("nothing to write")
        self._write_formats(payloads)
        sequence_id = self.sequence_id()
        logger.debug("Wrote %s to clipboard, sequence %d", sorted(payloads), sequence_id)
        return sequence_id

    def subscribe(self, on_change: ChangeCallback) -> Callable[[], None]:
        from clipboard.watcher import ClipboardWatcher

        with self._watcher_lock:
            if self._watcher is None:
                self._watcher = ClipboardWatcher(self, poll_interval=self.poll_interval)
            watcher = self._watcher
        watcher.add_listener(on_change)
        watcher.start()
        return lambda: watcher.remove_listener(on_change)

    def close(self) -> None:
        with self._watcher_lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    @staticmethod
    def primary_format(payloads: Mapping[str, bytes]) -> Optional[str]:
        for fmt in IMAGE_FORMATS:
            if fmt in payloads:
                return fmt
        return next(iter(payloads), None)
