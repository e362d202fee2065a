import hashlib
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, ClassVar, Optional, Tuple
from urllib.parse import unquote, urlparse

from clipboard.base import ClipboardAdapter
from codec.image_codec import ImageCodec
from models.errors import (ClipboardUnavailable, DecodeFailure, EncodeFailure,
                           OptimizerError, WriteFailure)
from models.events import OptimizationComplete, OptimizationStart
from models.formats import ALL_FORMATS, JPEG, format_for_path
from models.optimization import (OptimizationCandidate, OptimizedResult, Outcome,
                                 PipelineState, SessionState)
from models.snapshot import ClipboardSnapshot
from services.event_bus import EventChannel
from utils.config import OptimizerConfig

logger = logging.getLogger(__name__)

ImageSource = Tuple[str, bytes, Optional[Path]]


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def parse_uri_list(data: bytes):
    paths = []
    for line in data.decode("utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parsed = urlparse(line)
        if parsed.scheme == "file":
            path = unquote(parsed.path)
            # file:///C:/x on Windows parses to /C:/x
            if len(path) > 2 and path[0] == "/" and path[2] == ":":
                path = path[1:]
            paths.append(Path(path))
        elif not parsed.scheme:
            paths.append(Path(line))
    return paths


class OptimizationPipeline:
    """Replaces clipboard images with smaller JPEG re-encodes.

    Clipboard change notifications only record the newest change counter in a
    single pending slot; one worker thread drains the slot and runs one
    evaluation cycle at a time. A cycle and ``revert()`` share a lock, so the
    clipboard has exactly one writer at any moment.
    """

    _active: ClassVar[Optional["OptimizationPipeline"]] = None
    _active_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        clipboard: ClipboardAdapter,
        codec: Optional[ImageCodec] = None,
        events: Optional[EventChannel] = None,
        config: Optional[OptimizerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or OptimizerConfig()
        self._clipboard = clipboard
        self._codec = codec or ImageCodec(self.config.jpeg_quality)
        self.events = events or EventChannel()
        self._clock = clock

        self._state = PipelineState.IDLE
        self._session: Optional[SessionState] = None
        self.last_written_sequence: Optional[int] = None
        self._last_output_digest: Optional[str] = None
        self.last_outcome: Optional[Outcome] = None

        self._process_lock = threading.RLock()
        self._pending_cond = threading.Condition()
        self._pending: Optional[int] = None
        self._busy = False
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def session(self) -> Optional[SessionState]:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        with OptimizationPipeline._active_lock:
            active = OptimizationPipeline._active
            if active is self and not self._stop_event.is_set():
                return
            if active is not None:
                raise RuntimeError("an optimization pipeline is already running in this process")
            OptimizationPipeline._active = self

        try:
            self._unsubscribe = self._clipboard.subscribe(self.notify)
        except Exception:
            self._release_slot()
            raise

        self._stop_event.clear()
        self._worker = threading.Thread(target=self._worker_loop, name="clipboard-optimizer", daemon=True)
        self._worker.start()
        logger.info("Clipboard optimizer started (quality %d)", self.config.jpeg_quality)

    def stop(self, timeout: float = 5.0) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._stop_event.set()
        with self._pending_cond:
            self._pending_cond.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                # the worker releases the slot once its current cycle ends
                logger.warning("Clipboard optimizer still finishing a cycle")
                return
            self._worker = None

        self._release_slot()
        logger.info("Clipboard optimizer stopped")

    def _release_slot(self) -> None:
        with OptimizationPipeline._active_lock:
            if OptimizationPipeline._active is self:
                OptimizationPipeline._active = None

    def notify(self, sequence_id: int) -> None:
        """Clipboard change callback. Never blocks on image work."""
        with self._pending_cond:
            if self._pending is not None:
                logger.debug("Coalescing pending change %d into %d", self._pending, sequence_id)
            self._pending = sequence_id
            self._pending_cond.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._pending_cond:
            return self._pending_cond.wait_for(
                lambda: self._pending is None and not self._busy, timeout=timeout)

    def _worker_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                with self._pending_cond:
                    self._pending_cond.wait_for(
                        lambda: self._pending is not None or self._stop_event.is_set())
                    if self._stop_event.is_set():
                        return
                    sequence_id, self._pending = self._pending, None
                    self._busy = True

                try:
                    self.process(sequence_id)
                except Exception:
                    logger.exception("Unexpected error while optimizing clipboard change %d", sequence_id)
                finally:
                    with self._pending_cond:
                        self._busy = False
                        self._pending_cond.notify_all()
        finally:
            self._release_slot()

    def process(self, sequence_id: int) -> Outcome:
        """Run one evaluation cycle for the clipboard change ``sequence_id``."""
        with self._process_lock:
            try:
                if sequence_id == self.last_written_sequence:
                    logger.debug("Ignoring our own clipboard write %d", sequence_id)
                    outcome = Outcome.IGNORED
                else:
                    outcome = self._run_cycle()
            finally:
                self._set_state(PipelineState.IDLE)
            self.last_outcome = outcome
            return outcome

    def _set_state(self, state: PipelineState) -> None:
        if state != self._state:
            logger.debug("Pipeline %s -> %s", self._state.value, state.value)
            self._state = state

    def _run_cycle(self) -> Outcome:
        try:
            snapshot = self._clipboard.read(ALL_FORMATS)
        except ClipboardUnavailable as e:
            # retried on the next change notification, never polled
            logger.warning("Clipboard unavailable, waiting for the next change: %s", e)
            return Outcome.IGNORED

        if snapshot.sequence_id == self.last_written_sequence:
            logger.debug("Clipboard still holds our own write %d", snapshot.sequence_id)
            return Outcome.IGNORED

        source = self._find_source(snapshot)
        if source is None:
            return Outcome.IGNORED

        self._set_state(PipelineState.EVALUATING)
        try:
            return self._optimize(snapshot, source)
        except (DecodeFailure, EncodeFailure, WriteFailure, ClipboardUnavailable) as e:
            self._set_state(PipelineState.FAILED)
            logger.warning("Clipboard optimization failed (%s): %s", type(e).__name__, e)
            return Outcome.FAILED

    def _find_source(self, snapshot: ClipboardSnapshot) -> Optional[ImageSource]:
        fmt = snapshot.image_format()
        if fmt is not None:
            return fmt, snapshot.payload[fmt], None

        file_list = snapshot.file_list()
        if not file_list:
            logger.debug("No image on the clipboard (formats: %s)", sorted(snapshot.formats))
            return None

        paths = parse_uri_list(file_list)
        if len(paths) != 1:
            logger.debug("Clipboard holds %d file references, not a single image", len(paths))
            return None
        path = paths[0]
        fmt = format_for_path(path)
        if fmt is None or not path.is_file():
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning("Cannot read copied image file %s: %s", path, e)
            return None
        logger.info("Got image file from clipboard: %s", path)
        return fmt, data, path

    def _skip_reason(self, fmt: str, data: bytes) -> Optional[str]:
        size = len(data)
        if self._last_output_digest is not None and _digest(data) == self._last_output_digest:
            return "content is our own optimized output"
        if size < self.config.min_bytes:
            return f"{size} bytes is below the {self.config.min_bytes} byte floor"
        if fmt == JPEG and size < self.config.jpeg_floor:
            return f"already JPEG and only {size} bytes"

        info = self._codec.probe(data)
        if min(info.width, info.height) < self.config.min_dimension:
            return f"{info.width}x{info.height} is below the minimum dimension"
        return None

    def _optimize(self, snapshot: ClipboardSnapshot, source: ImageSource) -> Outcome:
        fmt, data, path = source

        reason = self._skip_reason(fmt, data)
        if reason is not None:
            self._set_state(PipelineState.SKIPPED)
            logger.info("Skipping clipboard image: %s", reason)
            return Outcome.SKIPPED

        self.events.publish(OptimizationStart())
        self._set_state(PipelineState.ENCODING)

        raw = self._codec.decode(data)
        candidate = OptimizationCandidate(
            source_format=fmt, raw_pixels=raw, original_size=len(data), source_path=path)
        logger.info("Got %s image from clipboard: %dx%d, %d bytes",
                    fmt, raw.width, raw.height, candidate.original_size)

        result = OptimizedResult.from_bytes(self._codec.encode(raw))
        if result.new_size >= candidate.original_size:
            self._set_state(PipelineState.SKIPPED)
            logger.info("Skipping clipboard image: JPEG is %d bytes, original %d",
                        result.new_size, candidate.original_size)
            return Outcome.SKIPPED

        self._set_state(PipelineState.COMMITTING)
        return self._commit(snapshot, candidate, result)

    def _commit(self, snapshot: ClipboardSnapshot, candidate: OptimizationCandidate,
                result: OptimizedResult) -> Outcome:
        if self._clipboard.sequence_id() != snapshot.sequence_id:
            # Someone copied something newer while we were encoding; that change
            # is already pending and must not be overwritten.
            self._set_state(PipelineState.SKIPPED)
            logger.info("Clipboard changed during encoding, dropping stale result")
            return Outcome.SKIPPED

        try:
            sequence_id = self._clipboard.write(result.encoded_bytes, JPEG)
        except (WriteFailure, ClipboardUnavailable):
            self._restore_after_failed_write(snapshot)
            raise

        committed = result.mark_committed()
        self.last_written_sequence = sequence_id
        self._last_output_digest = _digest(committed.encoded_bytes)
        self._session = SessionState.open(
            snapshot, candidate.original_size, committed, self.config.revert_window, now=self._clock())

        logger.info("Clipboard image optimized: %d -> %d bytes (%.0f%%)",
                    candidate.original_size, committed.new_size,
                    100.0 * committed.new_size / candidate.original_size)
        self.events.publish(OptimizationComplete(
            original_size=candidate.original_size, new_size=committed.new_size))
        return Outcome.COMMITTED

    def _restore_after_failed_write(self, snapshot: ClipboardSnapshot) -> None:
        try:
            if self._clipboard.sequence_id() == snapshot.sequence_id:
                return
            logger.warning("Failed write altered the clipboard, restoring the original content")
            self.last_written_sequence = self._clipboard.write_formats(snapshot.payload)
        except OptimizerError as e:
            logger.error("Could not restore clipboard after failed write: %s", e)

    def revert(self) -> None:
        """Put the pre-optimization content back. No-op without a live session."""
        with self._process_lock:
            session = self._session
            if session is None:
                logger.info("Nothing to revert")
                return
            if self.config.enforce_revert_expiry and session.is_expired(self._clock()):
                logger.info("Revert window for session %s has expired", session.session_id)
                self._session = None
                return

            logger.info("Reverting clipboard to original image")
            try:
                sequence_id = self._clipboard.write_formats(session.original_snapshot.payload)
            except OptimizerError as e:
                logger.error("Reverting clipboard failed: %s", e)
                raise
            self.last_written_sequence = sequence_id
            self._session = None
            logger.info("Clipboard reverted to original image")

    def __enter__(self) -> "OptimizationPipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
