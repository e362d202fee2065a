import logging
from typing import Optional

from models.errors import AutoStartError, OptimizerError
from models.events import CommandResult
from models.optimization import SessionState
from services.event_bus import EventChannel
from services.optimizer_service import OptimizationPipeline
from utils.autostart import AutoStartManager

logger = logging.getLogger(__name__)


class CommandGateway:
    """Inbound commands from the UI, plus access to the outbound event channel."""

    def __init__(self, pipeline: OptimizationPipeline, autostart: AutoStartManager) -> None:
        self._pipeline = pipeline
        self._autostart = autostart
        self.progress_visible = False
        pipeline.events.add_listener(self._track_progress)

    @property
    def events(self) -> EventChannel:
        return self._pipeline.events

    def _track_progress(self, event) -> None:
        if event.name == "optimization-start":
            self.progress_visible = True

    def hide_progress(self) -> CommandResult:
        logger.debug("Progress overlay dismissed")
        self.progress_visible = False
        return CommandResult()

    def revert_clipboard(self) -> CommandResult:
        try:
            self._pipeline.revert()
        except OptimizerError as e:
            return CommandResult(ok=False, error=str(e))
        finally:
            self.hide_progress()
        return CommandResult()

    def get_auto_start(self) -> bool:
        try:
            return self._autostart.is_enabled()
        except AutoStartError as e:
            logger.warning("Could not query auto start: %s", e)
            raise

    def set_auto_start(self, enabled: bool) -> CommandResult:
        try:
            self._autostart.set_enabled(enabled)
        except AutoStartError as e:
            logger.warning("Could not change auto start: %s", e)
            return CommandResult(ok=False, error=str(e))
        logger.info("Auto start %s", "enabled" if enabled else "disabled")
        return CommandResult()

    def current_session(self) -> Optional[SessionState]:
        return self._pipeline.session
