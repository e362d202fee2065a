from utils.autostart import AutoStartManager, get_autostart_manager
from utils.config import OptimizerConfig

__all__ = ["AutoStartManager", "OptimizerConfig", "get_autostart_manager"]
