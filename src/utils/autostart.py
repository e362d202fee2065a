"""Startup registration so the optimizer launches hidden at login."""
import logging
import os
import platform
import plistlib
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from models.errors import AutoStartError

logger = logging.getLogger(__name__)

APP_NAME = "ClipSqueeze"
APP_ID = "io.clipsqueeze.agent"


def default_command() -> List[str]:
    executable = shutil.which("clipsqueeze")
    if executable:
        return [executable, "--hidden"]
    return [sys.executable, "-m", "main", "--hidden"]


class AutoStartManager(ABC):

    def __init__(self, command: Optional[List[str]] = None) -> None:
        self.command = command or default_command()

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    def enable(self) -> None:
        pass

    @abstractmethod
    def disable(self) -> None:
        pass

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.enable()
        else:
            self.disable()


class XdgAutoStart(AutoStartManager):
    """Linux desktop sessions: ~/.config/autostart/<app>.desktop"""

    def __init__(self, command: Optional[List[str]] = None, config_home: Optional[Path] = None) -> None:
        super().__init__(command)
        base = config_home or Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
        self.entry_path = base / "autostart" / f"{APP_NAME.lower()}.desktop"

    def is_enabled(self) -> bool:
        return self.entry_path.is_file()

    def enable(self) -> None:
        exec_line = " ".join(f'"{part}"' if " " in part else part for part in self.command)
        entry = "\n".join([
            "[Desktop Entry]",
            "Type=Application",
            f"Name={APP_NAME}",
            f"Exec={exec_line}",
            "X-GNOME-Autostart-enabled=true",
            "NoDisplay=true",
            "",
        ])
        try:
            self.entry_path.parent.mkdir(parents=True, exist_ok=True)
            self.entry_path.write_text(entry, encoding="utf-8")
        except OSError as e:
            raise AutoStartError(f"cannot write {self.entry_path}: {e}") from e
        logger.info("Created autostart entry %s", self.entry_path)

    def disable(self) -> None:
        try:
            self.entry_path.unlink()
            logger.info("Removed autostart entry %s", self.entry_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise AutoStartError(f"cannot remove {self.entry_path}: {e}") from e


class LaunchAgentAutoStart(AutoStartManager):
    """macOS: ~/Library/LaunchAgents/<id>.plist"""

    def __init__(self, command: Optional[List[str]] = None, agents_dir: Optional[Path] = None) -> None:
        super().__init__(command)
        base = agents_dir or Path.home() / "Library" / "LaunchAgents"
        self.plist_path = base / f"{APP_ID}.plist"

    def is_enabled(self) -> bool:
        return self.plist_path.is_file()

    def enable(self) -> None:
        agent = {
            "Label": APP_ID,
            "ProgramArguments": list(self.command),
            "RunAtLoad": True,
        }
        try:
            self.plist_path.parent.mkdir(parents=True, exist_ok=True)
            with self.plist_path.open("wb") as handle:
                plistlib.dump(agent, handle)
        except OSError as e:
            raise AutoStartError(f"cannot write {self.plist_path}: {e}") from e
        logger.info("Created launch agent %s", self.plist_path)

    def disable(self) -> None:
        try:
            self.plist_path.unlink()
            logger.info("Removed launch agent %s", self.plist_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise AutoStartError(f"cannot remove {self.plist_path}: {e}") from e


class ScheduledTaskAutoStart(AutoStartManager):
    """Windows: an ONLOGON scheduled task."""

    task_name = APP_NAME

    def is_enabled(self) -> bool:
        try:
            subprocess.run(
                ["schtasks", "/Query", "/TN", self.task_name],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=True,
            )
            return True
        except subprocess.CalledProcessError:
            return False
        except FileNotFoundError as e:
            raise AutoStartError(f"schtasks is unavailable: {e}") from e

    def enable(self) -> None:
        command_line = subprocess.list2cmdline(self.command)
        self._schtasks(["/Create", "/SC", "ONLOGON", "/TN", self.task_name,
                        "/TR", command_line, "/RL", "LIMITED", "/F"])
        logger.info("Created startup task %s", self.task_name)

    def disable(self) -> None:
        if not self.is_enabled():
            return
        self._schtasks(["/Delete", "/TN", self.task_name, "/F"])
        logger.info("Removed startup task %s", self.task_name)

    @staticmethod
    def _schtasks(args: List[str]) -> None:
        try:
            subprocess.run(["schtasks", *args], check=True, capture_output=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise AutoStartError(f"schtasks {args[0]} failed: {e}") from e


def get_autostart_manager(command: Optional[List[str]] = None) -> AutoStartManager:
    system = platform.system()

    if system == "Windows":
        return ScheduledTaskAutoStart(command)
    elif system == "Darwin":
        return LaunchAgentAutoStart(command)
    elif system == "Linux":
        return XdgAutoStart(command)
    else:
        raise NotImplementedError(f"Platform '{system}' is not supported")
