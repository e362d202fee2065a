import hashlib
import logging
import os
import shutil
import subprocess
import threading
from typing import Dict, Iterable, List, Mapping, Optional

from clipboard.base import ClipboardAdapter
from models.errors import ClipboardUnavailable, WriteFailure
from models.formats import BMP, FILE_LIST, JPEG, PNG, TEXT, TIFF, WEBP, GIF

logger = logging.getLogger(__name__)


class LinuxClipboard(ClipboardAdapter):
    """Clipboard access through wl-clipboard on Wayland or xclip on X11.

    Neither tool exposes a change counter, so one is synthesized from a
    fingerprint of the offered targets plus an owner marker: the X11
    ``TIMESTAMP`` target when the owner offers it, otherwise the length and
    first kilobyte of the preferred payload. The counter advances each time
    the fingerprint differs from the last one observed.
    """

    # X11/Wayland targets accepted for each format, most specific first
    _TARGETS = {
        PNG: ("image/png",),
        JPEG: ("image/jpeg", "image/jpg", "image/pjpeg"),
        BMP: ("image/bmp", "image/x-ms-bmp", "image/x-bmp"),
        TIFF: ("image/tiff",),
        WEBP: ("image/webp",),
        GIF: ("image/gif",),
        FILE_LIST: ("text/uri-list", "x-special/gnome-copied-files"),
        TEXT: ("text/plain;charset=utf-8", "UTF8_STRING", "text/plain", "STRING"),
    }

    read_timeout = 1.5
    write_timeout = 2.0
    fingerprint_bytes = 1024

    def __init__(self, poll_interval: float = 0.25) -> None:
        super().__init__(poll_interval=poll_interval)
        self._counter_lock = threading.Lock()
        self._sequence = 0
        self._fingerprint: Optional[str] = None

    def _use_wayland(self) -> bool:
        return bool(os.environ.get("WAYLAND_DISPLAY")) and shutil.which("wl-paste") is not None

    def _use_xclip(self) -> bool:
        return shutil.which("xclip") is not None

    def _list_command(self) -> List[str]:
        if self._use_wayland():
            return ["wl-paste", "--list-types"]
        if self._use_xclip():
            return ["xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"]
        raise ClipboardUnavailable("neither wl-paste nor xclip is installed")

    def _read_command(self, target: str) -> List[str]:
        if self._use_wayland():
            command = ["wl-paste", "--type", target]
            if target.lower().startswith("text/"):
                command.append("--no-newline")
            return command
        return ["xclip", "-selection", "clipboard", "-t", target, "-o"]

    def _write_command(self, target: str) -> List[str]:
        if shutil.which("wl-copy") and os.environ.get("WAYLAND_DISPLAY"):
            return ["wl-copy", "--type", target]
        if self._use_xclip():
            return ["xclip", "-selection", "clipboard", "-t", target, "-i"]
        raise ClipboardUnavailable("neither wl-copy nor xclip is installed")

    def _targets(self) -> List[str]:
        return self._parse_type_list(self._run_command(self._list_command(), timeout=self.read_timeout))

    def _resolve(self, fmt: str, targets: List[str]) -> Optional[str]:
        offered = {target.lower(): target for target in targets}
        for candidate in self._TARGETS.get(fmt, (fmt,)):
            if candidate.lower() in offered:
                return offered[candidate.lower()]
        return None

    def _owner_marker(self, targets: List[str]) -> bytes:
        if "TIMESTAMP" in targets and not self._use_wayland():
            # changes whenever a new owner takes the selection
            stamp = self._run_command(self._read_command("TIMESTAMP"), timeout=self.read_timeout)
            if stamp:
                return b"ts:" + stamp

        for fmt in (PNG, JPEG, BMP, TIFF, WEBP, FILE_LIST, TEXT):
            target = self._resolve(fmt, targets)
            if target is None:
                continue
            data = self._run_command(self._read_command(target), timeout=self.read_timeout) or b""
            return str(len(data)).encode("ascii") + b":" + data[:self.fingerprint_bytes]
        return b""

    def sequence_id(self) -> int:
        targets = self._targets()
        digest = hashlib.sha1("\n".join(sorted(targets)).encode("utf-8"))
        digest.update(self._owner_marker(targets))
        fingerprint = digest.hexdigest()

        with self._counter_lock:
            if fingerprint != self._fingerprint:
                self._fingerprint = fingerprint
                self._sequence += 1
            return self._sequence

    def _read_formats(self, formats: Iterable[str]) -> Dict[str, bytes]:
        targets = self._targets()
        result: Dict[str, bytes] = {}
        for fmt in formats:
            target = self._resolve(fmt, targets)
            if target is None:
                continue
            data = self._run_command(self._read_command(target), timeout=self.read_timeout)
            if not data:
                continue
            if target.lower() == "x-special/gnome-copied-files":
                data = self._gnome_to_uri_list(data)
            result[fmt] = data
        return result

    def _write_formats(self, payloads: Mapping[str, bytes]) -> None:
        # Both tools serve exactly one target per invocation.
        fmt = self.primary_format(payloads)
        dropped = sorted(set(payloads) - {fmt})
        if dropped:
            logger.debug("Only %s is written on Linux, dropping %s", fmt, dropped)
        command = self._write_command(fmt)
        try:
            # No output pipes: xclip and wl-copy fork a child that keeps serving
            # the selection and would hold a pipe open until it exits.
            subprocess.run(
                command,
                input=payloads[fmt],
                check=True,
                timeout=self.write_timeout,
            )
        except subprocess.CalledProcessError as e:
            raise WriteFailure(f"{command[0]} exited with {e.returncode}") from e
        except subprocess.TimeoutExpired as e:
            raise WriteFailure(f"{command[0]} timed out") from e
        except FileNotFoundError as e:
            raise ClipboardUnavailable(str(e)) from e

    @staticmethod
    def _gnome_to_uri_list(data: bytes) -> bytes:
        lines = [line.strip() for line in data.decode("utf-8", errors="ignore").splitlines() if line.strip()]
        if lines and lines[0].lower() in {"copy", "cut"}:
            lines = lines[1:]
        return "\r\n".join(lines).encode("utf-8")

    @staticmethod
    def _parse_type_list(data: Optional[bytes]) -> List[str]:
        if not data:
            return []
        text = data.decode("utf-8", errors="ignore")
        return [line.strip() for line in text.splitlines() if line.strip()]

    @staticmethod
    def _run_command(command: List[str], timeout: float) -> Optional[bytes]:
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=timeout,
            )
            return result.stdout
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
            return None
