import logging
import struct
import time
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Tuple
from urllib.parse import unquote, urlparse

import pywintypes
import win32clipboard as wc
import win32con

from clipboard.base import ClipboardAdapter
from codec.dib import bmp_to_dib, dib_to_bmp
from models.errors import ClipboardUnavailable, WriteFailure
from models.formats import BMP, FILE_LIST, JPEG, PNG, TEXT, TIFF, WEBP

logger = logging.getLogger(__name__)

# Registered names applications use for encoded images on the Windows clipboard.
_REGISTERED = {
    PNG: ("PNG", "image/png"),
    JPEG: ("JFIF", "image/jpeg"),
    TIFF: ("TIFF", "image/tiff"),
    WEBP: ("image/webp",),
}


class WindowsClipboard(ClipboardAdapter):
    open_attempts = 3
    open_retry_delay = 0.05

    def __init__(self, poll_interval: float = 0.25) -> None:
        super().__init__(poll_interval=poll_interval)
        self._format_ids: Dict[str, Tuple[int, ...]] = {
            fmt: tuple(wc.RegisterClipboardFormat(name) for name in names)
            for fmt, names in _REGISTERED.items()
        }

    def sequence_id(self) -> int:
        return int(wc.GetClipboardSequenceNumber())

    def _open(self) -> None:
        last_error = None
        for _ in range(self.open_attempts):
            try:
                wc.OpenClipboard()
                return
            except pywintypes.error as e:
                last_error = e
                time.sleep(self.open_retry_delay)
        raise ClipboardUnavailable(f"OpenClipboard failed: {last_error}")

    @staticmethod
    def _close() -> None:
        try:
            wc.CloseClipboard()
        except pywintypes.error:
            logger.debug("CloseClipboard failed", exc_info=True)

    def _read_formats(self, formats: Iterable[str]) -> Dict[str, bytes]:
        result: Dict[str, bytes] = {}
        self._open()
        try:
            for fmt in formats:
                data = self._read_one(fmt)
                if data:
                    result[fmt] = data
        finally:
            self._close()
        return result

    def _read_one(self, fmt: str):
        if fmt in self._format_ids:
            for format_id in self._format_ids[fmt]:
                if wc.IsClipboardFormatAvailable(format_id):
                    return self._get(format_id)
            return None

        if fmt == BMP:
            for format_id in (win32con.CF_DIBV5, win32con.CF_DIB):
                if wc.IsClipboardFormatAvailable(format_id):
                    dib = self._get(format_id)
                    return dib_to_bmp(dib) if dib else None
            return None

        if fmt == FILE_LIST and wc.IsClipboardFormatAvailable(win32con.CF_HDROP):
            files = self._get(win32con.CF_HDROP) or ()
            if isinstance(files, str):
                files = [files]
            uris = [Path(path).as_uri() for path in files if path]
            return "\r\n".join(uris).encode("utf-8") if uris else None

        if fmt == TEXT and wc.IsClipboardFormatAvailable(wc.CF_UNICODETEXT):
            text = self._get(wc.CF_UNICODETEXT)
            return text.encode("utf-8") if text else None

        return None

    @staticmethod
    def _get(format_id: int):
        try:
            return wc.GetClipboardData(format_id)
        except pywintypes.error as e:
            logger.debug("GetClipboardData(%d) failed: %s", format_id, e)
            return None

    def _write_formats(self, payloads: Mapping[str, bytes]) -> None:
        self._open()
        try:
            wc.EmptyClipboard()
            written: List[str] = []
            for fmt, data in payloads.items():
                if self._write_one(fmt, data):
                    written.append(fmt)
            if not written:
                raise WriteFailure(f"no writable format among {sorted(payloads)}")
        except pywintypes.error as e:
            raise WriteFailure(f"SetClipboardData failed: {e}") from e
        finally:
            self._close()

    def _write_one(self, fmt: str, data: bytes) -> bool:
        if fmt in self._format_ids:
            for format_id in self._format_ids[fmt]:
                wc.SetClipboardData(format_id, data)
            return True
        if fmt == BMP:
            wc.SetClipboardData(win32con.CF_DIB, bmp_to_dib(data))
            return True
        if fmt == FILE_LIST:
            wc.SetClipboardData(win32con.CF_HDROP, _dropfiles(data))
            return True
        if fmt == TEXT:
            wc.SetClipboardData(wc.CF_UNICODETEXT, data.decode("utf-8", errors="ignore"))
            return True
        logger.debug("Format %s cannot be written on Windows, dropped", fmt)
        return False


def _dropfiles(uri_list: bytes) -> bytes:
    """Build a CF_HDROP DROPFILES block from a text/uri-list payload."""
    paths = []
    for line in uri_list.decode("utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parsed = urlparse(line)
        paths.append(unquote(parsed.path.lstrip("/")) if parsed.scheme == "file" else line)
    # pFiles=20, pt=(0, 0), fNC=0, fWide=1
    header = struct.pack("<IiiII", 20, 0, 0, 0, 1)
    return header + ("\0".join(paths) + "\0\0").encode("utf-16le")
