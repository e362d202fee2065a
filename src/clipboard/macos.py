import logging
from typing import Dict, Iterable, Mapping

try:
    from AppKit import (NSPasteboard, NSPasteboardTypeFileURL, NSPasteboardTypePNG,
                        NSPasteboardTypeString, NSPasteboardTypeTIFF)
    from Foundation import NSURL, NSData
    HAS_APPKIT = True
except ImportError:
    HAS_APPKIT = False

from clipboard.base import ClipboardAdapter
from models.errors import ClipboardUnavailable, WriteFailure
from models.formats import BMP, FILE_LIST, GIF, JPEG, PNG, TEXT, TIFF, WEBP

logger = logging.getLogger(__name__)

# Uniform type identifiers for formats AppKit has no constant for.
_UTIS = {
    JPEG: "public.jpeg",
    BMP: "com.microsoft.bmp",
    WEBP: "org.webmproject.webp",
    GIF: "com.compuserve.gif",
}


class MacOSClipboard(ClipboardAdapter):

    def __init__(self, poll_interval: float = 0.25) -> None:
        super().__init__(poll_interval=poll_interval)
        if not HAS_APPKIT:
            raise ClipboardUnavailable("pyobjc AppKit bindings are not installed")
        self._types = dict(_UTIS)
        self._types.update({
            PNG: NSPasteboardTypePNG,
            TIFF: NSPasteboardTypeTIFF,
            TEXT: NSPasteboardTypeString,
            FILE_LIST: NSPasteboardTypeFileURL,
        })

    @staticmethod
    def _pasteboard():
        return NSPasteboard.generalPasteboard()

    def sequence_id(self) -> int:
        return int(self._pasteboard().changeCount())

    def _read_formats(self, formats: Iterable[str]) -> Dict[str, bytes]:
        pasteboard = self._pasteboard()
        available = set(pasteboard.types() or ())
        result: Dict[str, bytes] = {}
        for fmt in formats:
            pb_type = self._types.get(fmt)
            if pb_type is None or pb_type not in available:
                continue
            if fmt == FILE_LIST:
                data = self._read_file_urls(pasteboard)
            elif fmt == TEXT:
                text = pasteboard.stringForType_(pb_type)
                data = text.encode("utf-8") if text else None
            else:
                raw = pasteboard.dataForType_(pb_type)
                data = bytes(raw) if raw else None
            if data:
                result[fmt] = data
        return result

    @staticmethod
    def _read_file_urls(pasteboard):
        urls = pasteboard.readObjectsForClasses_options_([NSURL], None) or []
        uris = [str(url.absoluteString()) for url in urls if url.isFileURL()]
        return "\r\n".join(uris).encode("utf-8") if uris else None

    def _write_formats(self, payloads: Mapping[str, bytes]) -> None:
        pasteboard = self._pasteboard()
        pasteboard.clearContents()
        written = 0
        for fmt, data in payloads.items():
            pb_type = self._types.get(fmt)
            if pb_type is None:
                continue
            if fmt == FILE_LIST:
                urls = [NSURL.URLWithString_(line.strip())
                        for line in data.decode("utf-8", errors="ignore").splitlines() if line.strip()]
                ok = pasteboard.writeObjects_([url for url in urls if url is not None])
            elif fmt == TEXT:
                ok = pasteboard.setString_forType_(data.decode("utf-8", errors="ignore"), pb_type)
            else:
                ok = pasteboard.setData_forType_(NSData.dataWithBytes_length_(data, len(data)), pb_type)
            if ok:
                written += 1
            else:
                logger.debug("Pasteboard refused %s", fmt)
        if not written:
            raise WriteFailure(f"pasteboard accepted none of {sorted(payloads)}")
