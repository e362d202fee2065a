"""Clipboard format identifiers shared by the adapters and the pipeline.

Formats are named by MIME type on every platform; each adapter maps them to its
native identifiers (CF_DIB, NSPasteboardTypePNG, X11 targets, ...).
"""
from pathlib import Path
from typing import Optional

PNG = "image/png"
JPEG = "image/jpeg"
BMP = "image/bmp"
TIFF = "image/tiff"
WEBP = "image/webp"
GIF = "image/gif"

FILE_LIST = "text/uri-list"
TEXT = "text/plain"

# Preference order when a snapshot carries several image renditions: encoded
# formats first since they are what the copying application actually produced.
IMAGE_FORMATS = (PNG, JPEG, WEBP, TIFF, GIF, BMP)

ALL_FORMATS = IMAGE_FORMATS + (FILE_LIST, TEXT)

_EXTENSIONS = {
    ".png": PNG,
    ".jpg": JPEG,
    ".jpeg": JPEG,
    ".bmp": BMP,
    ".tif": TIFF,
    ".tiff": TIFF,
    ".webp": WEBP,
}

_PIL_FORMATS = {
    "PNG": PNG,
    "JPEG": JPEG,
    "MPO": JPEG,
    "BMP": BMP,
    "DIB": BMP,
    "TIFF": TIFF,
    "WEBP": WEBP,
    "GIF": GIF,
}


def is_image(fmt: str) -> bool:
    return fmt in IMAGE_FORMATS


def format_for_path(path: Path) -> Optional[str]:
    return _EXTENSIONS.get(path.suffix.lower())


def format_for_pil(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return _PIL_FORMATS.get(name.upper())
