"""Pillow-backed decode/encode used by the optimization pipeline.

Every function here is pure: bytes in, bytes (or a pixel buffer) out.
"""
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from models.errors import DecodeFailure, EncodeFailure
from models.formats import format_for_pil
from models.optimization import RawImage

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 60

# Multi-monitor 8K captures stay well below this.
MAX_PIXELS = 12000 * 12000

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass(frozen=True)
class ImageInfo:
    format: Optional[str]
    width: int
    height: int


def _open(data: bytes) -> Image.Image:
    if not data:
        raise DecodeFailure("empty image payload")
    try:
        return Image.open(io.BytesIO(data))
    except _DECODE_ERRORS as e:
        raise DecodeFailure(f"cannot identify image: {e}") from e


def probe(data: bytes) -> ImageInfo:
    """Read format and dimensions from the header without decoding pixels."""
    image = _open(data)
    width, height = image.size
    if width * height > MAX_PIXELS:
        raise DecodeFailure(f"image too large: {width}x{height}")
    return ImageInfo(format=format_for_pil(image.format), width=width, height=height)


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[3])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def decode(data: bytes) -> RawImage:
    image = _open(data)
    try:
        image.load()
        rgb = _flatten(image)
    except _DECODE_ERRORS as e:
        raise DecodeFailure(f"cannot decode image: {e}") from e
    width, height = rgb.size
    return RawImage(width=width, height=height, mode="RGB", data=rgb.tobytes())


def encode_jpeg(raw: RawImage, quality: int = DEFAULT_QUALITY) -> bytes:
    expected = raw.width * raw.height * raw.channels
    if len(raw.data) != expected:
        raise EncodeFailure(
            f"pixel buffer is {len(raw.data)} bytes, expected {expected} for {raw.width}x{raw.height} {raw.mode}")
    try:
        image = Image.frombytes(raw.mode, (raw.width, raw.height), raw.data)
        if image.mode != "RGB":
            image = image.convert("RGB")
        output = io.BytesIO()
        image.save(output, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError) as e:
        raise EncodeFailure(f"jpeg encode failed: {e}") from e
    return output.getvalue()


class ImageCodec:
    """Codec handle passed to the pipeline; carries the fixed output quality."""

    def __init__(self, quality: int = DEFAULT_QUALITY) -> None:
        if not 1 <= quality <= 95:
            raise ValueError(f"JPEG quality must be within 1..95, got {quality}")
        self.quality = quality

    def probe(self, data: bytes) -> ImageInfo:
        return probe(data)

    def decode(self, data: bytes) -> RawImage:
        return decode(data)

    def encode(self, raw: RawImage) -> bytes:
        encoded = encode_jpeg(raw, self.quality)
        logger.debug("Encoded %dx%d image to %d bytes at quality %d",
                     raw.width, raw.height, len(encoded), self.quality)
        return encoded
