from codec.dib import bmp_to_dib, dib_to_bmp
from codec.image_codec import (
    DEFAULT_QUALITY,
    ImageCodec,
    ImageInfo,
    decode,
    encode_jpeg,
    probe,
)

__all__ = [
    'DEFAULT_QUALITY',
    'ImageCodec',
    'ImageInfo',
    'bmp_to_dib',
    'decode',
    'dib_to_bmp',
    'encode_jpeg',
    'probe',
]
