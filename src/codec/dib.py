"""Conversions between Windows device-independent bitmaps and BMP files.

CF_DIB clipboard data is a BMP file without its 14-byte BITMAPFILEHEADER.
"""
import struct

from models.errors import DecodeFailure

_FILE_HEADER = struct.Struct("<2sIHHI")
_BI_BITFIELDS = 3


def _pixel_offset(dib: bytes) -> int:
    header_size, = struct.unpack_from("<I", dib, 0)
    if header_size < 12 or header_size > len(dib):
        raise DecodeFailure(f"bad DIB header size {header_size}")
    if header_size == 12:
        # BITMAPCOREHEADER: 3-byte RGBTRIPLE palette entries
        bit_count, = struct.unpack_from("<H", dib, 10)
        colors = (1 << bit_count) * 3 if bit_count <= 8 else 0
        return _FILE_HEADER.size + header_size + colors

    bit_count, compression = struct.unpack_from("<HI", dib, 14)
    clr_used = struct.unpack_from("<I", dib, 32)[0] if header_size >= 36 else 0
    masks = 12 if header_size == 40 and compression == _BI_BITFIELDS else 0
    if clr_used:
        colors = clr_used * 4
    elif bit_count <= 8:
        colors = (1 << bit_count) * 4
    else:
        colors = 0
    return _FILE_HEADER.size + header_size + masks + colors


def dib_to_bmp(dib: bytes) -> bytes:
    if len(dib) < 16:
        raise DecodeFailure("DIB payload too short")
    try:
        offset = _pixel_offset(dib)
    except struct.error as e:
        raise DecodeFailure(f"truncated DIB header: {e}") from e
    header = _FILE_HEADER.pack(b"BM", _FILE_HEADER.size + len(dib), 0, 0, offset)
    return header + dib


def bmp_to_dib(bmp: bytes) -> bytes:
    if len(bmp) <= _FILE_HEADER.size or bmp[:2] != b"BM":
        raise ValueError("not a BMP file")
    return bmp[_FILE_HEADER.size:]
