from __future__ import annotations
import gzip
import zlib

from .errors import DecodeError


def decode_frame(data: bytes, is_compressed: bool) -> bytes:
    """Return frame bytes ready for the detector (gunzipped when compressed)."""
    if not is_compressed:
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise DecodeError(f'Malformed compressed frame ({len(data)} bytes): {e}') from e


def compress_frame(data: bytes, level: int = 6) -> bytes:
    return gzip.compress(data, compresslevel=level)
