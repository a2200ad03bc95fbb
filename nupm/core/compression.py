"""
Compression utilities for feed responses

Package feeds may answer with compressed bodies, announced through the
Content-Encoding header or only recognizable from their magic bytes:
- zstd
- gzip / deflate
"""

import gzip
import zlib
from typing import Optional

import zstandard as zstd

# Magic bytes for format detection
MAGIC_ZSTD = b'\x28\xb5\x2f\xfd'
MAGIC_GZIP = b'\x1f\x8b'

# Header value for each format
ENCODINGS = {
    'zstd': 'zstd',
    'gzip': 'gzip',
    'x-gzip': 'gzip',
    'deflate': 'deflate',
    'identity': 'plain',
}

# Advertised in Accept-Encoding on feed requests
ACCEPT_ENCODING = 'zstd, gzip, deflate'


def detect_format(data: bytes) -> str:
    """Detect compression format from magic bytes.

    Args:
        data: First bytes of the body

    Returns:
        Format name: 'zstd', 'gzip' or 'plain'
    """
    if data[:4] == MAGIC_ZSTD:
        return 'zstd'
    elif data[:2] == MAGIC_GZIP:
        return 'gzip'
    else:
        return 'plain'


def decompress_bytes(data: bytes, content_encoding: Optional[str] = None) -> bytes:
    """Decompress a response body.

    The Content-Encoding header wins when it names a known format; otherwise
    the format is sniffed from the body.

    Args:
        data: Raw body
        content_encoding: Value of the Content-Encoding header, if any

    Returns:
        Decompressed bytes

    Raises:
        ValueError: If decompression fails
    """
    fmt = None
    if content_encoding:
        fmt = ENCODINGS.get(content_encoding.strip().lower())
    if fmt is None or fmt == 'plain':
        fmt = detect_format(data)

    try:
        if fmt == 'zstd':
            dctx = zstd.ZstdDecompressor()
            # Streaming decode: frames from servers often omit the content size
            with dctx.stream_reader(data) as reader:
                return reader.read()
        elif fmt == 'gzip':
            return gzip.decompress(data)
        elif fmt == 'deflate':
            try:
                return zlib.decompress(data)
            except zlib.error:
                # Raw deflate stream without zlib header
                return zlib.decompress(data, -zlib.MAX_WBITS)
        else:
            return data
    except (zstd.ZstdError, OSError, EOFError, zlib.error) as e:
        raise ValueError(f"Failed to decompress {fmt} body: {e}") from e


def decompress_text(data: bytes, content_encoding: Optional[str] = None,
                    encoding: str = 'utf-8') -> str:
    """Decompress a response body and decode it as text."""
    return decompress_bytes(data, content_encoding).decode(encoding, errors='replace')
