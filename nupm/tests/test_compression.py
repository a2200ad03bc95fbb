"""Tests for response decompression"""

import gzip
import zlib

import pytest
import zstandard as zstd

from nupm.core.compression import decompress_bytes, decompress_text, detect_format

BODY = b'{"version": "3.0.0", "resources": []}' * 20


class TestDetectFormat:
    """Tests for magic byte detection."""

    def test_formats(self):
        assert detect_format(zstd.ZstdCompressor().compress(BODY)) == 'zstd'
        assert detect_format(gzip.compress(BODY)) == 'gzip'
        assert detect_format(BODY) == 'plain'
        assert detect_format(b'') == 'plain'


class TestDecompress:
    """Tests for decompress_bytes."""

    def test_sniffed_zstd(self):
        assert decompress_bytes(zstd.ZstdCompressor().compress(BODY)) == BODY

    def test_sniffed_gzip(self):
        assert decompress_bytes(gzip.compress(BODY)) == BODY

    def test_header_deflate(self):
        assert decompress_bytes(zlib.compress(BODY), 'deflate') == BODY

    def test_raw_deflate(self):
        compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
        raw = compressor.compress(BODY) + compressor.flush()
        assert decompress_bytes(raw, 'Deflate') == BODY

    def test_identity_header_still_sniffs(self):
        assert decompress_bytes(gzip.compress(BODY), 'identity') == BODY

    def test_plain_passthrough(self):
        assert decompress_bytes(BODY) == BODY
        assert decompress_bytes(BODY, 'br') == BODY

    def test_corrupt(self):
        with pytest.raises(ValueError):
            decompress_bytes(b'\x1f\x8bnot really gzip')
        with pytest.raises(ValueError):
            decompress_bytes(b'junk', 'gzip')

    def test_text(self):
        assert decompress_text(gzip.compress("héllo".encode())) == "héllo"
