"""Shared fixtures for malformed and hostile source images."""

import struct
import zlib

import pytest
from PIL import Image


def png_chunk(tag, data):
    return (
        struct.pack(">I", len(data))
        + tag
        + data
        + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)
    )


@pytest.fixture
def oversized_png(tmp_path):
    """Tiny PNG whose header declares 30000x30000 RGB pixels.

    Well past Pillow's decompression bomb limit, so Image.open refuses it.
    """
    path = tmp_path / "oversized.png"
    header = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + png_chunk(b"IHDR", header)
        + png_chunk(b"IDAT", zlib.compress(b"\x00" * 16))
        + png_chunk(b"IEND", b"")
    )
    return path


@pytest.fixture
def truncated_jpeg(tmp_path):
    """Noisy 640x480 JPEG cut off partway through its scan data."""
    full = tmp_path / "full.jpg"
    Image.effect_noise((640, 480), 64).convert('RGB').save(full, 'JPEG', quality=90)
    data = full.read_bytes()

    path = tmp_path / "truncated.jpg"
    path.write_bytes(data[: len(data) * 3 // 4])
    return path
