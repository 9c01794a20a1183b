"""Image processing for img-optimize.

Handles metadata reads, resize decisions, WebP/JPEG/PNG/JPEG XL encoding,
blur placeholder generation and srcset assembly.
"""

import logging
import os
import tempfile
from pathlib import Path

import blurhash
import numpy as np
from PIL import Image

from .models import OriginalInfo, Variant

# Import pillow-jxl-plugin for JPEG XL support
try:
    import pillow_jxl  # noqa: F401 - registers JXL format with Pillow
    JXL_AVAILABLE = True
except ImportError:
    JXL_AVAILABLE = False

logger = logging.getLogger(__name__)

# Pillow codec names
PIL_FORMATS = {
    "webp": "WEBP",
    "jpeg": "JPEG",
    "png": "PNG",
    "jxl": "JXL",
}

# Formats that cannot store an alpha channel
OPAQUE_FORMATS = {"jpeg"}

BLURHASH_FOOTPRINT = 32
BLURHASH_X_COMPONENTS = 4
BLURHASH_Y_COMPONENTS = 3


def read_metadata(input_path: Path) -> OriginalInfo:
    """Read an image header and summarize it.

    Only the header is parsed; pixel data is decoded later by the variant
    and placeholder steps, so a truncated body surfaces there.

    Args:
        input_path: Path to the source image

    Returns:
        OriginalInfo with width, height, lower-case format and byte size

    Raises:
        OSError: If the file is missing, unreadable, not an image, or
            larger than Pillow's decompression bomb limit
    """
    input_path = Path(input_path)

    try:
        with Image.open(input_path) as image:
            width, height = image.size
            fmt = (image.format or "").lower()
    except Image.DecompressionBombError as e:
        raise OSError(str(e)) from e

    return OriginalInfo(
        width=width,
        height=height,
        format=fmt,
        byte_size=input_path.stat().st_size,
    )


def image_dimensions(path: Path) -> tuple[int, int]:
    """Read (width, height) from an encoded file header."""
    with Image.open(path) as image:
        return image.size


def calculate_target_size(
    original_size: tuple[int, int],
    target_width: int | None,
) -> tuple[int, int] | None:
    """Calculate output dimensions for a size table entry.

    Never upscales: a target wider than the source yields None, meaning
    the cell is skipped.

    Args:
        original_size: Original (width, height)
        target_width: Requested width, or None to keep the native size

    Returns:
        Target (width, height) maintaining aspect ratio, or None to skip
    """
    width, height = original_size

    if target_width is None:
        return original_size

    if target_width > width:
        return None

    if target_width == width:
        return original_size

    new_height = max(1, round(height * target_width / width))
    return (target_width, new_height)


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ('RGBA', 'LA', 'PA') or (
        image.mode == 'P' and 'transparency' in image.info
    )


def prepare_for_format(image: Image.Image, fmt: str) -> Image.Image:
    """Convert an image to a mode the target encoder accepts.

    Transparent images headed for an opaque format are composited on a
    white background.

    Args:
        image: Decoded PIL Image
        fmt: Target format name

    Returns:
        Image in RGB or RGBA mode
    """
    if has_alpha(image):
        rgba = image.convert('RGBA')
        if fmt not in OPAQUE_FORMATS:
            return rgba
        # Create white background for transparent images
        background = Image.new('RGB', rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])  # Use alpha channel as mask
        return background

    if image.mode != 'RGB':
        return image.convert('RGB')
    return image


def encode_options(fmt: str, quality: int) -> dict:
    """Pillow save() keyword arguments for a format.

    Args:
        fmt: Target format name
        quality: Quality 1-100

    Returns:
        Keyword arguments including the Pillow format name
    """
    if fmt == "webp":
        return {
            "format": "WEBP",
            "quality": quality,
            "method": 6,  # Slower but better compression
        }
    if fmt == "jpeg":
        return {
            "format": "JPEG",
            "quality": quality,
            "progressive": True,
            "optimize": True,
        }
    if fmt == "png":
        # PNG is lossless; quality has no effect on Pillow's encoder
        return {
            "format": "PNG",
            "optimize": True,
            "compress_level": 9,
        }
    if fmt == "jxl":
        if not JXL_AVAILABLE:
            raise RuntimeError(
                "JPEG XL support not available. Install with: pip install pillow-jxl-plugin"
            )
        return {
            "format": "JXL",
            "quality": quality,
        }
    raise ValueError(f"Unknown output format: {fmt}")


def encode_variant(
    input_path: Path,
    output_path: Path,
    fmt: str,
    target_size: tuple[int, int],
    quality: int,
) -> None:
    """Decode, resize, encode and atomically write one variant.

    The encoded image is written to a temporary file in the destination
    directory and renamed over output_path, so a concurrent reader sees
    either no file or a complete one.

    Args:
        input_path: Source image
        output_path: Deterministic destination path
        fmt: Target format name
        target_size: Output (width, height)
        quality: Quality 1-100
    """
    options = encode_options(fmt, quality)
    output_path = Path(output_path)

    with Image.open(input_path) as source:
        image = prepare_for_format(source, fmt)

        if image.size != target_size:
            image = image.resize(target_size, Image.Resampling.LANCZOS)

        fd, tmp_name = tempfile.mkstemp(
            dir=output_path.parent, prefix=".tmp-", suffix=f".{fmt}"
        )
        os.close(fd)
        try:
            image.save(tmp_name, **options)
            os.replace(tmp_name, output_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def generate_blurhash(
    input_path: Path,
    x_components: int = BLURHASH_X_COMPONENTS,
    y_components: int = BLURHASH_Y_COMPONENTS,
    footprint: int = BLURHASH_FOOTPRINT,
) -> str | None:
    """Generate a blurhash placeholder for progressive loading.

    The source is shrunk to fit a footprint x footprint box (alpha channel
    forced present), its raw RGB samples are extracted and encoded with a
    small component grid.

    Args:
        input_path: Source image
        x_components: Horizontal components
        y_components: Vertical components
        footprint: Maximum side of the sampled thumbnail

    Returns:
        Blurhash string, or None if generation failed
    """
    try:
        with Image.open(input_path) as source:
            thumb = source.convert('RGBA')
            thumb.thumbnail((footprint, footprint), Image.Resampling.BILINEAR)

        pixels = np.asarray(thumb, dtype=np.uint8)[:, :, :3]

        return blurhash.encode(
            pixels,
            components_x=x_components,
            components_y=y_components,
        )
    except Exception as e:
        logger.warning("Blurhash generation error for %s: %s", input_path, e)
        return None


def generate_srcset(variants: list[Variant]) -> dict[str, str]:
    """Generate responsive srcset strings grouped by format.

    Tokens within a format are ordered by ascending width here, whatever
    the order of the incoming list. Equal widths keep their input order.

    Args:
        variants: Produced variants

    Returns:
        Mapping of format to "url 320w, url 768w, ..." strings
    """
    grouped: dict[str, list[Variant]] = {}

    # Group by format
    for variant in variants:
        grouped.setdefault(variant.format, []).append(variant)

    result = {}
    for fmt, group in grouped.items():
        ordered = sorted(group, key=lambda v: v.width)
        result[fmt] = ', '.join(f"{v.url} {v.width}w" for v in ordered)

    return result
