"""Tests for process.py module.

Tests metadata reads, resize decisions, format preparation, encoding,
blurhash generation and srcset assembly.
"""

import pytest
from pathlib import Path
from unittest.mock import patch

import blurhash
from PIL import Image

from img_optimize.models import Variant
from img_optimize.process import (
    read_metadata,
    image_dimensions,
    calculate_target_size,
    prepare_for_format,
    encode_options,
    encode_variant,
    generate_blurhash,
    generate_srcset,
)


@pytest.fixture
def sample_image_path(tmp_path):
    """Create sample PNG image for testing."""
    img_path = tmp_path / "test.png"
    img = Image.new('RGB', (800, 600), color=(255, 0, 0))
    img.save(img_path, 'PNG')
    return img_path


@pytest.fixture
def sample_rgba_image_path(tmp_path):
    """Create sample RGBA image with transparency."""
    img_path = tmp_path / "test_rgba.png"
    img = Image.new('RGBA', (400, 300), color=(0, 255, 0, 128))
    img.save(img_path, 'PNG')
    return img_path


@pytest.fixture
def sample_jpeg_path(tmp_path):
    img_path = tmp_path / "photo.jpg"
    img = Image.new('RGB', (640, 480), color=(10, 120, 200))
    img.save(img_path, 'JPEG', quality=90)
    return img_path


def make_variant(fmt, width, suffix):
    return Variant(
        url=f"/images/{fmt}/abc_{suffix}.{fmt}",
        format=fmt,
        width=width,
        height=width // 2,
        byte_size=100,
        suffix=suffix,
    )


class TestReadMetadata:
    """Tests for read_metadata function."""

    def test_reads_png_metadata(self, sample_image_path):
        """Should report dimensions, format and byte size."""
        info = read_metadata(sample_image_path)

        assert info.width == 800
        assert info.height == 600
        assert info.format == "png"
        assert info.byte_size == sample_image_path.stat().st_size

    def test_reads_jpeg_format(self, sample_jpeg_path):
        """Should lower-case the encoded format name."""
        info = read_metadata(sample_jpeg_path)

        assert info.format == "jpeg"
        assert (info.width, info.height) == (640, 480)

    def test_rejects_non_image(self, tmp_path):
        """Should raise OSError for files that are not images."""
        bogus = tmp_path / "notes.jpg"
        bogus.write_bytes(b"definitely not an image")

        with pytest.raises(OSError):
            read_metadata(bogus)

    def test_reads_header_of_truncated_image(self, truncated_jpeg):
        """Only the header is parsed, so a cut-off body still reports dimensions."""
        info = read_metadata(truncated_jpeg)

        assert (info.width, info.height) == (640, 480)
        assert info.format == "jpeg"

    def test_does_not_decode_pixels(self, sample_jpeg_path):
        with patch('PIL.ImageFile.ImageFile.load', side_effect=AssertionError("decoded")):
            info = read_metadata(sample_jpeg_path)

        assert (info.width, info.height) == (640, 480)

    def test_oversized_image_raises_oserror(self, oversized_png):
        """Pillow's decompression bomb refusal surfaces as OSError."""
        with pytest.raises(OSError, match="decompression bomb"):
            read_metadata(oversized_png)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            read_metadata(tmp_path / "missing.png")


class TestCalculateTargetSize:
    """Tests for calculate_target_size function."""

    def test_none_keeps_native_size(self):
        """A width of None should keep the original dimensions."""
        assert calculate_target_size((2000, 1500), None) == (2000, 1500)

    def test_maintains_aspect_ratio(self):
        """Should scale height proportionally."""
        assert calculate_target_size((2000, 1500), 320) == (320, 240)
        assert calculate_target_size((1920, 1080), 768) == (768, 432)

    def test_never_upscales(self):
        """Should return None when target is wider than the source."""
        assert calculate_target_size((500, 400), 768) is None

    def test_equal_width_is_not_skipped(self):
        """Target equal to the native width should keep the original size."""
        assert calculate_target_size((768, 500), 768) == (768, 500)

    def test_height_at_least_one_pixel(self):
        """Very wide images should not collapse to zero height."""
        assert calculate_target_size((4000, 1), 320) == (320, 1)


class TestPrepareForFormat:
    """Tests for prepare_for_format function."""

    def test_flattens_alpha_for_jpeg(self):
        """Transparent pixels should be composited on white for JPEG."""
        img = Image.new('RGBA', (10, 10), color=(0, 0, 0, 0))

        result = prepare_for_format(img, "jpeg")

        assert result.mode == 'RGB'
        assert result.getpixel((0, 0)) == (255, 255, 255)

    def test_keeps_alpha_for_webp(self):
        """WebP and PNG should keep transparency."""
        img = Image.new('RGBA', (10, 10), color=(0, 0, 0, 0))

        assert prepare_for_format(img, "webp").mode == 'RGBA'
        assert prepare_for_format(img, "png").mode == 'RGBA'

    def test_converts_grayscale_to_rgb(self):
        img = Image.new('L', (10, 10), color=128)

        assert prepare_for_format(img, "webp").mode == 'RGB'

    def test_palette_with_transparency(self):
        """Palette images with a transparent index count as having alpha."""
        img = Image.new('P', (10, 10), color=0)
        img.info['transparency'] = 0

        assert prepare_for_format(img, "png").mode == 'RGBA'
        assert prepare_for_format(img, "jpeg").mode == 'RGB'


class TestEncodeOptions:
    """Tests for encode_options function."""

    def test_webp_uses_high_effort(self):
        opts = encode_options("webp", 85)

        assert opts == {"format": "WEBP", "quality": 85, "method": 6}

    def test_jpeg_is_progressive(self):
        opts = encode_options("jpeg", 80)

        assert opts["progressive"] is True
        assert opts["quality"] == 80

    def test_png_max_compression(self):
        opts = encode_options("png", 90)

        assert opts["compress_level"] == 9
        assert "quality" not in opts

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown output format"):
            encode_options("bmp", 80)


class TestEncodeVariant:
    """Tests for encode_variant function."""

    def test_converts_to_webp(self, sample_image_path, tmp_path):
        """Should write a valid WebP file."""
        out = tmp_path / "out.webp"

        encode_variant(sample_image_path, out, "webp", (320, 240), 85)

        data = out.read_bytes()
        assert data[:4] == b'RIFF'
        assert b'WEBP' in data[:12]
        assert image_dimensions(out) == (320, 240)

    def test_encodes_rgba_as_jpeg(self, sample_rgba_image_path, tmp_path):
        """Should handle transparent sources for opaque formats."""
        out = tmp_path / "out.jpeg"

        encode_variant(sample_rgba_image_path, out, "jpeg", (400, 300), 80)

        with Image.open(out) as img:
            assert img.format == 'JPEG'
            assert img.size == (400, 300)

    def test_encodes_png(self, sample_image_path, tmp_path):
        out = tmp_path / "out.png"

        encode_variant(sample_image_path, out, "png", (800, 600), 90)

        with Image.open(out) as img:
            assert img.format == 'PNG'

    def test_leaves_no_temp_files_on_failure(self, sample_image_path, tmp_path):
        """A failed save should not leave partial files behind."""
        out_dir = tmp_path / "variants"
        out_dir.mkdir()

        with patch('PIL.Image.Image.save', side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                encode_variant(sample_image_path, out_dir / "out.webp", "webp", (320, 240), 85)

        assert list(out_dir.iterdir()) == []

    def test_respects_quality_setting(self, tmp_path):
        """Higher quality should produce a larger file."""
        src = tmp_path / "noise.png"
        Image.effect_noise((256, 256), 64).convert('RGB').save(src)

        low = tmp_path / "low.jpeg"
        high = tmp_path / "high.jpeg"
        encode_variant(src, low, "jpeg", (256, 256), 20)
        encode_variant(src, high, "jpeg", (256, 256), 95)

        assert high.stat().st_size > low.stat().st_size


class TestGenerateBlurhash:
    """Tests for generate_blurhash function."""

    def test_returns_hash_string(self, sample_image_path):
        """Should produce a 4x3 component blurhash."""
        result = generate_blurhash(sample_image_path)

        assert isinstance(result, str)
        # 1 size flag + 1 max AC + 4 DC + 2 per AC component
        assert len(result) == 28

    def test_handles_transparency(self, sample_rgba_image_path):
        assert generate_blurhash(sample_rgba_image_path)

    def test_returns_none_on_failure(self, tmp_path):
        """Unreadable input should yield None instead of raising."""
        bogus = tmp_path / "bogus.png"
        bogus.write_bytes(b"nope")

        assert generate_blurhash(bogus) is None

    def test_returns_none_when_encoder_fails(self, sample_image_path):
        with patch('img_optimize.process.blurhash.encode', side_effect=ValueError("boom")):
            assert generate_blurhash(sample_image_path) is None

    def test_decodes_to_source_color(self, sample_image_path):
        """The placeholder should approximate the source colours."""
        result = generate_blurhash(sample_image_path)

        pixels = blurhash.decode(result, 4, 4)
        r, g, b = pixels[0][0][:3]
        assert r > 200 and g < 60 and b < 60


class TestGenerateSrcset:
    """Tests for generate_srcset function."""

    def test_groups_by_format(self):
        variants = [
            make_variant("webp", 320, "sm"),
            make_variant("jpeg", 320, "sm"),
            make_variant("webp", 768, "md"),
            make_variant("jpeg", 768, "md"),
        ]

        result = generate_srcset(variants)

        assert result == {
            "webp": "/images/webp/abc_sm.webp 320w, /images/webp/abc_md.webp 768w",
            "jpeg": "/images/jpeg/abc_sm.jpeg 320w, /images/jpeg/abc_md.jpeg 768w",
        }

    def test_sorts_by_ascending_width(self):
        """Out-of-order input should still produce ascending tokens."""
        variants = [
            make_variant("webp", 1024, "lg"),
            make_variant("webp", 320, "sm"),
            make_variant("webp", 768, "md"),
        ]

        tokens = generate_srcset(variants)["webp"].split(", ")
        widths = [int(t.rsplit(" ", 1)[1].rstrip("w")) for t in tokens]

        assert widths == [320, 768, 1024]

    def test_empty_list(self):
        assert generate_srcset([]) == {}
