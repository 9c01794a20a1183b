"""Data models for img-optimize.

Contains data classes for the processing configuration, the source image
summary, generated variants and the manifest persisted to the cache.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional


@dataclass(frozen=True)
class SizeSpec:
    """One entry of the size table.

    Attributes:
        width: Target width in pixels, or None to keep the native width
        suffix: Filename suffix for this size (unique within the table)
    """
    width: Optional[int]
    suffix: str


DEFAULT_FORMATS = ("webp", "jpeg")

DEFAULT_SIZES = (
    SizeSpec(320, "sm"),         # Mobile
    SizeSpec(768, "md"),         # Tablet
    SizeSpec(1024, "lg"),        # Desktop
    SizeSpec(1920, "xl"),        # Large screens
    SizeSpec(None, "original"),
)

DEFAULT_QUALITY = {
    "webp": 85,
    "jpeg": 80,
    "png": 90,
    "jxl": 80,
}


@dataclass(frozen=True)
class ProcessingConfig:
    """Immutable configuration for an ImageProcessor.

    Attributes:
        formats: Ordered output encodings, no duplicates
        sizes: Ordered size table
        quality: Sorted (format, quality 1-100) pairs
        upload_dir: Where raw uploads land
        processed_dir: Root of the per-format variant directories
        cache_dir: Where JSON manifests are stored
        delete_original: Whether the HTTP adapter removes the upload afterwards
        url_prefix: Served URL prefix mirroring processed_dir
    """
    formats: tuple[str, ...] = DEFAULT_FORMATS
    sizes: tuple[SizeSpec, ...] = DEFAULT_SIZES
    quality: tuple[tuple[str, int], ...] = tuple(sorted(DEFAULT_QUALITY.items()))
    upload_dir: Path = Path("uploads/original")
    processed_dir: Path = Path("uploads/processed")
    cache_dir: Path = Path("uploads/cache")
    delete_original: bool = False
    url_prefix: str = "/images"

    def quality_for(self, fmt: str) -> int:
        return dict(self.quality).get(fmt, DEFAULT_QUALITY.get(fmt, 80))


@dataclass
class OriginalInfo:
    """Summary of the unmodified source image."""
    width: int
    height: int
    format: str
    byte_size: int


@dataclass
class Variant:
    """One resized and re-encoded derivative of a source image.

    Attributes:
        url: Served URL (/images/{format}/{hash}_{suffix}.{format})
        format: Output encoding
        width: Actual output width read back from disk
        height: Actual output height read back from disk
        byte_size: Output file size in bytes
        suffix: Size suffix the variant was produced for
    """
    url: str
    format: str
    width: int
    height: int
    byte_size: int
    suffix: str


OutcomeStatus = Literal["created", "reused", "skipped", "failed"]


@dataclass
class VariantOutcome:
    """Result of attempting one (size, format) cell."""
    status: OutcomeStatus
    format: str
    suffix: str
    variant: Optional[Variant] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.variant is not None


@dataclass
class ProcessingResult:
    """Manifest returned to callers and persisted to the cache.

    Attributes:
        original: Summary of the source image
        blur_placeholder: Blurhash string, None if generation failed
        variants: Successfully produced variants in configuration order
        srcset: Format name to srcset string, ascending by width
        processing_time_ms: Wall time of the producing call (0 on cache hit)
    """
    original: OriginalInfo
    blur_placeholder: Optional[str] = None
    variants: list[Variant] = field(default_factory=list)
    srcset: dict[str, str] = field(default_factory=dict)
    processing_time_ms: float = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessingResult":
        """Rebuild a manifest from its JSON form.

        Raises:
            KeyError, TypeError: If the document does not have the manifest shape
        """
        return cls(
            original=OriginalInfo(**data["original"]),
            blur_placeholder=data.get("blur_placeholder"),
            variants=[Variant(**v) for v in data.get("variants", [])],
            srcset=dict(data.get("srcset", {})),
            processing_time_ms=data.get("processing_time_ms", 0),
        )
