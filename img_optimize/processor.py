"""Image processor for img-optimize.

Turns one uploaded image into a set of resized, re-encoded variants plus
a blur placeholder and srcset strings. Work is content addressed at two
levels: the JSON manifest cache keyed by (content hash, options), and the
variant files themselves, whose paths depend only on the content hash,
size suffix and format.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from . import cache, process
from .config import build_config
from .models import (
    ProcessingConfig,
    ProcessingResult,
    SizeSpec,
    Variant,
    VariantOutcome,
)
from .storage import build_cache_key, ensure_directories, hash_file, variant_path, variant_url

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Raised when the source image cannot be read or decoded."""

    def __init__(self, input_path: Path, message: str):
        super().__init__(f"Failed to process image {input_path}: {message}")
        self.input_path = Path(input_path)


class ImageProcessor:
    """Generate optimized variants of uploaded images.

    Args:
        config: Processing configuration (defaults when omitted)
        **overrides: Settings merged over the defaults via build_config
    """

    def __init__(self, config: ProcessingConfig | None = None, **overrides: Any):
        if config is None:
            config = build_config(**overrides)
        elif overrides:
            raise TypeError("Pass either a ProcessingConfig or keyword overrides, not both")

        self.config = config

        # Coalesces concurrent requests for the same cache key
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

        ensure_directories(self.config)

    def process_image(
        self,
        input_path: Path,
        options: dict[str, Any] | None = None,
    ) -> ProcessingResult:
        """Process an uploaded image and generate optimized versions.

        Args:
            input_path: Path to a readable image file
            options: Opaque options bag, only used to differentiate cache keys

        Returns:
            ProcessingResult manifest (stored manifest on a cache hit)

        Raises:
            ProcessingError: If the source cannot be read or decoded
        """
        input_path = Path(input_path)
        start_time = time.perf_counter()

        try:
            original = process.read_metadata(input_path)
            content_hash = hash_file(input_path)
        except (OSError, ValueError) as e:
            logger.error("Image processing error for %s: %s", input_path, e)
            raise ProcessingError(input_path, str(e)) from e

        cache_key = build_cache_key(content_hash, options)

        with self._coalesce(cache_key):
            cached = self.check_cache(cache_key)
            if cached is not None:
                logger.info("Image served from cache: %s", cache_key)
                return cached

            blur_placeholder = self.generate_blurhash(input_path)

            variants = []
            for size in self.config.sizes:
                for fmt in self.config.formats:
                    outcome = self.create_variant(
                        input_path,
                        fmt,
                        size,
                        content_hash,
                        source_size=(original.width, original.height),
                    )
                    if outcome.ok:
                        variants.append(outcome.variant)

            result = ProcessingResult(
                original=original,
                blur_placeholder=blur_placeholder,
                variants=variants,
                srcset=self.generate_srcset(variants),
            )

            self.save_to_cache(cache_key, result.to_dict())

        result.processing_time_ms = round((time.perf_counter() - start_time) * 1000, 3)
        logger.info(
            "Image processed in %.1fms (%d variants)",
            result.processing_time_ms,
            len(result.variants),
        )
        return result

    def create_variant(
        self,
        input_path: Path,
        fmt: str,
        size: SizeSpec,
        content_hash: str,
        source_size: tuple[int, int] | None = None,
    ) -> VariantOutcome:
        """Create a single image variant.

        An existing file at the deterministic output path is reused
        without re-encoding.

        Args:
            input_path: Source image
            fmt: Output format
            size: Size table entry
            content_hash: Hash of the source bytes
            source_size: Source (width, height) if already known

        Returns:
            VariantOutcome with status created, reused, skipped or failed
        """
        output_path = variant_path(self.config.processed_dir, content_hash, size.suffix, fmt)
        url = variant_url(content_hash, size.suffix, fmt, self.config.url_prefix)

        try:
            if source_size is None:
                source_size = process.image_dimensions(input_path)

            target_size = process.calculate_target_size(source_size, size.width)
            if target_size is None:
                logger.debug(
                    "Skipping %s/%s: target width %s exceeds source width %s",
                    fmt, size.suffix, size.width, source_size[0],
                )
                return VariantOutcome(
                    status="skipped",
                    format=fmt,
                    suffix=size.suffix,
                    reason=f"target width {size.width} exceeds source width {source_size[0]}",
                )

            if output_path.exists():
                try:
                    variant = self._describe(output_path, url, fmt, size.suffix)
                    return VariantOutcome("reused", fmt, size.suffix, variant=variant)
                except OSError as e:
                    logger.warning("Re-encoding unreadable variant %s: %s", output_path, e)

            process.encode_variant(
                input_path,
                output_path,
                fmt,
                target_size,
                self.config.quality_for(fmt),
            )
            variant = self._describe(output_path, url, fmt, size.suffix)
            return VariantOutcome("created", fmt, size.suffix, variant=variant)

        except Exception as e:
            logger.warning("Error creating variant %s/%s: %s", fmt, size.suffix, e)
            return VariantOutcome("failed", fmt, size.suffix, reason=str(e))

    def generate_blurhash(self, input_path: Path) -> str | None:
        return process.generate_blurhash(input_path)

    def generate_srcset(self, variants: list[Variant]) -> dict[str, str]:
        return process.generate_srcset(variants)

    def check_cache(self, key: str) -> ProcessingResult | None:
        """Look up a manifest; malformed entries count as a miss."""
        data = cache.check_cache(self.config.cache_dir, key)
        if data is None:
            return None

        try:
            return ProcessingResult.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning("Ignoring malformed cache entry %s: %s", key, e)
            return None

    def save_to_cache(self, key: str, data: dict[str, Any]) -> bool:
        return cache.save_to_cache(self.config.cache_dir, key, data)

    def cleanup_cache(
        self,
        max_age_seconds: float = cache.DEFAULT_MAX_AGE_SECONDS,
    ) -> list[Path]:
        """Delete cached manifests older than max_age_seconds."""
        return cache.cleanup_cache(self.config.cache_dir, max_age_seconds)

    def _describe(self, path: Path, url: str, fmt: str, suffix: str) -> Variant:
        width, height = process.image_dimensions(path)
        return Variant(
            url=url,
            format=fmt,
            width=width,
            height=height,
            byte_size=path.stat().st_size,
            suffix=suffix,
        )

    @contextmanager
    def _coalesce(self, key: str) -> Iterator[None]:
        with self._key_locks_guard:
            lock = self._key_locks.setdefault(key, threading.Lock())
        try:
            with lock:
                yield
        finally:
            with self._key_locks_guard:
                if not lock.locked():
                    self._key_locks.pop(key, None)


def batch_process(
    processor: ImageProcessor,
    paths: list[Path],
    options: dict[str, Any] | None = None,
    max_workers: int = 4,
    on_complete: Callable[[Path, ProcessingResult | Exception], None] | None = None,
) -> dict[Path, ProcessingResult | Exception]:
    """Process several images in parallel.

    A failing file does not stop the others; its ProcessingError is
    returned in place of a result.

    Args:
        processor: Processor to use
        paths: Source images
        options: Options bag applied to every file
        max_workers: Maximum parallel workers
        on_complete: Called with (path, result or error) as each file finishes

    Returns:
        Dictionary mapping each path to its result or error
    """
    results: dict[Path, ProcessingResult | Exception] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(processor.process_image, Path(path), options): Path(path)
            for path in paths
        }

        for future in as_completed(futures):
            path = futures[future]
            try:
                outcome = future.result()
            except ProcessingError as e:
                outcome = e
            results[path] = outcome
            if on_complete:
                on_complete(path, outcome)

    return results
