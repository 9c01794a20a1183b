"""img-optimize - responsive image variants with content-addressed caching.

Decodes an uploaded image, derives a blurhash placeholder, fans out into
resized WebP/JPEG/PNG variants and builds srcset strings, reusing earlier
work through a JSON manifest cache and deterministic output paths.
"""

__version__ = "0.1.0"

from .config import ConfigError, build_config
from .models import ProcessingConfig, ProcessingResult, SizeSpec, Variant, VariantOutcome
from .processor import ImageProcessor, ProcessingError, batch_process

__all__ = [
    "__version__",
    "ConfigError",
    "build_config",
    "ImageProcessor",
    "ProcessingError",
    "batch_process",
    "ProcessingConfig",
    "ProcessingResult",
    "SizeSpec",
    "Variant",
    "VariantOutcome",
]
