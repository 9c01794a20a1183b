"""Configuration management for img-optimize.

Handles loading the settings file, validating it, and reducing it once
into the immutable ProcessingConfig used by the processor.
"""

import json
import re
from pathlib import Path
from typing import Any

from .models import DEFAULT_QUALITY, ProcessingConfig, SizeSpec
from .process import JXL_AVAILABLE


SUPPORTED_FORMATS = ("webp", "jpeg", "png", "jxl")

QUALITY_KEYS = {
    "webp": "webp_quality",
    "jpeg": "jpeg_quality",
    "png": "png_quality",
    "jxl": "jxl_quality",
}

PATH_KEYS = ("upload_dir", "processed_dir", "cache_dir")

KNOWN_KEYS = {
    "formats", "sizes", "delete_original", "url_prefix",
    *QUALITY_KEYS.values(), *PATH_KEYS,
}

SUFFIX_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def get_config_dir() -> Path:
    """Get the user config directory.

    Returns:
        Path to config directory (~/.config/img-optimize/)
    """
    return Path.home() / ".config" / "img-optimize"


def load_settings(settings_path: Path | None = None) -> dict[str, Any]:
    """Load the JSON settings file.

    Searches in the following order:
    1. Explicit path if provided (must exist)
    2. ~/.config/img-optimize/config.json
    3. ./img-optimize.json (current directory)

    A missing file in the standard locations means "use the defaults".

    Args:
        settings_path: Optional explicit path to a settings file

    Returns:
        Dictionary of settings (empty when no file was found)

    Raises:
        ConfigError: If an explicit path is missing or any file is invalid JSON
    """
    if settings_path is not None:
        if not settings_path.exists():
            raise ConfigError(f"Settings file not found at {settings_path}")
        found_path = settings_path
    else:
        config_path = get_config_dir() / "config.json"
        local_path = Path("img-optimize.json")

        if config_path.exists():
            found_path = config_path
        elif local_path.exists():
            found_path = local_path
        else:
            return {}

    try:
        with open(found_path) as f:
            settings = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {found_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read {found_path}: {e}")

    if not isinstance(settings, dict):
        raise ConfigError(f"Settings in {found_path} must be a JSON object")

    return settings


def _parse_sizes(raw: Any) -> tuple[SizeSpec, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ConfigError("sizes must be a non-empty list")

    sizes = []
    for entry in raw:
        if isinstance(entry, SizeSpec):
            sizes.append(entry)
        elif isinstance(entry, dict):
            if "suffix" not in entry:
                raise ConfigError(f"Size entry missing suffix: {entry}")
            sizes.append(SizeSpec(width=entry.get("width"), suffix=entry["suffix"]))
        else:
            raise ConfigError(f"Invalid size entry: {entry!r}")
    return tuple(sizes)


def validate_config(settings: dict[str, Any]) -> None:
    """Validate settings without building a config.

    Args:
        settings: Dictionary of settings (file contents merged with overrides)

    Raises:
        ConfigError: If any value is out of range or inconsistent
    """
    unknown = set(settings) - KNOWN_KEYS
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")

    if "formats" in settings:
        formats = settings["formats"]
        if not isinstance(formats, (list, tuple)) or not formats:
            raise ConfigError("formats must be a non-empty list")
        for fmt in formats:
            if fmt not in SUPPORTED_FORMATS:
                raise ConfigError(f"Unsupported format: {fmt}")
            if fmt == "jxl" and not JXL_AVAILABLE:
                raise ConfigError(
                    "JPEG XL support not available. Install with: pip install pillow-jxl-plugin"
                )
        if len(set(formats)) != len(formats):
            raise ConfigError("formats must not contain duplicates")

    if "sizes" in settings:
        sizes = _parse_sizes(settings["sizes"])
        seen = set()
        for size in sizes:
            if size.width is not None:
                if isinstance(size.width, bool) or not isinstance(size.width, int) or size.width <= 0:
                    raise ConfigError(f"Size width must be a positive integer: {size.width!r}")
            if not isinstance(size.suffix, str) or not SUFFIX_PATTERN.match(size.suffix):
                raise ConfigError(f"Invalid size suffix: {size.suffix!r}")
            if size.suffix in seen:
                raise ConfigError(f"Duplicate size suffix: {size.suffix}")
            seen.add(size.suffix)

    if "url_prefix" in settings and not isinstance(settings["url_prefix"], str):
        raise ConfigError("url_prefix must be a string")

    if "delete_original" in settings and not isinstance(settings["delete_original"], bool):
        raise ConfigError("delete_original must be true or false")

    for key in QUALITY_KEYS.values():
        if key in settings:
            value = settings[key]
            if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 100:
                raise ConfigError(f"{key} must be an integer between 1 and 100")


def build_config(settings: dict[str, Any] | None = None, **overrides: Any) -> ProcessingConfig:
    """Merge settings and overrides over the defaults.

    Args:
        settings: Dictionary loaded from the settings file
        **overrides: Values taking precedence over the file (e.g. CLI flags)

    Returns:
        Validated ProcessingConfig

    Raises:
        ConfigError: If the merged settings are invalid
    """
    merged = dict(settings or {})
    merged.update({k: v for k, v in overrides.items() if v is not None})

    validate_config(merged)

    defaults = ProcessingConfig()

    quality = dict(DEFAULT_QUALITY)
    for fmt, key in QUALITY_KEYS.items():
        if key in merged:
            quality[fmt] = merged[key]

    return ProcessingConfig(
        formats=tuple(merged.get("formats", defaults.formats)),
        sizes=_parse_sizes(merged["sizes"]) if "sizes" in merged else defaults.sizes,
        quality=tuple(sorted(quality.items())),
        upload_dir=Path(merged.get("upload_dir", defaults.upload_dir)),
        processed_dir=Path(merged.get("processed_dir", defaults.processed_dir)),
        cache_dir=Path(merged.get("cache_dir", defaults.cache_dir)),
        delete_original=bool(merged.get("delete_original", defaults.delete_original)),
        url_prefix=merged.get("url_prefix", defaults.url_prefix).rstrip("/"),
    )
