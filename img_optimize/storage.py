"""Storage utilities for img-optimize.

Handles content hash calculation, cache keys, deterministic variant
naming and directory layout.
"""

import hashlib
import json
from pathlib import Path
from typing import Any

from .models import ProcessingConfig


def calculate_hash(data: bytes) -> str:
    """Calculate the SHA-256 content hash.

    Args:
        data: File content as bytes

    Returns:
        Hex-encoded SHA-256 digest
    """
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path, chunk_size: int = 1 << 20) -> str:
    """Hash a file's raw bytes without loading it at once.

    Produces the same digest as calculate_hash over the full content.
    """
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


def build_cache_key(content_hash: str, options: dict[str, Any] | None = None) -> str:
    """Build the manifest cache key for a content hash and options bag.

    Options are serialized canonically (sorted keys) so that two equal
    bags always produce the same key.

    Args:
        content_hash: Hash of the source bytes
        options: Opaque per-call options

    Returns:
        Hex-encoded SHA-256 of the hash and serialized options
    """
    serialized = json.dumps(options or {}, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(f"{content_hash}:{serialized}".encode('utf-8')).hexdigest()


def variant_filename(content_hash: str, suffix: str, fmt: str) -> str:
    """Generate the variant filename, e.g. 3f9a..._sm.webp"""
    return f"{content_hash}_{suffix}.{fmt}"


def variant_path(processed_dir: Path, content_hash: str, suffix: str, fmt: str) -> Path:
    """Build the deterministic on-disk path for a variant.

    Returns:
        processed_dir/{fmt}/{hash}_{suffix}.{fmt}
    """
    return Path(processed_dir) / fmt / variant_filename(content_hash, suffix, fmt)


def variant_url(content_hash: str, suffix: str, fmt: str, prefix: str = "/images") -> str:
    """Build the served URL for a variant.

    The part after the prefix mirrors processed_dir's layout exactly.
    """
    return f"{prefix}/{fmt}/{variant_filename(content_hash, suffix, fmt)}"


def ensure_directories(config: ProcessingConfig) -> list[Path]:
    """Create every directory the processor writes to.

    Args:
        config: Processing configuration

    Returns:
        List of directories (all exist afterwards)
    """
    dirs = [
        Path(config.upload_dir),
        Path(config.processed_dir),
        Path(config.cache_dir),
    ]
    dirs.extend(Path(config.processed_dir) / fmt for fmt in config.formats)

    for directory in dirs:
        directory.mkdir(parents=True, exist_ok=True)

    return dirs
