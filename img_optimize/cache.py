"""Manifest cache for img-optimize.

Each processed (content hash, options) pair is stored as one JSON file
under the cache directory. Entries are never updated in place; the age
based sweep removes them and they are regenerated on next demand.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# 30 days
DEFAULT_MAX_AGE_SECONDS = 30 * 24 * 60 * 60


def cache_path(cache_dir: Path, key: str) -> Path:
    return Path(cache_dir) / f"{key}.json"


def check_cache(cache_dir: Path, key: str) -> dict[str, Any] | None:
    """Load a cached manifest.

    Args:
        cache_dir: Cache directory
        key: Cache key

    Returns:
        Parsed manifest, or None if missing or unreadable
    """
    path = cache_path(cache_dir, key)

    if not path.exists():
        return None

    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable cache entry %s: %s", path.name, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring malformed cache entry %s", path.name)
        return None

    return data


def save_to_cache(cache_dir: Path, key: str, data: dict[str, Any]) -> bool:
    """Persist a manifest to the cache.

    The file is written to a temporary name first and renamed into place,
    so readers never see a partial document. Failures are logged only.

    Args:
        cache_dir: Cache directory
        key: Cache key
        data: JSON-serializable manifest

    Returns:
        True if the entry was written
    """
    path = cache_path(cache_dir, key)
    tmp_name = None

    try:
        fd, tmp_name = tempfile.mkstemp(dir=cache_dir, prefix=".tmp-", suffix=".json")
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f)
        os.replace(tmp_name, path)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Cache save error for %s: %s", key, e)
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        return False


def cleanup_cache(
    cache_dir: Path,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    now: float | None = None,
) -> list[Path]:
    """Delete cache entries older than max_age_seconds.

    A failure on one file is logged and the sweep continues.

    Args:
        cache_dir: Cache directory
        max_age_seconds: Maximum age by modification time
        now: Reference timestamp (defaults to time.time())

    Returns:
        List of deleted paths
    """
    cache_dir = Path(cache_dir)
    if now is None:
        now = time.time()

    if not cache_dir.is_dir():
        return []

    deleted = []
    for path in sorted(cache_dir.iterdir()):
        try:
            if not path.is_file():
                continue
            if now - path.stat().st_mtime > max_age_seconds:
                path.unlink()
                deleted.append(path)
                logger.info("Deleted old cache file: %s", path.name)
        except OSError as e:
            logger.warning("Could not remove cache file %s: %s", path.name, e)

    return deleted
