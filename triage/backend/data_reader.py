"""JSON file loading with mtime-based caching."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ── mtime cache ──
_cache: dict[tuple, dict[str, Any]] = {}


def _read_with_cache(path: Path, parser, key: tuple):
    """Return cached data if file mtime hasn't changed, else re-parse."""
    try:
        mtime = os.path.getmtime(path)
    except OSError:
        logger.warning("File not found: %s", path)
        return None, f"File not found: {path}"

    cached = _cache.get(key)
    if cached and cached["mtime"] == mtime:
        return cached["data"], None

    try:
        data = parser(path)
        _cache[key] = {"mtime": mtime, "data": data}
        return data, None
    except Exception as e:
        logger.exception("Error reading %s", path)
        # Return last cached data if available
        if cached:
            return cached["data"], f"Using stale cache: {e}"
        return None, str(e)


def clear_cache() -> None:
    _cache.clear()


def load_json(path: Path, parser=None) -> tuple[Any, str | None]:
    """Load a JSON file, optionally post-processed by *parser*. Returns (data, error)."""
    def _parse(p):
        with open(p, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return parser(raw) if parser else raw
    # Raw and parsed views of the same file are cached separately.
    return _read_with_cache(path, _parse, (str(path), parser))


def get_file_info(path: Path) -> dict:
    """Return mtime and existence info for health checks."""
    try:
        stat = os.stat(path)
        return {
            "exists": True,
            "mtime": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            "size_bytes": stat.st_size,
        }
    except OSError:
        return {"exists": False, "mtime": None, "size_bytes": 0}
