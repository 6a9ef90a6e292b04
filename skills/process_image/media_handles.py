"""
Local media handles - files the wizard writes for display and playback.

A handle is a path string inside MEDIA_DIR. Anything else (data URLs,
https URLs) is not a handle and is never deleted.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from config import MEDIA_DIR

logger = logging.getLogger(__name__)


def create_media_handle(data: bytes, suffix: str, media_dir: Path = None, prefix: str = "memory") -> str:
    """Write bytes to a fresh file in the media dir and return its path."""
    media_dir = Path(media_dir or MEDIA_DIR)
    media_dir.mkdir(parents=True, exist_ok=True)
    path = media_dir / f"{prefix}_{uuid.uuid4().hex[:8]}{suffix}"
    path.write_bytes(data)
    logger.debug(f"[Media] Allocated {path.name} ({len(data)} bytes)")
    return str(path)


def is_media_handle(url: Optional[str], media_dir: Path = None) -> bool:
    if not url or "://" in url or url.startswith("data:"):
        return False
    media_dir = Path(media_dir or MEDIA_DIR).resolve()
    return Path(url).resolve().parent == media_dir


def release_media_handle(url: Optional[str], media_dir: Path = None) -> bool:
    """Delete a handle's file. Returns True if something was removed."""
    if not is_media_handle(url, media_dir):
        return False
    path = Path(url)
    if path.exists():
        path.unlink()
        logger.debug(f"[Media] Released {path.name}")
        return True
    return False
