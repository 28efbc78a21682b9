"""Permanent storage for accepted audio files.

Files are stored at ``{audio_storage_root}/audio-files/{stem}-{millis}-{rand}{ext}``.
The database keeps the path relative to the storage root.
"""

import logging
import re
import secrets
import shutil
import time
from pathlib import Path

logger = logging.getLogger(__name__)

STORAGE_SUBDIR = "audio-files"

_UNSAFE_CHARS = re.compile(r"[^\w.\- ]+")


def make_stored_filename(original_name: str) -> str:
    """Build a unique on-disk name that keeps the original stem and extension.

    Args:
        original_name: Filename as supplied by the client.

    Returns:
        ``"{stem}-{epoch_millis}-{random}{ext}"`` with unsafe characters replaced.
    """
    original = Path(original_name.replace("\\", "/")).name
    ext = Path(original).suffix.lower()
    stem = _UNSAFE_CHARS.sub("_", Path(original).stem).strip() or "upload"
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
    return f"{stem}-{unique_suffix}{ext}"


def relative_storage_path(stored_filename: str) -> str:
    return f"{STORAGE_SUBDIR}/{stored_filename}"


def resolve_storage_path(storage_root: Path, relative_path: str) -> Path | None:
    """Resolve a stored relative path, refusing anything outside the root.

    Returns:
        The absolute path, or ``None`` if it escapes ``storage_root``.
    """
    root = Path(storage_root).resolve()
    resolved = (root / relative_path).resolve()
    if not resolved.is_relative_to(root):
        logger.warning("Path traversal blocked: resolved=%s, storage_root=%s", resolved, root)
        return None
    return resolved


def store_file(source: Path, storage_root: Path, stored_filename: str) -> str:
    """Copy ``source`` into permanent storage.

    Returns:
        The stored path relative to ``storage_root``.
    """
    relative_path = relative_storage_path(stored_filename)
    destination = Path(storage_root) / relative_path
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return relative_path


def discard_stored_file(storage_root: Path, relative_path: str) -> None:
    """Remove a stored copy whose database transaction did not commit."""
    try:
        (Path(storage_root) / relative_path).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove orphaned stored file %s", relative_path)
