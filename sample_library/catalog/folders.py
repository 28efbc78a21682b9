"""Folder tree upsert mirroring the source directory of an upload.

A path such as ``"Vendor/Pack/Kicks"`` becomes three ``Folder`` rows chained
by ``parent_id``. Resolution is idempotent: each segment is looked up by
``(name, parent_id)`` and only created when missing, so resolving the same
path twice yields the same leaf id and no new rows.

The whole walk runs inside a savepoint, so a failure on any segment rolls
back every folder created for that path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from pathlib import PurePosixPath

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sample_library.audio.metadata import AUDIO_EXTENSIONS
from sample_library.models.folder import Folder

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\\/]+")


def split_path_segments(path: str | None) -> list[str]:
    """Split a slash- or backslash-separated path into non-empty segments."""
    if not path:
        return []
    return [s.strip() for s in _SEPARATORS.split(path) if s.strip() and s.strip() != "."]


def folder_segments(source_path: str | None) -> list[str]:
    """Return the directory segments of a client-supplied source path.

    A trailing segment that names an audio file is dropped, so both
    ``"Pack/Kicks/kick.wav"`` and ``"Pack/Kicks"`` resolve to ``Pack/Kicks``.
    """
    segments = split_path_segments(source_path)
    if segments and PurePosixPath(segments[-1]).suffix.lower() in AUDIO_EXTENSIONS:
        segments = segments[:-1]
    return segments


async def _get_or_create_folder(
    session: AsyncSession,
    name: str,
    parent_id: int | None,
    path: list[str],
) -> int:
    stmt = select(Folder.id).where(Folder.name == name, Folder.parent_id == parent_id)
    existing_id = (await session.execute(stmt)).scalar_one_or_none()
    if existing_id is not None:
        return existing_id

    folder = Folder(name=name, parent_id=parent_id, path=path)
    try:
        async with session.begin_nested():
            session.add(folder)
            await session.flush()
    except IntegrityError:
        # A concurrent request created the same (name, parent) first
        logger.info("Folder %r under parent %s created concurrently; reusing it", name, parent_id)
        return (await session.execute(stmt)).scalar_one()

    logger.debug("Created folder %s (id=%s)", "/".join(path), folder.id)
    return folder.id


async def resolve_folder(session: AsyncSession, segments: Sequence[str]) -> int | None:
    """Upsert a chain of folders and return the leaf folder's id.

    Args:
        session: Async SQLAlchemy session; the caller owns the outer transaction.
        segments: Folder names from the root down, e.g. ``["A", "B", "C"]``.

    Returns:
        The id of the deepest folder, or ``None`` when ``segments`` is empty.
    """
    if not segments:
        return None

    parent_id: int | None = None
    async with session.begin_nested():
        for depth, name in enumerate(segments):
            parent_id = await _get_or_create_folder(
                session, name, parent_id, list(segments[: depth + 1])
            )
    return parent_id
