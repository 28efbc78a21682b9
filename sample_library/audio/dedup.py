"""Exact-match duplicate detection on stored acoustic fingerprints.

There is no similarity search: a file is a duplicate only when its
truncated fingerprint equals one already stored. The check is a read
before insert, so two overlapping requests can both pass it; the unique
index on ``audio_files.fingerprint`` rejects the second insert and the
pipeline reports it as a duplicate.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sample_library.models.audio_file import AudioFile


async def find_duplicate(session: AsyncSession, fingerprint: str) -> uuid.UUID | None:
    """Return the id of the audio file stored with ``fingerprint``, if any.

    Args:
        session: Async SQLAlchemy session.
        fingerprint: Truncated fingerprint of the candidate file.

    Returns:
        AudioFile UUID if a duplicate is found, ``None`` otherwise.
    """
    stmt = select(AudioFile.id).where(AudioFile.fingerprint == fingerprint).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()

