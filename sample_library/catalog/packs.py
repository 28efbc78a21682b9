"""Lazy creation of sample packs named after a manufacturer's source folder."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sample_library.models.sample_pack import SamplePack

logger = logging.getLogger(__name__)


async def get_or_create_sample_pack(
    session: AsyncSession, manufacturer_id: int, name: str
) -> int:
    """Return the id of the pack ``name`` under ``manufacturer_id``, creating it once."""
    stmt = select(SamplePack.id).where(
        SamplePack.manufacturer_id == manufacturer_id, SamplePack.name == name
    )
    existing_id = (await session.execute(stmt)).scalar_one_or_none()
    if existing_id is not None:
        return existing_id

    pack = SamplePack(manufacturer_id=manufacturer_id, name=name)
    try:
        async with session.begin_nested():
            session.add(pack)
            await session.flush()
    except IntegrityError:
        return (await session.execute(stmt)).scalar_one()

    logger.info("Created sample pack %r for manufacturer %s", name, manufacturer_id)
    return pack.id
