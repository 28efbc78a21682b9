"""Library endpoints: paginated listing, detail views, and file download."""

from __future__ import annotations

import logging
import math
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sample_library.audio.metadata import LOSSLESS_FORMATS
from sample_library.audio.storage import resolve_storage_path
from sample_library.db.session import get_db
from sample_library.errors import NotFoundError
from sample_library.models.audio_file import AudioFile
from sample_library.models.folder import Folder
from sample_library.schemas.errors import ErrorResponse
from sample_library.schemas.files import AudioFileDetail, AudioFileInfo
from sample_library.schemas.pagination import PaginatedResponse, PaginationMeta
from sample_library.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def _to_info(audio_file: AudioFile) -> AudioFileInfo:
    return AudioFileInfo(
        id=audio_file.id,
        filename=audio_file.filename,
        original_filename=audio_file.original_filename,
        duration=audio_file.duration,
        bpm=audio_file.bpm,
        key_signature=audio_file.key_signature,
        created_at=audio_file.created_at,
    )


def _to_detail(audio_file: AudioFile, folder_path: list[str] | None) -> AudioFileDetail:
    return AudioFileDetail(
        **_to_info(audio_file).model_dump(),
        filepath=audio_file.filepath,
        file_type=audio_file.file_type,
        file_size=audio_file.file_size,
        sample_rate=audio_file.sample_rate,
        channels=audio_file.channels,
        bit_depth=audio_file.bit_depth,
        bitrate=audio_file.bitrate,
        codec=audio_file.codec,
        container_format=audio_file.container_format,
        lossless=(audio_file.container_format or "").lower() in LOSSLESS_FORMATS,
        manufacturer_id=audio_file.manufacturer_id,
        category_id=audio_file.category_id,
        subcategory_id=audio_file.subcategory_id,
        sample_pack_id=audio_file.sample_pack_id,
        folder_id=audio_file.folder_id,
        folder_path=folder_path,
        updated_at=audio_file.updated_at,
    )


async def _get_audio_file(db: AsyncSession, file_id: uuid.UUID) -> AudioFile:
    result = await db.execute(select(AudioFile).where(AudioFile.id == file_id))
    audio_file = result.scalar_one_or_none()
    if audio_file is None:
        raise NotFoundError(f"No audio file found with id {file_id}")
    return audio_file


@router.get(
    "/files",
    response_model=PaginatedResponse[AudioFileInfo],
    responses={422: {"description": "Validation error"}},
)
async def list_files(
    page: int = Query(default=1),
    pageSize: int = Query(default=50, alias="pageSize"),  # noqa: N803
    search: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> PaginatedResponse[AudioFileInfo]:
    """Return a paginated list of audio files, optionally filtered by original filename."""
    page = max(1, page)
    page_size = max(1, min(100, pageSize))

    base_query = select(AudioFile)
    if search:
        escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        base_query = base_query.where(
            AudioFile.original_filename.ilike(f"%{escaped}%", escape="\\")
        )

    count_query = select(func.count()).select_from(base_query.subquery())
    total_items: int = (await db.execute(count_query)).scalar_one()

    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    offset = (page - 1) * page_size

    data_query = (
        base_query.order_by(AudioFile.created_at.desc(), AudioFile.original_filename)
        .offset(offset)
        .limit(page_size)
    )
    audio_files = (await db.execute(data_query)).scalars().all()

    return PaginatedResponse[AudioFileInfo](
        data=[_to_info(f) for f in audio_files],
        pagination=PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
        ),
    )


@router.get(
    "/files/{file_id}",
    response_model=AudioFileDetail,
    responses={
        404: {"description": "Audio file not found", "model": ErrorResponse},
        422: {"description": "Validation error"},
    },
)
async def get_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> AudioFileDetail:
    """Return full detail for a single audio file."""
    audio_file = await _get_audio_file(db, file_id)

    folder_path = None
    if audio_file.folder_id is not None:
        folder_path = (
            await db.execute(select(Folder.path).where(Folder.id == audio_file.folder_id))
        ).scalar_one_or_none()

    return _to_detail(audio_file, folder_path)


@router.get(
    "/download/{file_id}",
    response_model=None,
    responses={
        200: {"content": {"audio/wav": {}}, "description": "The stored audio file"},
        404: {"description": "Audio file not found or missing on disk", "model": ErrorResponse},
    },
)
async def download_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> FileResponse:
    """Send the stored file as an attachment named after its original filename."""
    audio_file = await _get_audio_file(db, file_id)

    resolved_path = resolve_storage_path(Path(settings.audio_storage_root), audio_file.filepath)
    if resolved_path is None or not resolved_path.is_file():
        logger.warning("Stored file missing for audio file %s: %s", file_id, audio_file.filepath)
        raise NotFoundError("Audio file not found on disk", code="FILE_NOT_FOUND")

    return FileResponse(
        path=resolved_path,
        media_type=audio_file.file_type or "application/octet-stream",
        filename=audio_file.original_filename,
        content_disposition_type="attachment",
    )
