from __future__ import annotations

import uuid
from datetime import datetime

from sample_library.schemas.pagination import CamelModel


class AudioFileInfo(CamelModel):
    """Minimal audio file metadata returned in listings."""

    id: uuid.UUID
    filename: str
    original_filename: str
    duration: float | None = None
    bpm: float | None = None
    key_signature: str | None = None
    created_at: datetime


class AudioFileDetail(AudioFileInfo):
    """Full detail including audio properties and classification."""

    filepath: str
    file_type: str | None = None
    file_size: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    bit_depth: int | None = None
    bitrate: int | None = None
    codec: str | None = None
    container_format: str | None = None
    lossless: bool
    manufacturer_id: int | None = None
    category_id: int | None = None
    subcategory_id: int | None = None
    sample_pack_id: int | None = None
    folder_id: int | None = None
    folder_path: list[str] | None = None
    updated_at: datetime
