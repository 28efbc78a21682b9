from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

from sample_library.schemas.pagination import CamelModel


class UploadMetadata(BaseModel):
    """Client-supplied JSON sent alongside uploaded files.

    Only ``path`` (the original relative path) is interpreted; the web client
    also sends fields such as ``duration`` or ``lastModified``, which are kept
    but ignored.
    """

    model_config = ConfigDict(extra="allow")

    path: str | None = None


class UploadedFileInfo(CamelModel):
    """A successfully ingested file."""

    id: uuid.UUID
    filename: str
    original_name: str
    path: str


class UploadFileError(BaseModel):
    """A single file that failed validation or ingestion."""

    file: str
    code: str
    error: str


class UploadResponse(BaseModel):
    success: bool
    message: str
    files: list[UploadedFileInfo] = Field(default_factory=list)
    duplicates: list[str] = Field(default_factory=list)
    errors: list[UploadFileError] = Field(default_factory=list)
