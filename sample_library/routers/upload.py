"""Upload endpoint for adding audio files to the sample library.

Accepts multipart batches: repeated ``files`` parts, an optional shared
``metadata`` JSON part, and optional per-file ``metadata0``, ``metadata1``,
... parts. Each accepted file is staged to a temp file and run through the
ingestion pipeline; per-file outcomes are reported in one 200 response.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import magic
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.datastructures import FormData, UploadFile

from sample_library.db.session import get_session_factory
from sample_library.errors import UploadValidationError
from sample_library.ingest.pipeline import (
    BatchReport,
    IngestContext,
    IngestResult,
    UploadedFile,
    delete_temp_file,
    ingest_batch,
)
from sample_library.schemas.errors import ErrorResponse
from sample_library.schemas.upload import (
    UploadedFileInfo,
    UploadFileError,
    UploadMetadata,
    UploadResponse,
)
from sample_library.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ALLOWED_MIME_TYPES: set[str] = {
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/vnd.wave",
    "audio/mpeg",
    "audio/mp3",
    "audio/flac",
    "audio/x-flac",
    "audio/aiff",
    "audio/x-aiff",
}

# Bytes sniffed by libmagic to detect the content type
_MAGIC_HEADER_BYTES = 8192


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_ingest_context(request: Request) -> IngestContext:
    """Build the pipeline context from the collaborators on ``app.state``."""
    return IngestContext.from_settings(
        settings,
        session_factory=get_session_factory(request),
        fingerprint_engine=request.app.state.fingerprint_engine,
        metadata_engine=request.app.state.metadata_engine,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_metadata(raw: object, field_name: str) -> UploadMetadata | None:
    """Parse a metadata form field.

    Raises:
        UploadValidationError: If the field is not a JSON object.
    """
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise UploadValidationError(
            f"Form field '{field_name}' must be a JSON string.", code="INVALID_METADATA"
        )
    try:
        return UploadMetadata.model_validate_json(raw)
    except ValidationError as exc:
        raise UploadValidationError(
            f"Invalid metadata format in '{field_name}'.", code="INVALID_METADATA"
        ) from exc


def _collect_uploads(form: FormData) -> list[UploadFile]:
    return [part for part in form.getlist("files") if isinstance(part, UploadFile)]


async def _stage_upload(
    upload: UploadFile, metadata: UploadMetadata | None
) -> UploadedFile | IngestResult:
    """Validate one part and write it to a temp file.

    Returns:
        The staged file, or a rejected ``IngestResult`` when validation fails.
        Rejected files never touch the disk.
    """
    name = Path((upload.filename or "upload").replace("\\", "/")).name or "upload"
    content = await upload.read(settings.max_upload_bytes + 1)

    if len(content) == 0:
        return IngestResult.rejected(name, "EMPTY_FILE", "Empty file uploaded.")

    if len(content) > settings.max_upload_bytes:
        return IngestResult.rejected(
            name,
            "FILE_TOO_LARGE",
            f"File too large. Maximum upload size is "
            f"{settings.max_upload_bytes // (1024 * 1024)} MB.",
        )

    try:
        detected_type = magic.from_buffer(content[:_MAGIC_HEADER_BYTES], mime=True)
    except Exception:
        logger.exception("Failed to detect MIME type for uploaded file %s", name)
        return IngestResult.rejected(name, "UNSUPPORTED_FORMAT", "Unable to detect file format.")

    if detected_type not in ALLOWED_MIME_TYPES:
        return IngestResult.rejected(
            name,
            "UNSUPPORTED_FORMAT",
            f"Unsupported audio format: {detected_type}. Supported: WAV, MP3, FLAC, AIFF.",
        )

    suffix = Path(name).suffix or ".bin"
    with tempfile.NamedTemporaryFile(
        delete=False, suffix=suffix, dir=settings.upload_tmp_dir
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(content)
        except OSError:
            tmp.close()
            delete_temp_file(tmp_path)
            raise

    return UploadedFile(
        original_name=name,
        temp_path=tmp_path,
        size=len(content),
        content_type=detected_type,
        metadata=metadata,
    )


def _build_response(rejected: list[IngestResult], report: BatchReport) -> UploadResponse:
    results = rejected + report.results
    files = [
        UploadedFileInfo(
            id=r.file_id,
            filename=r.stored_filename,
            original_name=r.original_name,
            path=r.storage_path,
        )
        for r in results
        if r.status == "success"
    ]
    duplicates = [r.original_name for r in results if r.status == "duplicate"]
    errors = [
        UploadFileError(file=r.original_name, code=r.error_code or "ERROR", error=r.error or "")
        for r in results
        if r.status == "error"
    ]
    return UploadResponse(
        success=True,
        message=(
            f"Processed {len(results)} file(s): {len(files)} uploaded, "
            f"{len(duplicates)} duplicate(s), {len(errors)} error(s)."
        ),
        files=files,
        duplicates=duplicates,
        errors=errors,
    )


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "No files or invalid metadata", "model": ErrorResponse},
    },
)
async def upload_files(
    request: Request,
    ctx: IngestContext = Depends(get_ingest_context),  # noqa: B008
) -> UploadResponse:
    """Ingest a batch of audio files.

    Each file is processed independently:
    1. Size and MIME type validation (rejected files are reported as errors)
    2. Metadata extraction and Chromaprint fingerprinting
    3. Exact fingerprint duplicate check
    4. Manufacturer/category/subcategory classification, BPM and key
    5. Folder tree and sample pack upsert from the metadata ``path``
    6. Storage copy and AudioFile insert, in one transaction per file

    Always returns 200 with the success/duplicate/error breakdown unless the
    request itself is invalid (no files, unparsable metadata).
    """
    form = await request.form()
    try:
        uploads = _collect_uploads(form)
        if not uploads:
            raise UploadValidationError("No files received.", code="NO_FILES")

        shared_metadata = _parse_metadata(form.get("metadata"), "metadata")
        per_file_metadata = [
            _parse_metadata(form.get(f"metadata{index}"), f"metadata{index}")
            for index in range(len(uploads))
        ]

        rejected: list[IngestResult] = []
        staged: list[UploadedFile] = []
        try:
            for upload, metadata in zip(uploads, per_file_metadata, strict=True):
                outcome = await _stage_upload(upload, metadata)
                if isinstance(outcome, IngestResult):
                    logger.info("Rejected upload %s: %s", outcome.original_name, outcome.error)
                    rejected.append(outcome)
                else:
                    staged.append(outcome)
        except BaseException:
            for uploaded in staged:
                delete_temp_file(uploaded.temp_path)
            raise

        # ingest_batch owns temp-file cleanup from here on
        report = await ingest_batch(staged, ctx, shared_metadata)
    finally:
        await form.close()

    return _build_response(rejected, report)
