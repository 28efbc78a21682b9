"""Ingestion pipeline for uploaded audio files.

Each file moves through: metadata extraction, fingerprinting, duplicate
check, classification, folder resolution and persistence. All database
writes for one file (folder chain, sample pack, audio row) happen in a
single transaction that is rolled back if any step fails.

Batches are processed sequentially. A failure in one file is recorded in
its ``IngestResult`` and never interrupts the remaining files.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sample_library.audio.dedup import find_duplicate
from sample_library.audio.fingerprint import (
    DEFAULT_FINGERPRINT_MAX_LENGTH,
    FingerprintEngine,
    truncate_fingerprint,
)
from sample_library.audio.metadata import AudioMetadata, MetadataEngine
from sample_library.audio.storage import discard_stored_file, make_stored_filename, store_file
from sample_library.catalog.folders import folder_segments, resolve_folder
from sample_library.catalog.packs import get_or_create_sample_pack
from sample_library.catalog.repository import SqlTaxonomyRepository
from sample_library.catalog.taxonomy import TaxonomyClassifier
from sample_library.errors import FingerprintError, PersistenceError, ServiceError
from sample_library.models.audio_file import AudioFile
from sample_library.schemas.upload import UploadMetadata
from sample_library.settings import Settings

logger = logging.getLogger(__name__)


class IngestStage(StrEnum):
    """Pipeline states. ``PERSISTED``, ``REJECTED_DUPLICATE`` and ``FAILED`` are terminal."""

    RECEIVED = "received"
    METADATA_EXTRACTED = "metadata_extracted"
    FINGERPRINTED = "fingerprinted"
    DUPLICATE_CHECKED = "duplicate_checked"
    CLASSIFIED = "classified"
    FOLDER_RESOLVED = "folder_resolved"
    PERSISTED = "persisted"
    REJECTED_DUPLICATE = "rejected_duplicate"
    FAILED = "failed"


@dataclass
class UploadedFile:
    """A file handed to the pipeline, usually a request temp file."""

    original_name: str
    temp_path: Path
    size: int | None = None
    content_type: str | None = None
    metadata: UploadMetadata | None = None


@dataclass
class IngestResult:
    """Result of ingesting a single file."""

    original_name: str
    stage: IngestStage = IngestStage.RECEIVED
    file_id: uuid.UUID | None = None
    stored_filename: str | None = None
    storage_path: str | None = None
    fingerprint: str | None = None
    duplicate_of: uuid.UUID | None = None
    failed_stage: IngestStage | None = None
    error_code: str | None = None
    error: str | None = None

    @property
    def status(self) -> str:
        if self.stage == IngestStage.PERSISTED:
            return "success"
        if self.stage == IngestStage.REJECTED_DUPLICATE:
            return "duplicate"
        if self.stage == IngestStage.FAILED:
            return "error"
        return "pending"

    @classmethod
    def rejected(cls, original_name: str, code: str, message: str) -> IngestResult:
        """A file refused by request validation before entering the pipeline."""
        return cls(
            original_name=original_name,
            stage=IngestStage.FAILED,
            failed_stage=IngestStage.RECEIVED,
            error_code=code,
            error=message,
        )

    def fail(self, code: str, message: str) -> None:
        self.failed_stage = self.stage
        self.stage = IngestStage.FAILED
        self.error_code = code
        self.error = message


@dataclass
class BatchReport:
    """Outcome of one upload batch, in submission order."""

    total_files: int = 0
    results: list[IngestResult] = field(default_factory=list)

    @property
    def ingested(self) -> list[IngestResult]:
        return [r for r in self.results if r.status == "success"]

    @property
    def duplicates(self) -> list[IngestResult]:
        return [r for r in self.results if r.status == "duplicate"]

    @property
    def errors(self) -> list[IngestResult]:
        return [r for r in self.results if r.status == "error"]


@dataclass
class IngestContext:
    """Collaborators and options shared by every file of a batch."""

    session_factory: async_sessionmaker[AsyncSession]
    fingerprint_engine: FingerprintEngine
    metadata_engine: MetadataEngine
    storage_root: Path
    fingerprint_max_length: int = DEFAULT_FINGERPRINT_MAX_LENGTH
    metadata_timeout: float | None = 30.0
    create_sample_packs: bool = True

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        fingerprint_engine: FingerprintEngine,
        metadata_engine: MetadataEngine,
    ) -> IngestContext:
        return cls(
            session_factory=session_factory,
            fingerprint_engine=fingerprint_engine,
            metadata_engine=metadata_engine,
            storage_root=Path(config.audio_storage_root),
            fingerprint_max_length=config.fingerprint_max_length,
            metadata_timeout=config.metadata_timeout_seconds,
            create_sample_packs=config.create_sample_packs,
        )


def delete_temp_file(path: Path) -> None:
    try:
        Path(path).unlink(missing_ok=True)
        logger.debug("Deleted temporary file: %s", path)
    except OSError:
        logger.warning("Error deleting temporary file: %s", path, exc_info=True)


async def extract_audio_metadata(file_path: Path, ctx: IngestContext) -> AudioMetadata:
    """Run the metadata engine off the event loop; failures degrade to empty metadata."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(ctx.metadata_engine.extract, file_path),
            timeout=ctx.metadata_timeout,
        )
    except TimeoutError:
        logger.warning(
            "Metadata extraction timed out after %ss for %s", ctx.metadata_timeout, file_path
        )
    except Exception:
        logger.warning("Metadata extraction failed for %s", file_path, exc_info=True)
    return AudioMetadata()


async def compute_fingerprint(file_path: Path, ctx: IngestContext) -> str:
    """Fingerprint the file and truncate it to the stored length.

    Raises:
        FingerprintError: If the engine fails or returns nothing.
    """
    fingerprint = await ctx.fingerprint_engine.compute(file_path)
    if not fingerprint:
        raise FingerprintError("Fingerprint engine returned an empty fingerprint")
    return truncate_fingerprint(fingerprint, ctx.fingerprint_max_length)


async def _lookup_duplicate(ctx: IngestContext, fingerprint: str) -> uuid.UUID | None:
    async with ctx.session_factory() as session:
        return await find_duplicate(session, fingerprint)


async def ingest_file(
    upload: UploadedFile,
    ctx: IngestContext,
    shared_metadata: UploadMetadata | None = None,
) -> IngestResult:
    """Ingest a single file through the full pipeline.

    Steps:
    1. Extract container metadata (failures leave fields null)
    2. Compute and truncate the acoustic fingerprint (failures are fatal)
    3. In one transaction: duplicate check, classification, folder and
       sample pack upsert, copy into storage, insert the AudioFile row

    Args:
        upload: The staged file and its optional per-file metadata.
        ctx: Engines, session factory and options.
        shared_metadata: Batch-wide metadata, used when the file has none.

    Returns:
        IngestResult in a terminal stage. Never raises for per-file failures.
    """
    result = IngestResult(original_name=upload.original_name)
    payload = upload.metadata or shared_metadata
    source_path = payload.path if payload else None
    stored_path: str | None = None

    try:
        audio_meta = await extract_audio_metadata(upload.temp_path, ctx)
        result.stage = IngestStage.METADATA_EXTRACTED

        fingerprint = await compute_fingerprint(upload.temp_path, ctx)
        result.fingerprint = fingerprint
        result.stage = IngestStage.FINGERPRINTED

        try:
            async with ctx.session_factory() as session, session.begin():
                duplicate_id = await find_duplicate(session, fingerprint)
                result.stage = IngestStage.DUPLICATE_CHECKED
                if duplicate_id is not None:
                    result.duplicate_of = duplicate_id
                    result.stage = IngestStage.REJECTED_DUPLICATE
                    logger.info(
                        "Skipping duplicate file: %s (matches %s)",
                        upload.original_name,
                        duplicate_id,
                    )
                    return result

                classifier = TaxonomyClassifier(SqlTaxonomyRepository(session))
                classification = await classifier.classify(
                    upload.original_name, source_path, audio_meta.embedded_bpm
                )
                result.stage = IngestStage.CLASSIFIED

                folder_id = await resolve_folder(session, folder_segments(source_path))
                sample_pack_id = None
                if (
                    ctx.create_sample_packs
                    and classification.manufacturer_id is not None
                    and classification.parent_folder
                ):
                    sample_pack_id = await get_or_create_sample_pack(
                        session, classification.manufacturer_id, classification.parent_folder
                    )
                result.stage = IngestStage.FOLDER_RESOLVED

                stored_filename = make_stored_filename(upload.original_name)
                stored_path = await asyncio.to_thread(
                    store_file, upload.temp_path, ctx.storage_root, stored_filename
                )

                audio_file = AudioFile(
                    filename=stored_filename,
                    original_filename=upload.original_name,
                    filepath=stored_path,
                    file_type=upload.content_type,
                    file_size=upload.size,
                    fingerprint=fingerprint,
                    duration=audio_meta.duration,
                    bpm=classification.bpm,
                    key_signature=classification.key_signature,
                    sample_rate=audio_meta.sample_rate,
                    channels=audio_meta.channels,
                    bit_depth=audio_meta.bit_depth,
                    bitrate=audio_meta.bitrate,
                    codec=audio_meta.codec,
                    container_format=audio_meta.container_format,
                    manufacturer_id=classification.manufacturer_id,
                    category_id=classification.category_id,
                    subcategory_id=classification.subcategory_id,
                    folder_id=folder_id,
                    sample_pack_id=sample_pack_id,
                )
                session.add(audio_file)
                await session.flush()
        except IntegrityError as exc:
            # Another request stored the same fingerprint after our check
            duplicate_id = await _lookup_duplicate(ctx, fingerprint)
            if duplicate_id is None:
                raise PersistenceError(f"Database constraint violated: {exc.orig}") from exc
            if stored_path is not None:
                discard_stored_file(ctx.storage_root, stored_path)
            result.duplicate_of = duplicate_id
            result.stage = IngestStage.REJECTED_DUPLICATE
            logger.info(
                "Skipping duplicate file: %s (stored concurrently as %s)",
                upload.original_name,
                duplicate_id,
            )
            return result
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error: {exc}") from exc
        except OSError as exc:
            raise PersistenceError(f"Could not store file: {exc}") from exc

        result.file_id = audio_file.id
        result.stored_filename = stored_filename
        result.storage_path = stored_path
        result.stage = IngestStage.PERSISTED
        logger.info("Ingested: %s -> %s", upload.original_name, audio_file.id)
        return result

    except ServiceError as exc:
        if stored_path is not None:
            discard_stored_file(ctx.storage_root, stored_path)
        result.fail(exc.code, exc.message)
        logger.warning(
            "Failed to ingest %s at stage %s: %s",
            upload.original_name,
            result.failed_stage,
            exc.message,
        )
        return result
    except Exception as exc:
        if stored_path is not None:
            discard_stored_file(ctx.storage_root, stored_path)
        result.fail("INTERNAL_ERROR", f"Unexpected error: {exc}")
        logger.exception("Unexpected error ingesting %s", upload.original_name)
        return result


async def ingest_batch(
    files: list[UploadedFile],
    ctx: IngestContext,
    shared_metadata: UploadMetadata | None = None,
    *,
    delete_sources: bool = True,
) -> BatchReport:
    """Ingest the files of one upload request, one at a time.

    Every file gets its own transaction and its own result; nothing one file
    does can abort another. When ``delete_sources`` is set, each file's
    ``temp_path`` is deleted exactly once after processing, whatever the
    outcome.

    Args:
        files: Staged files in submission order.
        ctx: Engines, session factory and options.
        shared_metadata: Batch-wide metadata, overridden per file.
        delete_sources: Remove the temp files afterwards (off for the CLI).

    Returns:
        BatchReport with one result per file.
    """
    report = BatchReport(total_files=len(files))

    try:
        for i, upload in enumerate(files, 1):
            logger.info("[%d/%d] Ingesting: %s", i, len(files), upload.original_name)
            report.results.append(await ingest_file(upload, ctx, shared_metadata))
    finally:
        if delete_sources:
            for upload in files:
                delete_temp_file(upload.temp_path)

    logger.info(
        "Batch complete: %d ingested, %d duplicates, %d errors (of %d total)",
        len(report.ingested),
        len(report.duplicates),
        len(report.errors),
        report.total_files,
    )
    return report
