"""CLI entry point for batch audio ingestion from a local directory.

Usage: python -m sample_library.ingest [--init-db] /path/to/samples/

Each file's path relative to the directory is used as its metadata path,
so ``Vendor/Pack/Kicks/kick.wav`` is filed under the ``Vendor/Pack/Kicks``
folder chain. Source files are never deleted.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import magic

from sample_library.audio.fingerprint import ChromaprintEngine
from sample_library.audio.metadata import AUDIO_EXTENSIONS, MutagenMetadataEngine
from sample_library.db.engine import build_engine, create_tables
from sample_library.db.session import build_session_factory
from sample_library.ingest.pipeline import BatchReport, IngestContext, UploadedFile, ingest_batch
from sample_library.schemas.upload import UploadMetadata
from sample_library.settings import settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m sample_library.ingest",
        description="Ingest every audio file under a directory into the sample library.",
    )
    parser.add_argument("directory", type=Path, help="Directory to scan recursively")
    parser.add_argument(
        "--init-db", action="store_true", help="Create missing database tables first"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for batch ingestion CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = _parse_args(argv)
    if not args.directory.is_dir():
        print(f"Error: '{args.directory}' is not a directory", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    report = asyncio.run(_run_ingestion(args.directory, init_db=args.init_db))
    _print_report(report)
    if report.errors:
        sys.exit(2)


def _detect_mime_type(file_path: Path) -> str | None:
    try:
        return magic.from_file(str(file_path), mime=True)
    except Exception:
        logging.getLogger(__name__).warning(
            "Could not detect MIME type for %s", file_path, exc_info=True
        )
        return None


def scan_directory(directory: Path) -> list[UploadedFile]:
    """Collect audio files under ``directory`` as pipeline inputs."""
    audio_files = sorted(
        f for f in directory.rglob("*") if f.is_file() and f.suffix.lower() in AUDIO_EXTENSIONS
    )
    return [
        UploadedFile(
            original_name=f.name,
            temp_path=f,
            size=f.stat().st_size,
            content_type=_detect_mime_type(f),
            metadata=UploadMetadata(path=f.relative_to(directory).as_posix()),
        )
        for f in audio_files
    ]


async def _run_ingestion(directory: Path, init_db: bool = False) -> BatchReport:
    """Run the ingestion pipeline."""
    log = logging.getLogger(__name__)

    engine = build_engine(settings)
    try:
        if init_db:
            await create_tables(engine)

        files = scan_directory(directory)
        if not files:
            log.warning("No audio files found in %s", directory)
            return BatchReport()
        log.info("Found %d audio files in %s", len(files), directory)

        ctx = IngestContext.from_settings(
            settings,
            session_factory=build_session_factory(engine),
            fingerprint_engine=ChromaprintEngine(
                fpcalc_bin=settings.fpcalc_bin,
                length_seconds=settings.fpcalc_length_seconds,
                timeout=settings.fingerprint_timeout_seconds,
            ),
            metadata_engine=MutagenMetadataEngine(),
        )
        return await ingest_batch(files, ctx, delete_sources=False)
    finally:
        await engine.dispose()


def _print_report(report: BatchReport) -> None:
    print(f"\n{'=' * 60}")  # noqa: T201
    print("Ingestion Report")  # noqa: T201
    print(f"{'=' * 60}")  # noqa: T201
    print(f"Total files:  {report.total_files}")  # noqa: T201
    print(f"Ingested:     {len(report.ingested)}")  # noqa: T201
    print(f"Duplicates:   {len(report.duplicates)}")  # noqa: T201
    print(f"Errors:       {len(report.errors)}")  # noqa: T201

    if report.errors:
        print("\nFailed files:")  # noqa: T201
        for r in report.errors:
            print(f"  - {r.original_name} [{r.error_code}]: {r.error}")  # noqa: T201

    print(f"{'=' * 60}")  # noqa: T201


if __name__ == "__main__":
    main()
