"""Shared fixtures: a file-backed SQLite database and fake audio engines.

SQLite runs through aiosqlite with driver-level autocommit disabled and an
explicit BEGIN on every transaction, so SAVEPOINTs behave as they do on
PostgreSQL.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sample_library.audio.metadata import AudioMetadata
from sample_library.errors import FingerprintError
from sample_library.ingest.pipeline import IngestContext
from sample_library.models import Base, Category, Manufacturer, Subcategory

# ---------------------------------------------------------------------------
# Fake engines
# ---------------------------------------------------------------------------


class FakeFingerprintEngine:
    """Fingerprints a file by hashing its bytes.

    Files whose content starts with ``b"FAIL"`` raise ``FingerprintError``.
    A fixed ``value`` can be returned instead of the hash.
    """

    def __init__(self, value: str | None = None) -> None:
        self.value = value
        self.calls: list[Path] = []

    async def compute(self, file_path: Path) -> str:
        self.calls.append(Path(file_path))
        content = Path(file_path).read_bytes()
        if content.startswith(b"FAIL"):
            raise FingerprintError("fpcalc exited with code 3: decoding failed")
        if self.value is not None:
            return self.value
        return hashlib.sha256(content).hexdigest()


class FakeMetadataEngine:
    def __init__(self, metadata: AudioMetadata | None = None, error: Exception | None = None):
        self.metadata = metadata or AudioMetadata()
        self.error = error

    def extract(self, file_path: Path) -> AudioMetadata:
        if self.error is not None:
            raise self.error
        return self.metadata


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'library.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def taxonomy(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    """Seed a small taxonomy and return ids by name."""
    async with session_factory() as session, session.begin():
        vengeance = Manufacturer(name="Vengeance")
        vengeance_sound = Manufacturer(name="Vengeance Sound")
        splice = Manufacturer(name="Splice")
        drums = Category(name="Drums")
        synth = Category(name="Synth")
        session.add_all([vengeance, vengeance_sound, splice, drums, synth])
        await session.flush()
        kick = Subcategory(category_id=drums.id, name="Kick")
        snare = Subcategory(category_id=drums.id, name="Snare")
        pad = Subcategory(category_id=synth.id, name="Pad")
        session.add_all([kick, snare, pad])
        await session.flush()
        return {
            "Vengeance": vengeance.id,
            "Vengeance Sound": vengeance_sound.id,
            "Splice": splice.id,
            "Drums": drums.id,
            "Synth": synth.id,
            "Kick": kick.id,
            "Snare": snare.id,
            "Pad": pad.id,
        }


# ---------------------------------------------------------------------------
# Pipeline context
# ---------------------------------------------------------------------------


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def fingerprint_engine() -> FakeFingerprintEngine:
    return FakeFingerprintEngine()


@pytest.fixture
def metadata_engine() -> FakeMetadataEngine:
    return FakeMetadataEngine(
        AudioMetadata(
            duration=1.5,
            sample_rate=44100,
            bitrate=1411200,
            codec="wav",
            channels=2,
            bit_depth=16,
            container_format="wav",
        )
    )


@pytest.fixture
def ingest_ctx(
    session_factory: async_sessionmaker[AsyncSession],
    fingerprint_engine: FakeFingerprintEngine,
    metadata_engine: FakeMetadataEngine,
    storage_root: Path,
) -> IngestContext:
    return IngestContext(
        session_factory=session_factory,
        fingerprint_engine=fingerprint_engine,
        metadata_engine=metadata_engine,
        storage_root=storage_root,
    )
