"""Integration tests for POST /api/upload.

Runs the upload router against a real SQLite database with fake audio
engines. libmagic is patched so test payloads need not be real audio.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from sample_library.main import register_exception_handlers
from sample_library.models import AudioFile, Folder
from sample_library.routers.upload import router as upload_router
from sample_library.settings import settings

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def upload_tmp_dir(tmp_path: Path) -> Path:
    path = tmp_path / "upload-tmp"
    path.mkdir()
    return path


@pytest.fixture(autouse=True)
def _configure_settings(monkeypatch, storage_root: Path, upload_tmp_dir: Path) -> None:
    monkeypatch.setattr(settings, "audio_storage_root", str(storage_root))
    monkeypatch.setattr(settings, "upload_tmp_dir", str(upload_tmp_dir))
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)


@pytest.fixture
def upload_app(session_factory, fingerprint_engine, metadata_engine) -> FastAPI:
    """Minimal FastAPI app with only the upload router mounted."""
    application = FastAPI()
    application.include_router(upload_router, prefix="/api")
    application.state.session_factory = session_factory
    application.state.fingerprint_engine = fingerprint_engine
    application.state.metadata_engine = metadata_engine
    register_exception_handlers(application)
    return application


@pytest.fixture
async def client(upload_app: FastAPI) -> AsyncClient:
    transport = ASGITransport(app=upload_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def mock_magic():
    with patch("sample_library.routers.upload.magic") as mocked:
        mocked.from_buffer.side_effect = lambda buf, mime=True: (
            "text/plain" if buf.startswith(b"TEXT") else "audio/wav"
        )
        yield mocked


def _wav(name: str, content: bytes) -> tuple[str, tuple[str, bytes, str]]:
    return ("files", (name, content, "audio/wav"))


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


# ---------------------------------------------------------------------------
# Success and duplicates
# ---------------------------------------------------------------------------


async def test_upload_single_file(client, mock_magic, session_factory, storage_root) -> None:
    resp = await client.post("/api/upload", files=[_wav("Kick 01.wav", b"RIFF-kick-1")])

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["duplicates"] == []
    assert body["errors"] == []
    assert len(body["files"]) == 1
    info = body["files"][0]
    assert info["originalName"] == "Kick 01.wav"
    assert info["filename"].startswith("Kick 01-")
    assert info["path"] == f"audio-files/{info['filename']}"
    assert (storage_root / info["path"]).read_bytes() == b"RIFF-kick-1"
    assert await _count(session_factory, AudioFile) == 1


async def test_upload_reports_duplicates(client, mock_magic, session_factory) -> None:
    first = await client.post("/api/upload", files=[_wav("a.wav", b"RIFF-same")])
    second = await client.post("/api/upload", files=[_wav("b.wav", b"RIFF-same")])

    assert first.json()["files"][0]["originalName"] == "a.wav"
    body = second.json()
    assert second.status_code == 200
    assert body["files"] == []
    assert body["duplicates"] == ["b.wav"]
    assert await _count(session_factory, AudioFile) == 1


async def test_duplicate_within_one_batch(client, mock_magic, session_factory) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("a.wav", b"RIFF-twice"), _wav("a copy.wav", b"RIFF-twice")],
    )

    body = resp.json()
    assert [f["originalName"] for f in body["files"]] == ["a.wav"]
    assert body["duplicates"] == ["a copy.wav"]


# ---------------------------------------------------------------------------
# Request-level validation
# ---------------------------------------------------------------------------


async def test_no_files_returns_400(client, mock_magic) -> None:
    resp = await client.post("/api/upload", data={"metadata": "{}"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NO_FILES"


async def test_invalid_metadata_returns_400(client, mock_magic, session_factory) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("a.wav", b"RIFF-a")],
        data={"metadata": "{not json"},
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_METADATA"
    assert await _count(session_factory, AudioFile) == 0


async def test_invalid_per_file_metadata_returns_400(client, mock_magic) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("a.wav", b"RIFF-a")],
        data={"metadata0": "[1, 2]"},
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_METADATA"


# ---------------------------------------------------------------------------
# File-level validation
# ---------------------------------------------------------------------------


async def test_unsupported_type_is_a_file_error(client, mock_magic, session_factory) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("notes.wav", b"TEXT only"), _wav("kick.wav", b"RIFF-kick")],
    )

    assert resp.status_code == 200
    body = resp.json()
    assert [f["originalName"] for f in body["files"]] == ["kick.wav"]
    assert len(body["errors"]) == 1
    assert body["errors"][0]["file"] == "notes.wav"
    assert body["errors"][0]["code"] == "UNSUPPORTED_FORMAT"
    assert await _count(session_factory, AudioFile) == 1


async def test_too_large_is_a_file_error(client, mock_magic) -> None:
    resp = await client.post("/api/upload", files=[_wav("huge.wav", b"R" * 2048)])

    assert resp.status_code == 200
    body = resp.json()
    assert body["files"] == []
    assert body["errors"][0]["code"] == "FILE_TOO_LARGE"


async def test_empty_file_is_a_file_error(client, mock_magic) -> None:
    resp = await client.post("/api/upload", files=[_wav("empty.wav", b"")])

    assert resp.json()["errors"][0]["code"] == "EMPTY_FILE"


# ---------------------------------------------------------------------------
# Metadata paths, isolation, cleanup
# ---------------------------------------------------------------------------


async def test_per_file_metadata_builds_folders(client, mock_magic, session_factory) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("kick.wav", b"RIFF-k"), _wav("snare.wav", b"RIFF-s")],
        data={
            "metadata0": json.dumps({"path": "Pack/Kicks/kick.wav", "duration": 1.2}),
            "metadata1": json.dumps({"path": "Pack/Snares/snare.wav"}),
        },
    )

    assert resp.status_code == 200
    assert len(resp.json()["files"]) == 2
    async with session_factory() as session:
        paths = sorted(tuple(f.path) for f in (await session.execute(select(Folder))).scalars())
    assert paths == [("Pack",), ("Pack", "Kicks"), ("Pack", "Snares")]


async def test_shared_metadata_applies_to_all_files(client, mock_magic, session_factory) -> None:
    resp = await client.post(
        "/api/upload",
        files=[_wav("a.wav", b"RIFF-a"), _wav("b.wav", b"RIFF-b")],
        data={"metadata": json.dumps({"path": "Shared/Loops"})},
    )

    assert len(resp.json()["files"]) == 2
    async with session_factory() as session:
        folder_ids = set((await session.execute(select(AudioFile.folder_id))).scalars())
    assert len(folder_ids) == 1
    assert await _count(session_factory, Folder) == 2


async def test_failure_in_middle_of_batch(
    client, mock_magic, session_factory, upload_tmp_dir
) -> None:
    resp = await client.post(
        "/api/upload",
        files=[
            _wav("one.wav", b"RIFF-1"),
            _wav("two.wav", b"FAIL-decoding"),
            _wav("three.wav", b"RIFF-3"),
        ],
    )

    assert resp.status_code == 200
    body = resp.json()
    assert [f["originalName"] for f in body["files"]] == ["one.wav", "three.wav"]
    assert [e["file"] for e in body["errors"]] == ["two.wav"]
    assert body["errors"][0]["code"] == "FINGERPRINT_FAILED"
    assert await _count(session_factory, AudioFile) == 2
    assert list(upload_tmp_dir.iterdir()) == []


async def test_temp_files_removed_after_request(client, mock_magic, upload_tmp_dir) -> None:
    await client.post(
        "/api/upload",
        files=[_wav("a.wav", b"RIFF-a"), _wav("b.wav", b"RIFF-a"), _wav("c.txt", b"TEXT")],
    )

    assert list(upload_tmp_dir.iterdir()) == []


async def test_strips_client_directories_from_filename(client, mock_magic) -> None:
    resp = await client.post("/api/upload", files=[_wav("../../evil.wav", b"RIFF-e")])

    assert resp.json()["files"][0]["originalName"] == "evil.wav"
