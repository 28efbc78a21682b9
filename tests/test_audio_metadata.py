"""Tests for sample_library.audio.metadata module."""

import math
import struct
import wave
from pathlib import Path

import pytest
from mutagen.id3 import TBPM
from mutagen.wave import WAVE

from sample_library.audio.metadata import (
    AudioMetadata,
    MutagenMetadataEngine,
    _parse_bpm,
    extract_metadata,
)


def _make_wav_file(
    path: Path,
    duration_seconds: float = 1.0,
    sample_rate: int = 44100,
    channels: int = 1,
) -> None:
    """Write a minimal 16-bit WAV file to disk."""
    num_frames = int(sample_rate * duration_seconds)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)

        frames = bytearray()
        for i in range(num_frames):
            sample = int(16000 * math.sin(2 * math.pi * 440 * i / sample_rate))
            frames.extend(struct.pack("<h", sample) * channels)

        wf.writeframes(bytes(frames))


@pytest.fixture
def wav_file(tmp_path: Path) -> Path:
    audio_path = tmp_path / "kick.wav"
    _make_wav_file(audio_path, duration_seconds=1.0)
    return audio_path


class TestExtractMetadata:
    def test_wav_metadata(self, wav_file: Path) -> None:
        meta = extract_metadata(wav_file)

        assert meta.duration == pytest.approx(1.0, abs=0.01)
        assert meta.sample_rate == 44100
        assert meta.channels == 1
        assert meta.bit_depth == 16
        assert meta.container_format == "wav"
        assert meta.codec == "wav"
        assert meta.lossless is True
        assert meta.embedded_bpm is None

    def test_stereo_wav(self, tmp_path: Path) -> None:
        path = tmp_path / "pad.wav"
        _make_wav_file(path, duration_seconds=0.5, sample_rate=48000, channels=2)

        meta = extract_metadata(path)

        assert meta.channels == 2
        assert meta.sample_rate == 48000
        assert meta.duration == pytest.approx(0.5, abs=0.01)

    def test_embedded_bpm_from_id3_chunk(self, wav_file: Path) -> None:
        tagged = WAVE(str(wav_file))
        tagged.add_tags()
        tagged.tags.add(TBPM(encoding=3, text=["128"]))
        tagged.save()

        meta = extract_metadata(wav_file)

        assert meta.embedded_bpm == 128.0

    def test_non_audio_file_returns_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("not audio at all")

        assert extract_metadata(path) == AudioMetadata()

    def test_missing_file_returns_empty(self, tmp_path: Path) -> None:
        assert extract_metadata(tmp_path / "missing.wav") == AudioMetadata()

    def test_engine_delegates(self, wav_file: Path) -> None:
        assert MutagenMetadataEngine().extract(wav_file).sample_rate == 44100


class TestAudioMetadataLossless:
    @pytest.mark.parametrize(
        ("container", "expected"),
        [("wav", True), ("FLAC", True), ("aiff", True), ("mp3", False), (None, False)],
    )
    def test_lossless(self, container, expected) -> None:
        assert AudioMetadata(container_format=container).lossless is expected


class TestParseBpm:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("120", 120.0),
            (["93.5"], 93.5),
            ([128], 128.0),
            (" 140 ", 140.0),
            ([], None),
            (None, None),
            ("fast", None),
            ("0", None),
        ],
    )
    def test_parse(self, value, expected) -> None:
        assert _parse_bpm(value) == expected

    def test_text_frame(self) -> None:
        assert _parse_bpm(TBPM(encoding=3, text=["174"])) == 174.0
