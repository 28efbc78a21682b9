"""Container-level audio metadata extraction using mutagen.

Extracts duration, sample rate, bitrate, codec, channel count, bit depth,
container format and the embedded BPM tag. Supports WAV, AIFF, FLAC, MP3
(ID3), OGG (Vorbis comments) and MP4/M4A atoms.

Extraction never raises: any parse failure yields an empty ``AudioMetadata``
so the ingestion pipeline can continue with null fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import mutagen
from mutagen.mp4 import MP4

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS: set[str] = {".wav", ".wave", ".aif", ".aiff", ".flac", ".mp3", ".ogg", ".m4a"}

LOSSLESS_FORMATS: frozenset[str] = frozenset({"wav", "flac", "aiff"})

# mutagen FileType class name -> container format
_CONTAINER_BY_TYPE: dict[str, str] = {
    "WAVE": "wav",
    "AIFF": "aiff",
    "FLAC": "flac",
    "MP3": "mp3",
    "EasyMP3": "mp3",
    "OggVorbis": "ogg",
    "OggOpus": "ogg",
    "OggFLAC": "ogg",
    "MP4": "mp4",
    "EasyMP4": "mp4",
}

_EXTENSION_ALIASES: dict[str, str] = {
    "wave": "wav",
    "aif": "aiff",
    "m4a": "mp4",
    "oga": "ogg",
}


@dataclass
class AudioMetadata:
    """Container for extracted audio metadata. Every field may be ``None``."""

    duration: float | None = None
    sample_rate: int | None = None
    bitrate: int | None = None
    codec: str | None = None
    channels: int | None = None
    bit_depth: int | None = None
    container_format: str | None = None
    embedded_bpm: float | None = None

    @property
    def lossless(self) -> bool:
        return (self.container_format or "").lower() in LOSSLESS_FORMATS


class MetadataEngine(Protocol):
    """Extracts container metadata from a file on disk."""

    def extract(self, file_path: Path) -> AudioMetadata: ...


def _parse_bpm(value: Any) -> float | None:
    """Parse a BPM tag value that may be a list, number, or text frame."""
    if value is None:
        return None
    texts = getattr(value, "text", None)
    if texts is not None:
        value = texts
    if isinstance(value, list | tuple):
        if not value:
            return None
        value = value[0]
    try:
        bpm = float(str(value).strip())
    except ValueError:
        return None
    return bpm if bpm > 0 else None


def _embedded_bpm(audio_file: mutagen.FileType) -> float | None:
    """Read the BPM tag: ID3 ``TBPM``, MP4 ``tmpo`` or Vorbis ``bpm``."""
    tags = audio_file.tags
    if tags is None:
        return None
    if isinstance(audio_file, MP4):
        return _parse_bpm(tags.get("tmpo"))
    if hasattr(tags, "getall"):
        # ID3 tags (MP3, WAV and AIFF with an ID3 chunk)
        frames = tags.getall("TBPM")
        return _parse_bpm(frames[0]) if frames else None
    return _parse_bpm(tags.get("bpm") or tags.get("BPM"))


def _container_format(audio_file: mutagen.FileType, file_path: Path) -> str | None:
    container = _CONTAINER_BY_TYPE.get(type(audio_file).__name__)
    if container:
        return container
    suffix = file_path.suffix.lower().lstrip(".")
    return _EXTENSION_ALIASES.get(suffix, suffix) or None


def extract_metadata(file_path: Path) -> AudioMetadata:
    """Extract metadata from an audio file using mutagen.

    Args:
        file_path: Path to the audio file.

    Returns:
        AudioMetadata with available fields populated, or an empty
        AudioMetadata if the file cannot be parsed.
    """
    meta = AudioMetadata()
    file_path = Path(file_path)

    try:
        audio_file = mutagen.File(str(file_path))
    except Exception:
        logger.warning("mutagen could not parse file: %s", file_path)
        return meta

    if audio_file is None:
        logger.warning("mutagen returned None for file: %s", file_path)
        return meta

    info = audio_file.info
    if info is not None:
        meta.duration = getattr(info, "length", None)
        meta.sample_rate = getattr(info, "sample_rate", None)
        meta.channels = getattr(info, "channels", None)
        meta.bit_depth = getattr(info, "bits_per_sample", None)
        bitrate = getattr(info, "bitrate", None)
        if bitrate:
            meta.bitrate = int(bitrate)

    meta.container_format = _container_format(audio_file, file_path)
    meta.codec = getattr(info, "codec", None) or meta.container_format
    meta.embedded_bpm = _embedded_bpm(audio_file)

    return meta


class MutagenMetadataEngine:
    """``MetadataEngine`` backed by :func:`extract_metadata`."""

    def extract(self, file_path: Path) -> AudioMetadata:
        return extract_metadata(file_path)
