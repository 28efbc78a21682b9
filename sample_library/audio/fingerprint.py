"""Chromaprint acoustic fingerprinting via the ``fpcalc`` CLI.

Runs ``fpcalc`` on the uploaded file as an asyncio subprocess so the event
loop is never blocked. Any failure (binary missing, non-zero exit, timeout,
unparsable output) raises :class:`FingerprintError`, which is fatal for that
file only.

Fingerprints are compared by exact equality after truncation to a fixed
length, a deliberate approximation of perceptual matching.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from sample_library.errors import FingerprintError

logger = logging.getLogger(__name__)

DEFAULT_FINGERPRINT_MAX_LENGTH = 512


class FingerprintEngine(Protocol):
    """Computes a deterministic acoustic fingerprint for a file on disk."""

    async def compute(self, file_path: Path) -> str: ...


def truncate_fingerprint(
    fingerprint: str, max_length: int = DEFAULT_FINGERPRINT_MAX_LENGTH
) -> str:
    """Return the first ``max_length`` characters of ``fingerprint``."""
    return fingerprint[:max_length]


def parse_fpcalc_output(stdout: str) -> str:
    """Extract the ``FINGERPRINT=`` value from fpcalc's plain-text output.

    Raises:
        FingerprintError: If no non-empty fingerprint line is present.
    """
    for line in stdout.strip().splitlines():
        if line.startswith("FINGERPRINT="):
            value = line.split("=", 1)[1].strip()
            if value:
                return value
    raise FingerprintError("fpcalc output did not contain a FINGERPRINT line")


class ChromaprintEngine:
    """``FingerprintEngine`` that shells out to Chromaprint's ``fpcalc``.

    Attributes:
        fpcalc_bin: Name or path of the fpcalc binary.
        length_seconds: Maximum audio length fpcalc analyses.
        timeout: Seconds to wait for fpcalc before killing it.
    """

    def __init__(
        self,
        fpcalc_bin: str = "fpcalc",
        length_seconds: int = 120,
        timeout: float = 30.0,
    ) -> None:
        self.fpcalc_bin = fpcalc_bin
        self.length_seconds = length_seconds
        self.timeout = timeout

    async def compute(self, file_path: Path) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.fpcalc_bin,
                "-length",
                str(self.length_seconds),
                str(file_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise FingerprintError(
                f"fpcalc binary not found ({self.fpcalc_bin}); "
                "install Chromaprint to enable fingerprinting"
            ) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            logger.warning("fpcalc timed out after %.0f seconds on %s", self.timeout, file_path)
            raise FingerprintError(f"fpcalc timed out after {self.timeout:.0f}s") from exc

        if proc.returncode != 0:
            stderr = stderr_bytes.decode(errors="replace").strip()
            logger.warning("fpcalc exited with code %d: %s", proc.returncode, stderr)
            raise FingerprintError(f"fpcalc exited with code {proc.returncode}: {stderr}")

        return parse_fpcalc_output(stdout_bytes.decode(errors="replace"))
