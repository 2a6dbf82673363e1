"""Audio metadata probing.

Uses tinytag to read duration, sample rate and channel count from
in-memory audio, both for the original recording (to bound mute
intervals) and for the redacted output (to verify duration was kept).
"""

from dataclasses import dataclass
from io import BytesIO

import structlog
from tinytag import TinyTag, TinyTagException

from callredact.exceptions import AudioToolError

logger = structlog.get_logger()


@dataclass
class AudioMetadata:
    """Audio file metadata extracted from audio bytes."""

    duration: float  # Duration in seconds
    sample_rate: int | None  # Sample rate in Hz
    channels: int | None  # Number of audio channels
    bit_depth: int | None  # None for lossy formats


def probe_audio(data: bytes, filename: str | None = None) -> AudioMetadata:
    """Probe audio data to extract metadata.

    Args:
        data: Raw audio file bytes
        filename: File name or path (helps with format detection)

    Returns:
        AudioMetadata for the first audio stream

    Raises:
        AudioToolError: If the data is not readable audio or has no duration
    """
    if not data:
        raise AudioToolError("Audio is empty")

    try:
        tag = TinyTag.get(file_obj=BytesIO(data), filename=filename)
    except TinyTagException as e:
        raise AudioToolError(f"Unable to read audio file: {e}") from e
    except Exception as e:
        raise AudioToolError(f"Unexpected error probing audio: {e}") from e

    if tag.duration is None:
        raise AudioToolError("Could not determine audio duration. File may be corrupted.")

    logger.debug(
        "audio_probed",
        filename=filename,
        duration=tag.duration,
        sample_rate=tag.samplerate,
        channels=tag.channels,
    )

    return AudioMetadata(
        duration=float(tag.duration),
        sample_rate=tag.samplerate,
        channels=tag.channels,
        bit_depth=tag.bitdepth,
    )


def probe_duration(data: bytes, filename: str | None = None) -> float:
    """Duration of ``data`` in seconds."""
    return probe_audio(data, filename).duration
