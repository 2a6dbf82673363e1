"""Produce a muted copy of a recording and verify it before anyone uses it."""

import tempfile
import time
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

import structlog

from callredact import metrics
from callredact.audio.editor import AudioEditor, FfmpegAudioEditor
from callredact.audio.probe import probe_duration
from callredact.common.models import MuteInterval
from callredact.exceptions import AudioToolError

logger = structlog.get_logger()

DEFAULT_SUFFIX = ".wav"


class AudioRedactor:
    """Mutes intervals of in-memory audio.

    Work happens in a scoped temporary directory that is removed on every
    exit path. The returned buffer is guaranteed non-empty and within
    ``tolerance_seconds`` of the original duration; anything else raises
    AudioToolError, so a bad edit can never reach remote storage.
    """

    def __init__(
        self,
        editor: AudioEditor | None = None,
        tolerance_seconds: float = 0.05,
    ) -> None:
        self.editor = editor or FfmpegAudioEditor()
        self.tolerance_seconds = tolerance_seconds

    def redact(
        self,
        audio: bytes,
        intervals: Sequence[MuteInterval],
        *,
        recording_id: str = "recording",
        filename: str | None = None,
        expected_duration: float | None = None,
    ) -> bytes:
        """Return ``audio`` with every interval silenced.

        Args:
            audio: Original recording bytes
            intervals: Merged mute intervals in seconds
            recording_id: Used for logging and temp naming
            filename: Original file name; its extension picks the container
            expected_duration: Original duration if already probed

        Raises:
            AudioToolError: Editing failed or the output failed verification
        """
        if not intervals:
            return audio

        suffix = PurePosixPath(filename).suffix if filename else ""
        suffix = suffix or DEFAULT_SUFFIX
        if expected_duration is None:
            expected_duration = probe_duration(audio, f"input{suffix}")

        log = logger.bind(recording_id=recording_id)
        started = time.monotonic()

        with tempfile.TemporaryDirectory(prefix=f"callredact-{recording_id}-") as tmp:
            input_path = Path(tmp) / f"input{suffix}"
            output_path = Path(tmp) / f"redacted{suffix}"
            input_path.write_bytes(audio)

            self.editor.mute(input_path, output_path, intervals)

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise AudioToolError(
                    "Audio editor produced no output",
                    expected_duration=expected_duration,
                )
            redacted = output_path.read_bytes()

        actual_duration = probe_duration(redacted, f"redacted{suffix}")
        if abs(actual_duration - expected_duration) > self.tolerance_seconds:
            log.error(
                "redacted_duration_mismatch",
                expected_duration=expected_duration,
                actual_duration=actual_duration,
            )
            raise AudioToolError(
                f"Redacted audio is {actual_duration:.3f}s, expected {expected_duration:.3f}s",
                expected_duration=expected_duration,
                actual_duration=actual_duration,
            )

        elapsed = time.monotonic() - started
        metrics.observe_audio_redaction(elapsed)
        log.info(
            "audio_redacted",
            interval_count=len(intervals),
            muted_seconds=round(sum(iv.duration for iv in intervals), 3),
            duration=actual_duration,
            elapsed_seconds=round(elapsed, 3),
        )
        return redacted
