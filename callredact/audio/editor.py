"""FFmpeg-backed audio editing.

Mutes intervals in place: the filter only scales volume to zero inside
each interval, so sample count (and therefore duration) is unchanged.
The output is re-encoded with the input's codec, sample rate and channel
layout so it can replace the original file byte-format for byte-format.
"""

from __future__ import annotations

import json
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import structlog

from callredact.common.models import MuteInterval
from callredact.exceptions import AudioToolError

logger = structlog.get_logger()

# ffprobe reports decoders; a few need a differently named encoder.
_ENCODER_FOR_CODEC = {
    "mp3": "libmp3lame",
    "vorbis": "libvorbis",
    "opus": "libopus",
}
DEFAULT_ENCODER = "pcm_s16le"


class AudioEditor(Protocol):
    """Anything that can mute intervals of an audio file."""

    def mute(
        self,
        input_path: Path,
        output_path: Path,
        intervals: Sequence[MuteInterval],
    ) -> None: ...


def build_mute_filter(intervals: Sequence[MuteInterval]) -> str:
    """Build the ``-af`` filter chain silencing every interval."""
    return ",".join(
        f"volume=enable='between(t,{iv.start:.3f},{iv.end:.3f})':volume=0"
        for iv in intervals
    )


class FfmpegAudioEditor:
    """Mutes audio intervals by shelling out to ffmpeg."""

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
        timeout_seconds: float = 300,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary
        self.timeout_seconds = timeout_seconds

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout_seconds
            )
        except subprocess.TimeoutExpired:
            raise AudioToolError(
                f"{cmd[0]} timed out after {self.timeout_seconds}s"
            ) from None
        except FileNotFoundError as e:
            raise AudioToolError(f"{cmd[0]} is not installed: {e}") from e

    def probe_stream(self, audio_path: Path) -> dict[str, Any]:
        """Codec, sample rate and channel count of the first audio stream."""
        cmd = [
            self.ffprobe_binary,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_streams",
            "-select_streams",
            "a:0",
            str(audio_path),
        ]
        result = self._run(cmd)
        if result.returncode != 0:
            raise AudioToolError(f"ffprobe failed for {audio_path.name}: {result.stderr}")

        try:
            probe_data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise AudioToolError(f"Failed to parse ffprobe output: {e}") from e

        streams = probe_data.get("streams", [])
        if not streams:
            raise AudioToolError(f"No audio stream found in {audio_path.name}")

        stream = streams[0]
        return {
            "codec_name": stream.get("codec_name"),
            "sample_rate": stream.get("sample_rate"),
            "channels": stream.get("channels"),
        }

    def mute(
        self,
        input_path: Path,
        output_path: Path,
        intervals: Sequence[MuteInterval],
    ) -> None:
        """Write ``input_path`` to ``output_path`` with ``intervals`` silenced.

        Raises:
            AudioToolError: ffmpeg/ffprobe missing, failed or timed out
        """
        stream = self.probe_stream(input_path)
        codec = stream["codec_name"]
        encoder = _ENCODER_FOR_CODEC.get(codec, codec) if codec else DEFAULT_ENCODER

        cmd = [
            self.ffmpeg_binary,
            "-y",
            "-i",
            str(input_path),
            "-af",
            build_mute_filter(intervals),
            "-c:a",
            encoder,
        ]
        if stream["sample_rate"]:
            cmd += ["-ar", str(stream["sample_rate"])]
        if stream["channels"]:
            cmd += ["-ac", str(stream["channels"])]
        cmd.append(str(output_path))

        logger.debug("ffmpeg_command", cmd=" ".join(cmd))

        result = self._run(cmd)
        if result.returncode != 0:
            logger.error(
                "ffmpeg_failed",
                returncode=result.returncode,
                stderr=result.stderr[-2000:],
            )
            raise AudioToolError(f"ffmpeg exited with {result.returncode}: {result.stderr[-500:]}")

        if not output_path.exists():
            raise AudioToolError(f"ffmpeg did not produce output file: {output_path.name}")

    def health_check(self) -> dict[str, Any]:
        """Report whether ffmpeg and ffprobe can be executed."""
        available = {}
        for name, binary in (("ffmpeg", self.ffmpeg_binary), ("ffprobe", self.ffprobe_binary)):
            try:
                result = subprocess.run(
                    [binary, "-version"], capture_output=True, text=True, timeout=10
                )
                available[name] = result.returncode == 0
            except (FileNotFoundError, subprocess.TimeoutExpired):
                available[name] = False

        return {
            "status": "healthy" if all(available.values()) else "degraded",
            "ffmpeg_available": available["ffmpeg"],
            "ffprobe_available": available["ffprobe"],
        }
