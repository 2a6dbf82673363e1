"""Audio muting, probing and verification."""

from callredact.audio.editor import AudioEditor, FfmpegAudioEditor, build_mute_filter
from callredact.audio.probe import AudioMetadata, probe_audio, probe_duration
from callredact.audio.redactor import AudioRedactor

__all__ = [
    "AudioEditor",
    "AudioMetadata",
    "AudioRedactor",
    "FfmpegAudioEditor",
    "build_mute_filter",
    "probe_audio",
    "probe_duration",
]
