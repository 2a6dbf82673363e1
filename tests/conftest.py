"""Shared fixtures: word sequences, WAV buffers, fake storage and editors."""

import io
import wave
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from callredact.common.models import Word
from callredact.records.state import RedactionRecord


def build_words(text: str, start: float = 0.0, step: float = 0.5, length: float = 0.4):
    """One Word per whitespace token, evenly spaced."""
    words = []
    t = start
    for token in text.split():
        words.append(Word(text=token, start=round(t, 3), end=round(t + length, 3)))
        t += step
    return words


def build_wav(duration: float, sample_rate: int = 8000, amplitude: int = 8000) -> bytes:
    """Mono 16-bit PCM WAV of a constant non-zero signal."""
    frames = int(duration * sample_rate)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(amplitude.to_bytes(2, "little", signed=True) * frames)
    return buffer.getvalue()


def read_samples(data: bytes) -> tuple[list[int], int]:
    with wave.open(io.BytesIO(data), "rb") as wav:
        rate = wav.getframerate()
        raw = wav.readframes(wav.getnframes())
    samples = [
        int.from_bytes(raw[i : i + 2], "little", signed=True) for i in range(0, len(raw), 2)
    ]
    return samples, rate


class WaveMuteEditor:
    """Mutes 16-bit mono WAV files in pure Python."""

    def __init__(self) -> None:
        self.calls = []

    def mute(self, input_path: Path, output_path: Path, intervals) -> None:
        self.calls.append((input_path, output_path, list(intervals)))
        with wave.open(str(input_path), "rb") as src:
            params = src.getparams()
            raw = bytearray(src.readframes(src.getnframes()))
        for iv in intervals:
            first = int(iv.start * params.framerate) * 2
            last = min(len(raw), int(iv.end * params.framerate) * 2)
            raw[first:last] = bytes(last - first)
        with wave.open(str(output_path), "wb") as dst:
            dst.setparams(params)
            dst.writeframes(bytes(raw))


class TruncatingEditor:
    """Produces output that is half as long as the input."""

    def mute(self, input_path: Path, output_path: Path, intervals) -> None:
        with wave.open(str(input_path), "rb") as src:
            params = src.getparams()
            raw = src.readframes(src.getnframes() // 2)
        with wave.open(str(output_path), "wb") as dst:
            dst.setparams(params)
            dst.writeframes(raw)


class FakeRemoteSession:
    """In-memory remote file tree with injectable failures."""

    def __init__(self, files: dict[str, bytes], fail: dict[str, Exception], ops: list):
        self.files = files
        self.fail = fail
        self.ops = ops

    def _maybe_fail(self, op: str, path: str) -> None:
        """Raise the failure registered for "op:path", or for "op" on any path."""
        self.ops.append(op)
        error = self.fail.get(f"{op}:{path}") or self.fail.get(op)
        if error is not None:
            raise error

    async def upload(self, data: bytes, path: str) -> None:
        self._maybe_fail("upload", path)
        self.files[path] = data

    async def download(self, path: str) -> bytes:
        self._maybe_fail("download", path)
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def delete(self, path: str) -> None:
        self._maybe_fail("delete", path)
        if path not in self.files:
            raise FileNotFoundError(path)
        del self.files[path]

    async def rename(self, source: str, target: str) -> None:
        self._maybe_fail("rename", target)
        self.files[target] = self.files.pop(source)

    async def exists(self, path: str) -> bool:
        self._maybe_fail("exists", path)
        return path in self.files

    async def makedirs(self, path: str) -> None:
        self._maybe_fail("makedirs", path)


class FakeStorage:
    """RemoteStorage whose sessions share one in-memory file tree."""

    base_path = "/var/spool/asterisk/monitor"

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})
        self.fail: dict[str, Exception] = {}
        self.ops: list[str] = []
        self.sessions_opened = 0

    @asynccontextmanager
    async def session(self):
        self.sessions_opened += 1
        yield FakeRemoteSession(self.files, self.fail, self.ops)


class InMemoryRecordStore:
    """RedactionRecordStore stand-in keeping a history of saved states."""

    def __init__(self) -> None:
        self.records: dict[str, RedactionRecord] = {}
        self.history: list[RedactionRecord] = []
        self.fail_saves = 0
        self.save_error: Exception | None = None

    async def get(self, recording_id: str):
        record = self.records.get(recording_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: RedactionRecord) -> None:
        if self.fail_saves and self.save_error is not None:
            self.fail_saves -= 1
            raise self.save_error
        snapshot = record.model_copy(deep=True)
        self.records[record.recording_id] = snapshot
        self.history.append(snapshot)


@pytest.fixture
def make_words():
    return build_words


@pytest.fixture
def make_wav():
    return build_wav


@pytest.fixture
def samples_of():
    return read_samples


@pytest.fixture
def mute_editor():
    return WaveMuteEditor()


@pytest.fixture
def truncating_editor():
    return TruncatingEditor()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def record_store():
    return InMemoryRecordStore()
