"""Per-recording redaction orchestration.

    words -> spans -> sanitized text            (always, in-process)
                   -> mute intervals -> muted audio -> remote replace

Sanitized text is persisted before any audio work starts. The remote
original is only touched after the muted copy passed verification.
Recordings are independent: one recording's failure is recorded on its
own RedactionRecord and never aborts its siblings.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from callredact import metrics
from callredact.audio import AudioRedactor, FfmpegAudioEditor, probe_duration
from callredact.common.models import (
    DetectionSpan,
    MuteInterval,
    RedactionStatus,
    ReplacePhase,
    Word,
)
from callredact.config import (
    DEFAULT_REDACTION_MARKER,
    DEFAULT_REMOTE_BASE_PATH,
    Settings,
    get_settings,
)
from callredact.db.session import create_engine, create_session_factory
from callredact.detection import (
    RedactionPolicy,
    SpanDetector,
    TimeSpanMapper,
    TranscriptSanitizer,
    load_policy,
    parse_words,
    scrub_text,
)
from callredact.exceptions import (
    DetectionError,
    RecoveryNotAllowedError,
    RedactionError,
    RemoteTransferError,
)
from callredact.logging import reset_context
from callredact.records import RedactionRecord, RedactionRecordStore
from callredact.remote import (
    LocalSingleFlight,
    RedisSingleFlight,
    RemoteReplaceWorkflow,
    SftpStorage,
    resolve_remote_path,
)

logger = structlog.get_logger()


@dataclass
class RecordingInput:
    """Everything the pipeline needs for one recording."""

    recording_id: str
    text: str = ""
    words: Iterable[Word | Mapping[str, Any]] | None = None
    audio: bytes | None = None
    audio_duration: float | None = None
    remote_path: str | None = None
    filename: str | None = None
    reredact: bool = False


@dataclass
class RedactionOutcome:
    """Result of processing one recording.

    ``record`` reflects the final state even when ``persist_error`` is set;
    save it again with ``RedactionPipeline.persist`` once the store is back.
    """

    record: RedactionRecord
    sanitized_text: str
    redacted_audio: bytes | None = None
    spans: list[DetectionSpan] = field(default_factory=list)
    intervals: list[MuteInterval] = field(default_factory=list)
    skipped: bool = False
    persist_error: RedactionError | None = None


class RedactionPipeline:
    """Detects, sanitizes and redacts recordings, recording every outcome."""

    def __init__(
        self,
        store: RedactionRecordStore,
        policy: RedactionPolicy | None = None,
        audio_redactor: AudioRedactor | None = None,
        replace_workflow: RemoteReplaceWorkflow | None = None,
        remote_base_path: str = DEFAULT_REMOTE_BASE_PATH,
        remote_replace_enabled: bool = True,
        redaction_marker: str | None = None,
        max_concurrent: int = 4,
    ) -> None:
        self.store = store
        self.policy = policy or RedactionPolicy()
        self.detector = SpanDetector(self.policy)
        self.mapper = TimeSpanMapper(self.policy)
        self.sanitizer = TranscriptSanitizer(redaction_marker or DEFAULT_REDACTION_MARKER)
        self.audio_redactor = audio_redactor or AudioRedactor()
        self.replace_workflow = replace_workflow
        self.remote_base_path = remote_base_path
        self.remote_replace_enabled = remote_replace_enabled
        self.max_concurrent = max_concurrent

    async def persist(self, record: RedactionRecord) -> None:
        """Save ``record``; raises PersistenceError when retries run out."""
        await self.store.save(record)

    async def _finish(
        self, outcome: RedactionOutcome, log: structlog.stdlib.BoundLogger
    ) -> RedactionOutcome:
        record = outcome.record
        if record.status is not None:
            metrics.inc_records(record.status.value)
        try:
            await self.store.save(record)
        except RedactionError as e:
            log.error("record_persist_deferred", error=str(e), status=record.status)
            outcome.persist_error = e
        return outcome

    async def process(self, item: RecordingInput) -> RedactionOutcome:
        """Run the full pipeline for one recording.

        Raises:
            PersistenceError: The record could not be saved before audio
                work began; nothing destructive was attempted.
        """
        log = logger.bind(recording_id=item.recording_id)
        record = await self.store.get(item.recording_id)
        if record is None:
            record = RedactionRecord(recording_id=item.recording_id)

        if record.is_partial_replace:
            log.warning("redaction_skipped_partial_replace", temp_path=record.remote_temp_path)
            return RedactionOutcome(
                record=record, sanitized_text=record.sanitized_text or "", skipped=True
            )
        if record.status not in (None, RedactionStatus.FAILED) and not item.reredact:
            log.info("redaction_skipped", status=record.status.value)
            return RedactionOutcome(
                record=record, sanitized_text=record.sanitized_text or "", skipped=True
            )

        text = item.text or ""

        try:
            words = self._words(item)
        except DetectionError as e:
            log.warning("word_timestamps_invalid", error=str(e))
            sanitized = scrub_text(text, self.sanitizer.marker)
            record.mark_processing(reredact=item.reredact)
            record.mark_failed(e, sanitized_text=sanitized)
            outcome = RedactionOutcome(record=record, sanitized_text=sanitized)
            return await self._finish(outcome, log)

        spans = self.detector.detect(words)
        for category, count in Counter(s.category.value for s in spans).items():
            metrics.inc_spans_detected(category, count)

        if not spans:
            if record.status is not None:
                record.mark_processing(reredact=item.reredact)
            record.mark_not_needed(sanitized_text=text)
            log.info("redaction_not_needed", word_count=len(words))
            return await self._finish(RedactionOutcome(record=record, sanitized_text=text), log)

        sanitized = self.sanitizer.sanitize(text, words, spans)
        outcome = RedactionOutcome(record=record, sanitized_text=sanitized, spans=spans)

        target_path = None
        if item.remote_path and self.remote_replace_enabled:
            target_path = resolve_remote_path(item.remote_path, self.remote_base_path)

        record.mark_processing(reredact=item.reredact)
        record.sanitized_text = sanitized
        record.remote_target_path = target_path
        await self.store.save(record)

        try:
            await self._redact_audio(item, words, outcome, target_path, log)
        except RedactionError as e:
            log.error("redaction_failed", error_kind=e.kind, error=str(e))
            record.mark_failed(e)
        except Exception as e:
            log.exception("redaction_failed_unexpectedly")
            record.mark_failed(RedactionError(f"Unexpected error: {e}"))

        return await self._finish(outcome, log)

    def _words(self, item: RecordingInput) -> list[Word]:
        if item.words is None and not (item.text or "").strip():
            return []
        words = parse_words(item.words)
        if not words and (item.text or "").strip():
            raise DetectionError("Transcript has text but no word timestamps")
        return words

    async def _redact_audio(
        self,
        item: RecordingInput,
        words: Sequence[Word],
        outcome: RedactionOutcome,
        target_path: str | None,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        record = outcome.record

        audio = item.audio if self.remote_replace_enabled else None
        if audio is None and target_path:
            if self.replace_workflow is None:
                raise RemoteTransferError(
                    "No remote storage is configured",
                    target_path=target_path,
                    phase=ReplacePhase.PENDING,
                )
            audio = await self.replace_workflow.fetch(target_path)

        duration = item.audio_duration
        if duration is None:
            if audio is not None:
                duration = await asyncio.to_thread(
                    probe_duration, audio, item.filename or target_path
                )
            else:
                duration = max(w.end for w in words)

        intervals = self.mapper.map(outcome.spans, words, duration)
        outcome.intervals = intervals
        record.segments = [iv.to_segment() for iv in intervals]

        if audio is None or not intervals:
            log.info(
                "redaction_text_only",
                remote_replace_enabled=self.remote_replace_enabled,
                interval_count=len(intervals),
            )
            record.mark_completed(outcome.sanitized_text, redacted=False)
            return

        redacted = await asyncio.to_thread(
            self.audio_redactor.redact,
            audio,
            intervals,
            recording_id=item.recording_id,
            filename=item.filename or target_path,
            expected_duration=duration,
        )
        outcome.redacted_audio = redacted

        if target_path is None:
            record.mark_completed(outcome.sanitized_text, redacted=True)
            return

        if self.replace_workflow is None:
            raise RemoteTransferError(
                "No remote storage is configured",
                target_path=target_path,
                phase=ReplacePhase.PENDING,
            )
        result = await self.replace_workflow.replace(redacted, target_path, item.recording_id)
        record.mark_completed(outcome.sanitized_text, redacted=True, replace_phase=result.phase)

    async def process_many(
        self, items: Sequence[RecordingInput]
    ) -> list[RedactionOutcome | BaseException]:
        """Process recordings concurrently; failures stay per recording."""
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _one(item: RecordingInput) -> RedactionOutcome:
            # gather runs each coroutine in its own task and context copy
            reset_context(recording_id=item.recording_id)
            async with semaphore:
                return await self.process(item)

        results = await asyncio.gather(*(_one(i) for i in items), return_exceptions=True)
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.error(
                    "recording_processing_failed",
                    recording_id=item.recording_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
        return list(results)

    async def recover_partial_replace(self, recording_id: str) -> RedactionRecord:
        """Rename a surviving temp copy onto a deleted original.

        Raises:
            RecoveryNotAllowedError: The record is not in a recoverable state
            RemoteReplacePartialError: The rename failed again
        """
        record = await self.store.get(recording_id)
        if record is None or not record.is_partial_replace:
            raise RecoveryNotAllowedError(
                f"Recording {recording_id} is not in a partial-replace state"
            )
        if not record.remote_target_path or not record.remote_temp_path:
            raise RecoveryNotAllowedError(
                f"Recording {recording_id} has no known temp copy to recover from"
            )
        if self.replace_workflow is None:
            raise RecoveryNotAllowedError("No remote storage is configured")

        await self.replace_workflow.recover(
            record.remote_target_path, record.remote_temp_path, recording_id
        )
        record.mark_recovered()
        metrics.inc_records(RedactionStatus.COMPLETED.value)
        await self.store.save(record)
        return record


def create_pipeline(settings: Settings | None = None) -> RedactionPipeline:
    """Wire a pipeline from settings: database, policy, ffmpeg, SFTP and locks."""
    settings = settings or get_settings()
    metrics.configure_metrics()

    engine = create_engine(settings)
    store = RedactionRecordStore(
        create_session_factory(engine),
        max_retries=settings.persist_max_retries,
        backoff_delays=settings.persist_backoff_seconds,
    )

    editor = FfmpegAudioEditor(
        ffmpeg_binary=settings.ffmpeg_binary,
        ffprobe_binary=settings.ffprobe_binary,
        timeout_seconds=settings.ffmpeg_timeout_seconds,
    )
    audio_redactor = AudioRedactor(editor, tolerance_seconds=settings.duration_tolerance_seconds)

    replace_workflow = None
    if settings.sftp_host:
        if settings.single_flight_backend == "redis":
            single_flight = RedisSingleFlight.from_url(
                settings.redis_url, ttl_seconds=settings.single_flight_ttl_seconds
            )
        else:
            single_flight = LocalSingleFlight()
        replace_workflow = RemoteReplaceWorkflow(
            SftpStorage.from_settings(settings), single_flight
        )

    return RedactionPipeline(
        store=store,
        policy=load_policy(settings.policy_file),
        audio_redactor=audio_redactor,
        replace_workflow=replace_workflow,
        remote_base_path=settings.sftp_base_path,
        remote_replace_enabled=settings.remote_replace_enabled,
        redaction_marker=settings.redaction_marker,
        max_concurrent=settings.max_concurrent_recordings,
    )
