"""End-to-end tests for RedactionPipeline with in-memory collaborators."""

import pytest

from callredact.audio import AudioRedactor, probe_duration
from callredact.common.models import RedactionStatus, ReplacePhase
from callredact.exceptions import PersistenceError, RecoveryNotAllowedError
from callredact.pipeline import RecordingInput, RedactionPipeline
from callredact.remote import LocalSingleFlight, RemoteReplaceWorkflow

CARD_TEXT = "thanks my credit card number is four five three two okay"
DOB_TEXT = "my date of birth is one two two five nineteen ninety thanks"
CLEAN_TEXT = "hello I would like to change my calling plan"

RECORDING = "out-1001-2002-20240131-154500-1706715900.12.wav"
TARGET = f"/var/spool/asterisk/monitor/2024/01/31/{RECORDING}"


@pytest.fixture
def original_audio(make_wav):
    return make_wav(6.0)


@pytest.fixture
def storage(fake_storage, original_audio):
    fake_storage.files[TARGET] = original_audio
    return fake_storage


@pytest.fixture
def single_flight():
    return LocalSingleFlight()


@pytest.fixture
def build_pipeline(record_store, storage, mute_editor, single_flight):
    def _build(editor=None, **kwargs):
        kwargs.setdefault("replace_workflow", RemoteReplaceWorkflow(storage, single_flight))
        return RedactionPipeline(
            record_store, audio_redactor=AudioRedactor(editor or mute_editor), **kwargs
        )

    return _build


@pytest.fixture
def pipeline(build_pipeline):
    return build_pipeline()


def card_call(make_words, **kwargs):
    return RecordingInput(
        recording_id="rec-1",
        text=CARD_TEXT,
        words=make_words(CARD_TEXT),
        remote_path=RECORDING,
        **kwargs,
    )


class TestScenarios:
    async def test_card_number_is_muted_and_replaced(
        self, pipeline, make_words, storage, samples_of, record_store
    ):
        outcome = await pipeline.process(card_call(make_words))

        record = outcome.record
        assert record.status == RedactionStatus.COMPLETED
        assert record.redacted is True
        assert record.replace_phase == ReplacePhase.RENAMED_TEMP
        assert outcome.sanitized_text == "thanks my [REDACTED] okay"
        assert [(iv.start, iv.end) for iv in outcome.intervals] == [
            pytest.approx((0.5, 5.4))
        ]

        replaced = storage.files[TARGET]
        assert probe_duration(replaced, RECORDING) == pytest.approx(6.0, abs=0.01)
        samples, rate = samples_of(replaced)
        assert all(s == 0 for s in samples[int(0.55 * rate) : int(5.35 * rate)])
        assert samples[int(0.25 * rate)] != 0
        assert samples[int(5.75 * rate)] != 0
        assert record_store.records["rec-1"].status == RedactionStatus.COMPLETED

    async def test_sanitized_text_saved_before_audio_work(
        self, pipeline, make_words, record_store
    ):
        await pipeline.process(card_call(make_words))

        first = record_store.history[0]
        assert first.status == RedactionStatus.PROCESSING
        assert first.sanitized_text == "thanks my [REDACTED] okay"
        assert first.remote_target_path == TARGET
        assert [s.status for s in record_store.history] == [
            RedactionStatus.PROCESSING,
            RedactionStatus.COMPLETED,
        ]

    async def test_dob_padding_is_tighter(self, build_pipeline, make_words, storage):
        pipeline = build_pipeline(remote_replace_enabled=False)
        outcome = await pipeline.process(
            RecordingInput(
                recording_id="rec-2",
                text=DOB_TEXT,
                words=make_words(DOB_TEXT),
                remote_path=RECORDING,
            )
        )

        [segment] = outcome.record.segments
        assert segment["start"] == pytest.approx(2.35)
        assert segment["end"] == pytest.approx(5.55)
        assert segment["categories"] == ["dob"]
        assert outcome.record.status == RedactionStatus.COMPLETED
        assert outcome.record.redacted is False
        assert outcome.sanitized_text == "my [REDACTED] thanks"
        assert storage.ops == []

    async def test_clean_transcript_not_needed(
        self, pipeline, make_words, storage, mute_editor, record_store
    ):
        outcome = await pipeline.process(
            RecordingInput(
                recording_id="rec-3",
                text=CLEAN_TEXT,
                words=make_words(CLEAN_TEXT),
                remote_path=RECORDING,
            )
        )

        assert outcome.spans == []
        assert outcome.record.status == RedactionStatus.NOT_NEEDED
        assert outcome.sanitized_text == CLEAN_TEXT
        assert storage.ops == []
        assert mute_editor.calls == []
        assert [s.status for s in record_store.history] == [RedactionStatus.NOT_NEEDED]

    async def test_duration_mismatch_never_touches_original(
        self, build_pipeline, truncating_editor, make_words, storage, original_audio
    ):
        pipeline = build_pipeline(editor=truncating_editor)

        outcome = await pipeline.process(card_call(make_words))

        record = outcome.record
        assert record.status == RedactionStatus.FAILED
        assert record.error_kind == "audio_tool_error"
        assert record.sanitized_text == "thanks my [REDACTED] okay"
        assert "delete" not in storage.ops
        assert storage.files == {TARGET: original_audio}

    async def test_rename_failure_is_partial_and_not_retried(
        self, pipeline, make_words, storage, record_store
    ):
        storage.fail["rename"] = OSError("connection lost")

        outcome = await pipeline.process(card_call(make_words))

        record = outcome.record
        assert record.status == RedactionStatus.FAILED
        assert record.is_partial_replace
        assert record.replace_phase == ReplacePhase.DELETED_ORIGINAL
        assert record.remote_temp_path in storage.files
        assert TARGET not in storage.files
        assert storage.ops.count("delete") == 1

        again = await pipeline.process(card_call(make_words, reredact=True))
        assert again.skipped is True
        assert storage.ops.count("delete") == 1
        assert record_store.records["rec-1"].is_partial_replace


class TestAttempts:
    async def test_completed_record_is_skipped(self, pipeline, make_words, storage):
        await pipeline.process(card_call(make_words))
        ops_before = list(storage.ops)

        outcome = await pipeline.process(card_call(make_words))

        assert outcome.skipped is True
        assert outcome.sanitized_text == "thanks my [REDACTED] okay"
        assert storage.ops == ops_before

    async def test_reredact_runs_again(self, pipeline, make_words):
        await pipeline.process(card_call(make_words))
        outcome = await pipeline.process(card_call(make_words, reredact=True))

        assert outcome.skipped is False
        assert outcome.record.status == RedactionStatus.COMPLETED
        assert outcome.record.attempts == 2

    async def test_failed_record_is_retried(self, build_pipeline, make_words, truncating_editor):
        await build_pipeline(editor=truncating_editor).process(card_call(make_words))

        outcome = await build_pipeline().process(card_call(make_words))

        assert outcome.record.status == RedactionStatus.COMPLETED
        assert outcome.record.attempts == 2
        assert outcome.record.error is None

    async def test_busy_path_fails_retryably(self, pipeline, make_words, single_flight, storage):
        async with single_flight.hold(TARGET):
            outcome = await pipeline.process(card_call(make_words))

        assert outcome.record.status == RedactionStatus.FAILED
        assert outcome.record.error_kind == "replace_in_progress"
        assert outcome.record.replace_phase == ReplacePhase.PENDING
        assert "delete" not in storage.ops

        retried = await pipeline.process(card_call(make_words))
        assert retried.record.status == RedactionStatus.COMPLETED


class TestInputs:
    async def test_missing_word_timestamps_falls_back_to_scrub(self, pipeline, storage):
        outcome = await pipeline.process(
            RecordingInput(
                recording_id="rec-4",
                text="my card number is 4532 1234 5678 9010",
                remote_path=RECORDING,
            )
        )

        assert outcome.record.status == RedactionStatus.FAILED
        assert outcome.record.error_kind == "detection_error"
        assert "4532" not in outcome.sanitized_text
        assert "[REDACTED]" in outcome.record.sanitized_text
        assert storage.ops == []

    async def test_malformed_word_timestamps_fail(self, pipeline):
        outcome = await pipeline.process(
            RecordingInput(
                recording_id="rec-5",
                text="my pin is 4471",
                words=[{"text": "my", "start": 0.0}],
            )
        )
        assert outcome.record.error_kind == "detection_error"

    async def test_empty_transcript_not_needed(self, pipeline):
        outcome = await pipeline.process(RecordingInput(recording_id="rec-6"))
        assert outcome.record.status == RedactionStatus.NOT_NEEDED

    async def test_local_audio_without_remote_path(
        self, pipeline, make_words, make_wav, samples_of, storage
    ):
        outcome = await pipeline.process(
            RecordingInput(
                recording_id="rec-7",
                text=CARD_TEXT,
                words=make_words(CARD_TEXT),
                audio=make_wav(6.0),
                filename="call.wav",
            )
        )

        assert outcome.record.status == RedactionStatus.COMPLETED
        assert outcome.record.redacted is True
        samples, rate = samples_of(outcome.redacted_audio)
        assert samples[int(1.0 * rate)] == 0
        assert storage.ops == []

    async def test_remote_path_without_storage_fails(self, build_pipeline, make_words):
        pipeline = build_pipeline(replace_workflow=None)
        outcome = await pipeline.process(card_call(make_words))

        assert outcome.record.status == RedactionStatus.FAILED
        assert outcome.record.error_kind == "remote_transfer_error"
        assert outcome.record.replace_phase == ReplacePhase.PENDING

    async def test_missing_remote_file_fails(self, pipeline, make_words, storage):
        del storage.files[TARGET]
        outcome = await pipeline.process(card_call(make_words))

        assert outcome.record.status == RedactionStatus.FAILED
        assert outcome.record.error_kind == "remote_transfer_error"
        assert storage.ops == ["download"]


class TestPersistence:
    async def test_initial_save_failure_stops_before_audio(
        self, pipeline, make_words, record_store, storage, mute_editor
    ):
        record_store.fail_saves = 1
        record_store.save_error = PersistenceError("db down", recording_id="rec-1", attempts=4)

        with pytest.raises(PersistenceError):
            await pipeline.process(card_call(make_words))

        assert storage.ops == []
        assert mute_editor.calls == []

    async def test_final_save_failure_is_reported_not_raised(
        self, pipeline, make_words, record_store
    ):
        record_store.fail_saves = 1
        record_store.save_error = PersistenceError("db down", recording_id="rec-3", attempts=4)

        outcome = await pipeline.process(
            RecordingInput(recording_id="rec-3", text=CLEAN_TEXT, words=make_words(CLEAN_TEXT))
        )

        assert isinstance(outcome.persist_error, PersistenceError)
        assert outcome.record.status == RedactionStatus.NOT_NEEDED
        assert "rec-3" not in record_store.records

        await pipeline.persist(outcome.record)
        assert record_store.records["rec-3"].status == RedactionStatus.NOT_NEEDED


class TestBatch:
    async def test_failures_stay_per_recording(self, pipeline, make_words, storage):
        items = [
            card_call(make_words),
            RecordingInput(
                recording_id="rec-missing",
                text=CARD_TEXT,
                words=make_words(CARD_TEXT),
                remote_path="/var/spool/asterisk/monitor/gone.wav",
            ),
            RecordingInput(
                recording_id="rec-clean", text=CLEAN_TEXT, words=make_words(CLEAN_TEXT)
            ),
        ]

        results = await pipeline.process_many(items)

        statuses = {r.record.recording_id: r.record.status for r in results}
        assert statuses == {
            "rec-1": RedactionStatus.COMPLETED,
            "rec-missing": RedactionStatus.FAILED,
            "rec-clean": RedactionStatus.NOT_NEEDED,
        }

    async def test_raised_errors_are_returned_per_recording(
        self, pipeline, make_words, record_store
    ):
        record_store.fail_saves = 1
        record_store.save_error = PersistenceError("db down", recording_id="rec-1", attempts=4)

        results = await pipeline.process_many(
            [
                card_call(make_words),
                RecordingInput(
                    recording_id="rec-clean", text=CLEAN_TEXT, words=make_words(CLEAN_TEXT)
                ),
            ]
        )

        assert len(results) == 2
        assert any(isinstance(r, PersistenceError) for r in results)


class TestRecovery:
    async def test_recover_partial_replace(self, pipeline, make_words, storage, record_store):
        storage.fail["rename"] = OSError("connection lost")
        outcome = await pipeline.process(card_call(make_words))
        temp_path = outcome.record.remote_temp_path
        del storage.fail["rename"]

        record = await pipeline.recover_partial_replace("rec-1")

        assert record.status == RedactionStatus.COMPLETED
        assert record.redacted is True
        assert temp_path not in storage.files
        assert TARGET in storage.files
        assert record_store.records["rec-1"].status == RedactionStatus.COMPLETED

    async def test_recover_refused_for_completed_record(self, pipeline, make_words):
        await pipeline.process(card_call(make_words))
        with pytest.raises(RecoveryNotAllowedError):
            await pipeline.recover_partial_replace("rec-1")

    async def test_recover_refused_for_unknown_record(self, pipeline):
        with pytest.raises(RecoveryNotAllowedError):
            await pipeline.recover_partial_replace("rec-404")
