"""Redaction pipeline exceptions.

Every error carries a stable ``kind`` string. The kind is what gets
persisted on a failed redaction record, so operators can tell an
ordinary retryable failure apart from the partial-replace state in
which the original recording is already gone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from callredact.common.models import ReplacePhase


class RedactionError(Exception):
    """Base class for all redaction pipeline failures."""

    kind: str = "redaction_error"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence and structured logs."""
        return {
            "error": self.kind,
            "message": str(self),
            "retryable": self.retryable,
        }


class DetectionError(RedactionError):
    """Word timestamps are missing or malformed.

    Redaction is skipped for the recording; timestamps are never guessed.
    """

    kind = "detection_error"


class AudioToolError(RedactionError):
    """The audio editor failed or produced output that fails verification.

    Always raised before any remote deletion, so the original is intact.
    """

    kind = "audio_tool_error"

    def __init__(
        self,
        message: str,
        expected_duration: float | None = None,
        actual_duration: float | None = None,
    ) -> None:
        super().__init__(message)
        self.expected_duration = expected_duration
        self.actual_duration = actual_duration

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.expected_duration is not None:
            result["expected_duration"] = self.expected_duration
        if self.actual_duration is not None:
            result["actual_duration"] = self.actual_duration
        return result


class RemoteTransferError(RedactionError):
    """Remote replacement failed before the original was deleted.

    The original recording is still at its target path (or, when
    ``original_verified`` is False, assumed to be until proven otherwise).
    """

    kind = "remote_transfer_error"
    retryable = True

    def __init__(
        self,
        message: str,
        target_path: str,
        phase: ReplacePhase,
        temp_path: str | None = None,
        original_verified: bool = True,
    ) -> None:
        super().__init__(message)
        self.target_path = target_path
        self.phase = phase
        self.temp_path = temp_path
        self.original_verified = original_verified

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["target_path"] = self.target_path
        result["phase"] = self.phase.value
        result["original_verified"] = self.original_verified
        if self.temp_path:
            result["temp_path"] = self.temp_path
        return result


class ReplaceInProgressError(RemoteTransferError):
    """Another replacement already holds the single-flight lock for the path."""

    kind = "replace_in_progress"


class RemoteReplacePartialError(RedactionError):
    """The original was deleted but the redacted copy never reached the target.

    This is the one unrecoverable-by-default state: there is no validated
    file at ``target_path``. The redacted copy may still exist at
    ``temp_path``. Never retried automatically; recovery is an explicit
    operator action that renames ``temp_path`` onto ``target_path``.
    """

    kind = "remote_replace_partial"
    retryable = False

    def __init__(
        self,
        message: str,
        target_path: str,
        temp_path: str,
        phase: ReplacePhase,
    ) -> None:
        super().__init__(message)
        self.target_path = target_path
        self.temp_path = temp_path
        self.phase = phase

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["target_path"] = self.target_path
        result["temp_path"] = self.temp_path
        result["phase"] = self.phase.value
        return result


class PersistenceError(RedactionError):
    """Writing the redaction record failed after all retries.

    Retried independently of the pipeline; destructive steps are never
    repeated because a write failed.
    """

    kind = "persistence_error"
    retryable = True

    def __init__(self, message: str, recording_id: str, attempts: int) -> None:
        super().__init__(message)
        self.recording_id = recording_id
        self.attempts = attempts


class InvalidTransitionError(RedactionError):
    """A redaction record was asked to move against its state machine."""

    kind = "invalid_transition"

    def __init__(self, recording_id: str, current: str | None, requested: str) -> None:
        super().__init__(
            f"Recording {recording_id}: cannot move redaction status "
            f"from {current or 'none'} to {requested}"
        )
        self.recording_id = recording_id
        self.current = current
        self.requested = requested


class RecoveryNotAllowedError(RedactionError):
    """Partial-replace recovery was requested for a record not eligible for it."""

    kind = "recovery_not_allowed"
