"""Redaction record and its state machine.

    (none) -> not_needed                      terminal, no spans
    (none) -> processing -> completed         terminal
                         -> failed            terminal for this attempt

``failed`` may start a new attempt, except after a partial remote
replace, which only an operator recovery can resolve. ``completed`` and
``not_needed`` move back to ``processing`` only through an explicit
re-redaction.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from callredact.common.models import MuteInterval, RedactionStatus, ReplacePhase
from callredact.exceptions import (
    InvalidTransitionError,
    RecoveryNotAllowedError,
    RedactionError,
    RemoteReplacePartialError,
)

TERMINAL_STATUSES = frozenset(
    {RedactionStatus.NOT_NEEDED, RedactionStatus.COMPLETED, RedactionStatus.FAILED}
)
REREDACT_ONLY = frozenset(
    {RedactionStatus.PROCESSING, RedactionStatus.COMPLETED, RedactionStatus.NOT_NEEDED}
)


def _now() -> datetime:
    return datetime.now(UTC)


class RedactionRecord(BaseModel):
    """Persisted outcome of redacting one recording."""

    recording_id: str
    status: RedactionStatus | None = None
    redacted: bool = False
    segments: list[dict[str, Any]] = Field(default_factory=list)
    sanitized_text: str | None = None
    redacted_at: datetime | None = None
    error: str | None = None
    error_kind: str | None = None
    replace_phase: ReplacePhase | None = None
    remote_target_path: str | None = None
    remote_temp_path: str | None = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_partial_replace(self) -> bool:
        return (
            self.status == RedactionStatus.FAILED
            and self.error_kind == RemoteReplacePartialError.kind
        )

    def _move(self, status: RedactionStatus) -> None:
        self.status = status
        self.updated_at = _now()

    def _reject(self, requested: RedactionStatus) -> InvalidTransitionError:
        current = self.status.value if self.status else None
        return InvalidTransitionError(self.recording_id, current, requested.value)

    def mark_not_needed(self, sanitized_text: str | None = None) -> None:
        """No spans were found; nothing to redact."""
        if self.status not in (None, RedactionStatus.PROCESSING):
            raise self._reject(RedactionStatus.NOT_NEEDED)
        self.redacted = False
        self.segments = []
        self.sanitized_text = sanitized_text
        self.error = None
        self.error_kind = None
        self._move(RedactionStatus.NOT_NEEDED)

    def mark_processing(
        self,
        segments: list[MuteInterval] | None = None,
        reredact: bool = False,
    ) -> None:
        """Start an attempt.

        Args:
            segments: Mute intervals planned for this attempt
            reredact: Allow leaving ``completed``/``not_needed``, or taking
                over a ``processing`` record abandoned by a crashed worker
        """
        if self.is_partial_replace:
            raise self._reject(RedactionStatus.PROCESSING)
        if self.status in REREDACT_ONLY and not reredact:
            raise self._reject(RedactionStatus.PROCESSING)

        self.attempts += 1
        self.redacted = False
        self.redacted_at = None
        self.error = None
        self.error_kind = None
        self.replace_phase = None
        self.remote_temp_path = None
        if segments is not None:
            self.segments = [iv.to_segment() for iv in segments]
        self._move(RedactionStatus.PROCESSING)

    def mark_completed(
        self,
        sanitized_text: str | None,
        redacted: bool,
        replace_phase: ReplacePhase | None = None,
    ) -> None:
        if self.status != RedactionStatus.PROCESSING:
            raise self._reject(RedactionStatus.COMPLETED)
        self.sanitized_text = sanitized_text
        self.redacted = redacted
        self.redacted_at = _now() if redacted else None
        self.replace_phase = replace_phase
        self.remote_temp_path = None
        self._move(RedactionStatus.COMPLETED)

    def mark_failed(self, error: RedactionError, sanitized_text: str | None = None) -> None:
        """Record a failed attempt with the error kind and remote phase reached."""
        if self.status != RedactionStatus.PROCESSING:
            raise self._reject(RedactionStatus.FAILED)
        self.redacted = False
        self.error = str(error)
        self.error_kind = error.kind
        if sanitized_text is not None:
            self.sanitized_text = sanitized_text

        phase = getattr(error, "phase", None)
        if phase is not None:
            self.replace_phase = phase
        temp_path = getattr(error, "temp_path", None)
        # A temp only matters if it may still hold the sole redacted copy.
        if isinstance(error, RemoteReplacePartialError) or (
            temp_path and getattr(error, "original_verified", True) is False
        ):
            self.remote_temp_path = temp_path
        self._move(RedactionStatus.FAILED)

    def mark_recovered(self) -> None:
        """An operator moved the surviving temp copy onto the target path."""
        if not self.is_partial_replace:
            raise RecoveryNotAllowedError(
                f"Recording {self.recording_id} is not in a partial-replace state"
            )
        self.redacted = True
        self.redacted_at = _now()
        self.error = None
        self.error_kind = None
        self.replace_phase = ReplacePhase.RENAMED_TEMP
        self.remote_temp_path = None
        self._move(RedactionStatus.COMPLETED)
