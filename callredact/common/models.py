"""Typed data model shared by the redaction pipeline stages.

Word timestamps come from the transcription provider; spans, mute
intervals and records are produced here. All times are seconds from
the start of the recording.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TriggerCategory(str, Enum):
    """Kind of sensitive disclosure a span was judged to contain."""

    CARD_NUMBER = "card_number"
    CVV = "cvv"
    EXPIRY = "expiry"
    DOB = "dob"
    CREDENTIAL = "credential"
    ADDRESS = "address"
    SSN = "ssn"
    EMAIL = "email"


class RedactionStatus(str, Enum):
    """Status of a recording's redaction record.

    not_needed, completed and failed are terminal for an attempt. A failed
    record may start a new attempt; the others only through an explicit
    re-redaction.
    """

    NOT_NEEDED = "not_needed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReplacePhase(str, Enum):
    """Last phase reached by a remote replacement attempt."""

    PENDING = "pending"  # nothing written remotely yet
    UPLOADED_TEMP = "uploaded_temp"
    DELETED_ORIGINAL = "deleted_original"  # original gone, rename outstanding
    RENAMED_TEMP = "renamed_temp"


class Word(BaseModel):
    """A transcribed word with its audio timestamps."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="The word text as transcribed")
    start: float = Field(..., ge=0, description="Start time in seconds")
    end: float = Field(..., ge=0, description="End time in seconds")

    @model_validator(mode="after")
    def _check_order(self) -> "Word":
        if self.start > self.end:
            raise ValueError(f"word start {self.start} is after end {self.end}")
        return self


class DetectionSpan(BaseModel):
    """Contiguous word range judged sensitive.

    Indices are inclusive and reference the immutable word sequence the
    span was detected in.
    """

    model_config = ConfigDict(frozen=True)

    category: TriggerCategory
    word_start: int = Field(..., ge=0, description="Index of first word")
    word_end: int = Field(..., ge=0, description="Index of last word (inclusive)")
    trigger: str | None = Field(
        default=None,
        description="What opened the span, e.g. 'keyword:cvv' or 'pattern:ssn_token'",
    )

    @model_validator(mode="after")
    def _check_order(self) -> "DetectionSpan":
        if self.word_start > self.word_end:
            raise ValueError(
                f"span start {self.word_start} is after end {self.word_end}"
            )
        return self

    def contains(self, other: "DetectionSpan") -> bool:
        return self.word_start <= other.word_start and other.word_end <= self.word_end


class MuteInterval(BaseModel):
    """Time range of audio to silence.

    Built from one or more spans; after merging, ``categories`` keeps every
    contributing category for audit.
    """

    start: float = Field(..., ge=0, description="Start time in seconds")
    end: float = Field(..., ge=0, description="End time in seconds")
    categories: list[TriggerCategory] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_order(self) -> "MuteInterval":
        if self.start > self.end:
            raise ValueError(f"interval start {self.start} is after end {self.end}")
        return self

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def reason(self) -> str:
        return ",".join(c.value for c in self.categories)

    def to_segment(self) -> dict:
        """Serialize for the record's persisted ``segments`` column."""
        return {
            "start": round(self.start, 3),
            "end": round(self.end, 3),
            "categories": [c.value for c in self.categories],
            "reason": self.reason,
        }
