"""Convert word-index spans into padded, merged audio mute intervals.

Merging happens here rather than in the detector so that it follows
actual time proximity: two spans a few words apart may be seconds apart
if the caller paused.
"""

import math
from collections.abc import Sequence

import structlog

from callredact.common.models import DetectionSpan, MuteInterval, TriggerCategory, Word
from callredact.detection.policy import RedactionPolicy
from callredact.exceptions import DetectionError

logger = structlog.get_logger()


def _union(
    first: list[TriggerCategory], second: list[TriggerCategory]
) -> list[TriggerCategory]:
    result = list(first)
    for category in second:
        if category not in result:
            result.append(category)
    return result


def merge_intervals(intervals: Sequence[MuteInterval]) -> list[MuteInterval]:
    """Sort intervals and merge any that overlap or touch.

    Categories of merged intervals are unioned in order of appearance.
    """
    if not intervals:
        return []

    ordered = sorted(intervals, key=lambda iv: (iv.start, iv.end))
    merged: list[MuteInterval] = [ordered[0].model_copy(deep=True)]

    for interval in ordered[1:]:
        current = merged[-1]
        if interval.start <= current.end:
            merged[-1] = MuteInterval(
                start=current.start,
                end=max(current.end, interval.end),
                categories=_union(current.categories, interval.categories),
            )
        else:
            merged.append(interval.model_copy(deep=True))

    return merged


class TimeSpanMapper:
    """Maps detection spans to the canonical mute-interval list."""

    def __init__(self, policy: RedactionPolicy | None = None) -> None:
        self.policy = policy or RedactionPolicy()

    def map(
        self,
        spans: Sequence[DetectionSpan],
        words: Sequence[Word],
        audio_duration: float,
    ) -> list[MuteInterval]:
        """Return sorted, non-overlapping intervals clipped to the audio.

        Raises:
            DetectionError: If a span references words that do not exist or
                the audio duration is unusable.
        """
        if not math.isfinite(audio_duration) or audio_duration < 0:
            raise DetectionError(f"Invalid audio duration: {audio_duration}")

        raw: list[MuteInterval] = []
        for span in spans:
            if span.word_end >= len(words):
                raise DetectionError(
                    f"Span {span.word_start}-{span.word_end} is outside the "
                    f"{len(words)}-word transcript"
                )

            cp = self.policy.for_category(span.category)
            first, last = span.word_start, span.word_end

            if cp.trim_to_evidence:
                evidence = [
                    k for k in range(first, last + 1) if cp.predicate(words[k].text)
                ]
                if evidence:
                    first, last = evidence[0], evidence[-1]

            covered = words[first : last + 1]
            start = min(w.start for w in covered) - cp.pad_before
            end = max(w.end for w in covered) + cp.pad_after

            start = min(max(0.0, start), audio_duration)
            end = min(max(0.0, end), audio_duration)
            if end <= start:
                logger.warning(
                    "interval_outside_audio",
                    category=span.category.value,
                    word_start=span.word_start,
                    word_end=span.word_end,
                    audio_duration=audio_duration,
                )
                continue

            raw.append(MuteInterval(start=start, end=end, categories=[span.category]))

        return merge_intervals(raw)


def map_spans(
    spans: Sequence[DetectionSpan],
    words: Sequence[Word],
    audio_duration: float,
    policy: RedactionPolicy | None = None,
) -> list[MuteInterval]:
    """Convenience wrapper around ``TimeSpanMapper(policy).map(...)``."""
    return TimeSpanMapper(policy).map(spans, words, audio_duration)
