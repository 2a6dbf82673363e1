"""Keyword-triggered span detection over word sequences.

A keyword hit opens a forward window; words in the window that satisfy
the category's evidence predicate extend the span. A bare keyword never
produces a span. Partial numbers are enough evidence: the detector is
biased toward over-redaction because the original audio may be
destroyed once the redacted copy replaces it.
"""

import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from callredact.common.models import DetectionSpan, TriggerCategory, Word
from callredact.detection.policy import CategoryPolicy, RedactionPolicy
from callredact.detection.tokens import (
    count_digits,
    is_formatted_ssn,
    is_street_suffix,
    looks_like_email,
    normalize_token,
)
from callredact.exceptions import DetectionError

logger = structlog.get_logger()


def parse_words(raw: Iterable[Word | Mapping[str, Any]] | None) -> list[Word]:
    """Validate provider word timestamps.

    Accepts ``Word`` objects or mappings with ``text``/``word`` and
    ``start``/``end`` (or ``start_time``/``end_time``) keys.

    Raises:
        DetectionError: If any word is missing text or timestamps, or its
            timestamps are negative, non-finite or reversed.
    """
    if raw is None:
        raise DetectionError("No word timestamps supplied")

    words: list[Word] = []
    for index, item in enumerate(raw):
        if isinstance(item, Word):
            words.append(item)
            continue
        if not isinstance(item, Mapping):
            raise DetectionError(f"Word {index} is not a mapping: {type(item).__name__}")

        text = item.get("text", item.get("word"))
        start = item.get("start", item.get("start_time"))
        end = item.get("end", item.get("end_time"))
        if text is None:
            raise DetectionError(f"Word {index} has no text")
        if start is None or end is None:
            raise DetectionError(f"Word {index} is missing timestamps")

        try:
            start_f = float(start)
            end_f = float(end)
        except (TypeError, ValueError) as e:
            raise DetectionError(f"Word {index} has non-numeric timestamps") from e
        if not (math.isfinite(start_f) and math.isfinite(end_f)):
            raise DetectionError(f"Word {index} has non-finite timestamps")

        try:
            words.append(Word(text=str(text), start=start_f, end=end_f))
        except ValidationError as e:
            raise DetectionError(
                f"Word {index} has malformed timestamps: {e.errors()[0]['msg']}"
            ) from e
    return words


class _SpanCollector:
    """Keeps spans in discovery order, dropping superseded ones."""

    def __init__(self) -> None:
        self.spans: list[DetectionSpan] = []

    def add(self, span: DetectionSpan) -> None:
        same = [s for s in self.spans if s.category == span.category]
        if any(s.contains(span) for s in same):
            return
        self.spans = [
            s
            for s in self.spans
            if not (s.category == span.category and span.contains(s))
        ]
        self.spans.append(span)


class SpanDetector:
    """Finds sensitive word ranges according to a ``RedactionPolicy``."""

    def __init__(self, policy: RedactionPolicy | None = None) -> None:
        self.policy = policy or RedactionPolicy()

    def detect(self, words: Sequence[Word]) -> list[DetectionSpan]:
        """Return every sensitive span in ``words`` (possibly empty).

        Spans may overlap; merging happens after time mapping.
        """
        if not words:
            return []

        raws = [w.text for w in words]
        tokens = [normalize_token(t) for t in raws]
        collector = _SpanCollector()

        self._keyword_spans(raws, tokens, collector)
        self._pattern_spans(raws, tokens, collector)

        spans = sorted(
            collector.spans,
            key=lambda s: (s.word_start, s.word_end, s.category.value),
        )
        if spans:
            logger.info(
                "spans_detected",
                span_count=len(spans),
                categories=dict(Counter(s.category.value for s in spans)),
            )
        return spans

    # -- keyword-triggered -------------------------------------------------

    def _keyword_spans(
        self, raws: list[str], tokens: list[str], collector: _SpanCollector
    ) -> None:
        ordered = self.policy.by_priority()
        for i, token in enumerate(tokens):
            if not token:
                continue
            for category, cp in ordered:
                length = cp.phrase_hit(tokens, i)
                if length is None and cp.keyword_hit(token):
                    length = 1
                if length is None:
                    continue

                last = self._harvest(raws, i, i + length - 1, cp)
                if last is None:
                    # Try the next category for this word
                    continue

                collector.add(
                    DetectionSpan(
                        category=category,
                        word_start=i,
                        word_end=last,
                        trigger=f"keyword:{token}",
                    )
                )
                break

    @staticmethod
    def _harvest(
        raws: list[str], keyword_start: int, keyword_end: int, cp: CategoryPolicy
    ) -> int | None:
        """Index of the last evidence word in the window, or None."""
        predicate = cp.predicate
        stop = min(len(raws) - 1, keyword_end + cp.window)
        last: int | None = None
        for j in range(keyword_start, stop + 1):
            if predicate(raws[j]):
                last = j
        return last

    # -- keyword-free patterns ---------------------------------------------

    def _pattern_spans(
        self, raws: list[str], tokens: list[str], collector: _SpanCollector
    ) -> None:
        patterns = self.policy.patterns
        n = len(raws)

        if patterns.card_digit_run:
            for i in range(n):
                if not count_digits(raws[i]):
                    continue
                total = 0
                last: int | None = None
                stop = min(n, i + patterns.card_digit_run_window)
                for j in range(i, stop):
                    total += count_digits(raws[j])
                    if total > patterns.card_digit_run_max:
                        break
                    if total >= patterns.card_digit_run_min and count_digits(raws[j]):
                        last = j
                if last is not None:
                    collector.add(
                        DetectionSpan(
                            category=TriggerCategory.CARD_NUMBER,
                            word_start=i,
                            word_end=last,
                            trigger="pattern:card_digit_run",
                        )
                    )

        for i, raw in enumerate(raws):
            if patterns.ssn_token and is_formatted_ssn(raw):
                collector.add(
                    DetectionSpan(
                        category=TriggerCategory.SSN,
                        word_start=i,
                        word_end=i,
                        trigger="pattern:ssn_token",
                    )
                )
            if patterns.email_token and looks_like_email(raw):
                collector.add(
                    DetectionSpan(
                        category=TriggerCategory.EMAIL,
                        word_start=i,
                        word_end=i,
                        trigger="pattern:email_token",
                    )
                )

        if patterns.spoken_email:
            for i, token in enumerate(tokens):
                if token != "at":
                    continue
                stop = min(n - 1, i + patterns.spoken_email_window)
                dot = next((j for j in range(i + 1, stop + 1) if tokens[j] == "dot"), None)
                if dot is None:
                    continue
                collector.add(
                    DetectionSpan(
                        category=TriggerCategory.EMAIL,
                        word_start=max(0, i - 2),
                        word_end=min(n - 1, dot + 2),
                        trigger="pattern:spoken_email",
                    )
                )

        if patterns.street_address:
            for i, raw in enumerate(raws):
                if not count_digits(raw):
                    continue
                stop = min(n - 1, i + patterns.street_suffix_window)
                suffix = next(
                    (j for j in range(i + 1, stop + 1) if is_street_suffix(raws[j])),
                    None,
                )
                if suffix is None:
                    continue
                collector.add(
                    DetectionSpan(
                        category=TriggerCategory.ADDRESS,
                        word_start=i,
                        word_end=min(n - 1, suffix + patterns.street_tail_words),
                        trigger="pattern:street_address",
                    )
                )


def detect_spans(
    words: Sequence[Word], policy: RedactionPolicy | None = None
) -> list[DetectionSpan]:
    """Convenience wrapper around ``SpanDetector(policy).detect(words)``."""
    return SpanDetector(policy).detect(words)
