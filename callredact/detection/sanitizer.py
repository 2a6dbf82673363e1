"""Replace detected spans in the transcript text with a redaction marker.

Word timestamps and transcript text come from the same provider but are
not guaranteed to tokenize identically, so words are aligned to the text
by normalized comparison with a short resynchronizing look-ahead. Words
that cannot be aligned take the gap between their aligned neighbours;
over-covering is preferred to leaving part of a word exposed.

Markers already present in the text absorb the words they replaced,
which makes sanitizing an already-sanitized text with the same spans a
no-op.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from callredact.common.models import DetectionSpan, Word
from callredact.config import DEFAULT_REDACTION_MARKER
from callredact.detection.tokens import normalize_token

logger = structlog.get_logger()

# How far either stream may run ahead when resynchronizing.
RESYNC_LOOKAHEAD = 3


@dataclass
class _TextToken:
    start: int
    end: int
    norm: str
    is_marker: bool = False


def _tokenize(text: str, marker: str) -> list[_TextToken]:
    escaped = re.escape(marker)
    pattern = re.compile(rf"{escaped}|(?:(?!{escaped})\S)+")
    tokens: list[_TextToken] = []
    for m in pattern.finditer(text):
        if m.group() == marker:
            tokens.append(_TextToken(m.start(), m.end(), "", is_marker=True))
            continue
        raw = m.group()
        alnum = [i for i, ch in enumerate(raw) if ch.isalnum()]
        if not alnum:
            continue
        start = m.start() + alnum[0]
        end = m.start() + alnum[-1] + 1
        tokens.append(_TextToken(start, end, normalize_token(text[start:end])))
    return tokens


def _align(
    words: Sequence[Word],
    tokens: list[_TextToken],
    ranges: Sequence[tuple[int, int]],
) -> list[tuple[int, int] | None]:
    """Character range of each word in the text, or None if not found.

    ``ranges`` are the merged word ranges being redacted. A marker already
    in the text stands for the next range not yet passed, so it takes
    exactly that range's words.
    """
    norms = [normalize_token(w.text) for w in words]
    located: list[tuple[int, int] | None] = [None] * len(words)
    w = t = 0

    while w < len(words) and t < len(tokens):
        tok = tokens[t]

        if tok.is_marker:
            t += 1
            following = None
            if t < len(tokens) and not tokens[t].is_marker:
                following = tokens[t].norm
            upcoming = next((r for r in ranges if r[1] >= w), None)
            if upcoming is None:
                continue
            first, last = upcoming
            # Words before the range that reappear after the marker mean the
            # marker was in the text already and stands for something else.
            if following is not None and any(
                norms[k] == following for k in range(w, first)
            ):
                continue
            last = min(last, len(words) - 1)
            for k in range(w, last + 1):
                located[k] = (tok.start, tok.end)
            w = last + 1
            continue

        if not norms[w]:
            w += 1
            continue

        if norms[w] == tok.norm:
            located[w] = (tok.start, tok.end)
            w += 1
            t += 1
            continue

        ahead = next(
            (
                k
                for k in range(t + 1, min(len(tokens), t + 1 + RESYNC_LOOKAHEAD))
                if not tokens[k].is_marker and tokens[k].norm == norms[w]
            ),
            None,
        )
        if ahead is not None:
            t = ahead
            continue

        behind = next(
            (
                k
                for k in range(w + 1, min(len(words), w + 1 + RESYNC_LOOKAHEAD))
                if norms[k] == tok.norm
            ),
            None,
        )
        if behind is not None:
            w = behind
            continue

        # Substitution ("gonna" for "going"): leave the word unaligned.
        w += 1
        t += 1

    return located


def _gap_range(
    text: str, located: list[tuple[int, int] | None], index: int
) -> tuple[int, int] | None:
    """Text between the nearest aligned neighbours of an unaligned word."""
    prev_end = next(
        (located[k][1] for k in range(index - 1, -1, -1) if located[k] is not None),
        0,
    )
    next_start = next(
        (located[k][0] for k in range(index + 1, len(located)) if located[k] is not None),
        len(text),
    )
    start, end = prev_end, max(prev_end, next_start)
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def _merge_word_ranges(spans: Sequence[DetectionSpan]) -> list[tuple[int, int]]:
    ordered = sorted((s.word_start, s.word_end) for s in spans)
    merged: list[tuple[int, int]] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class TranscriptSanitizer:
    """Rewrites transcripts so no detected span's words remain readable."""

    def __init__(self, marker: str = DEFAULT_REDACTION_MARKER) -> None:
        if not marker:
            raise ValueError("Redaction marker must not be empty")
        self.marker = marker

    def sanitize(
        self,
        text: str,
        words: Sequence[Word],
        spans: Sequence[DetectionSpan],
    ) -> str:
        """Return ``text`` with every span replaced by one marker.

        Spans overlapping or adjacent by word index collapse into a single
        marker. Surrounding punctuation and whitespace are preserved.
        """
        if not spans or not text:
            return text

        ranges = _merge_word_ranges(spans)
        located = _align(words, _tokenize(text, self.marker), ranges)

        char_ranges: list[tuple[int, int]] = []
        for first, last in ranges:
            pieces = []
            for index in range(first, min(last, len(words) - 1) + 1):
                piece = located[index] or _gap_range(text, located, index)
                if piece is not None:
                    pieces.append(piece)
            if not pieces:
                logger.warning("span_not_found_in_text", word_start=first, word_end=last)
                continue
            char_ranges.append((min(p[0] for p in pieces), max(p[1] for p in pieces)))

        char_ranges.sort()
        combined: list[tuple[int, int]] = []
        for start, end in char_ranges:
            if combined and start <= combined[-1][1]:
                combined[-1] = (combined[-1][0], max(combined[-1][1], end))
            else:
                combined.append((start, end))

        out: list[str] = []
        cursor = 0
        for start, end in combined:
            out.append(text[cursor:start])
            out.append(self.marker)
            cursor = end
        out.append(text[cursor:])
        return "".join(out)


def sanitize_transcript(
    text: str,
    words: Sequence[Word],
    spans: Sequence[DetectionSpan],
    marker: str = DEFAULT_REDACTION_MARKER,
) -> str:
    """Convenience wrapper around ``TranscriptSanitizer(marker).sanitize(...)``."""
    return TranscriptSanitizer(marker).sanitize(text, words, spans)
