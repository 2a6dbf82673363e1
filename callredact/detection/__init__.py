"""Span detection, timestamp mapping and transcript sanitization."""

from callredact.detection.detector import SpanDetector, detect_spans, parse_words
from callredact.detection.mapper import TimeSpanMapper, map_spans, merge_intervals
from callredact.detection.policy import (
    CategoryPolicy,
    PatternPolicy,
    RedactionPolicy,
    load_policy,
)
from callredact.detection.sanitizer import TranscriptSanitizer, sanitize_transcript
from callredact.detection.scrub import scrub_text

__all__ = [
    "CategoryPolicy",
    "PatternPolicy",
    "RedactionPolicy",
    "SpanDetector",
    "TimeSpanMapper",
    "TranscriptSanitizer",
    "detect_spans",
    "load_policy",
    "map_spans",
    "merge_intervals",
    "parse_words",
    "sanitize_transcript",
    "scrub_text",
]
