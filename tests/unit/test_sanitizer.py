"""Tests for transcript sanitization."""

import pytest

from callredact.common.models import DetectionSpan, TriggerCategory
from callredact.detection import TranscriptSanitizer, detect_spans, sanitize_transcript

CARD = TriggerCategory.CARD_NUMBER
CVV = TriggerCategory.CVV
CREDENTIAL = TriggerCategory.CREDENTIAL

TEXT = "Sure, my card number is 4532 1234 5678 9010. Thanks!"
WORDS_TEXT = "Sure my card number is 4532 1234 5678 9010 Thanks"


def span(category, start, end):
    return DetectionSpan(category=category, word_start=start, word_end=end)


class TestSanitize:
    """Tests for replacing spans with the marker."""

    def test_replaces_span_preserving_punctuation(self, make_words):
        result = sanitize_transcript(TEXT, make_words(WORDS_TEXT), [span(CARD, 5, 8)])
        assert result == "Sure, my card number is [REDACTED]. Thanks!"

    def test_no_spans_is_identity(self, make_words):
        assert sanitize_transcript(TEXT, make_words(WORDS_TEXT), []) == TEXT

    def test_reapplying_is_a_no_op(self, make_words):
        words = make_words(WORDS_TEXT)
        spans = [span(CARD, 5, 8)]
        once = sanitize_transcript(TEXT, words, spans)
        assert sanitize_transcript(once, words, spans) == once

    def test_overlapping_spans_emit_one_marker(self, make_words):
        result = sanitize_transcript(
            TEXT, make_words(WORDS_TEXT), [span(CARD, 2, 6), span(CVV, 5, 8)]
        )
        assert result == "Sure, my [REDACTED]. Thanks!"

    def test_adjacent_spans_emit_one_marker(self, make_words):
        result = sanitize_transcript(
            TEXT, make_words(WORDS_TEXT), [span(CARD, 5, 6), span(CARD, 7, 8)]
        )
        assert result.count("[REDACTED]") == 1
        assert result == "Sure, my card number is [REDACTED]. Thanks!"

    def test_separate_spans_emit_separate_markers(self, make_words):
        text = "pin 4471 then card 4532 okay"
        result = sanitize_transcript(
            text, make_words(text), [span(CREDENTIAL, 0, 1), span(CARD, 3, 4)]
        )
        assert result == "[REDACTED] then [REDACTED] okay"

    def test_custom_marker(self, make_words):
        result = TranscriptSanitizer("***").sanitize(
            TEXT, make_words(WORDS_TEXT), [span(CARD, 5, 8)]
        )
        assert result == "Sure, my card number is ***. Thanks!"

    def test_empty_marker_rejected(self):
        with pytest.raises(ValueError):
            TranscriptSanitizer("")


class TestAlignment:
    """Tests for text that tokenizes differently from the words."""

    def test_hyphenated_number_covered_by_gap(self, make_words):
        """Words '4532' '1234' against text '4532-1234' still redact fully."""
        words = make_words("my number is 4532 1234 thanks")
        result = sanitize_transcript(
            "my number is 4532-1234 thanks", words, [span(CARD, 3, 4)]
        )
        assert result == "my number is [REDACTED] thanks"

    def test_filler_word_in_text_only(self, make_words):
        words = make_words("my pin is 4471 okay")
        result = sanitize_transcript("my pin is um 4471 okay", words, [span(CREDENTIAL, 1, 3)])
        assert result == "my [REDACTED] okay"
        assert "4471" not in result

    def test_case_differences_ignored(self, make_words):
        words = make_words("CVV is 123")
        result = sanitize_transcript("cvv is 123.", words, [span(CVV, 0, 2)])
        assert result == "[REDACTED]."


class TestReapply:
    """Sanitizing already-sanitized text with the same spans changes nothing."""

    def reapply(self, text, words, spans):
        once = sanitize_transcript(text, words, spans)
        return once, sanitize_transcript(once, words, spans)

    def test_span_word_repeated_after_marker(self, make_words):
        text = "my card is 4 5 3 2 is that ok"
        once, twice = self.reapply(text, make_words(text), [span(CARD, 1, 6)])
        assert once == "my [REDACTED] is that ok"
        assert twice == once

    def test_detected_spans_with_repeated_word(self, make_words):
        text = "the code is 1 2 3 is that right"
        words = make_words(text)
        spans = detect_spans(words)
        assert spans

        once, twice = self.reapply(text, words, spans)

        assert once.endswith("is that right")
        assert "1 2 3" not in once
        assert twice == once

    def test_span_at_end_of_text(self, make_words):
        text = "please charge 4 5 3 2"
        once, twice = self.reapply(text, make_words(text), [span(CARD, 2, 5)])
        assert once == "please charge [REDACTED]"
        assert twice == once

    def test_two_markers_in_a_row(self, make_words):
        """A word missing from the text leaves two separate spans side by side."""
        words = make_words("pin 4471 uh card 4532 okay")
        spans = [span(CREDENTIAL, 0, 1), span(CARD, 3, 4)]
        once, twice = self.reapply("pin 4471 card 4532 okay", words, spans)
        assert once == "[REDACTED] [REDACTED] okay"
        assert twice == once

    def test_marker_present_before_sanitizing_is_left_alone(self, make_words):
        text = "[REDACTED] then card 4532 okay"
        words = make_words("then card 4532 okay")
        once, twice = self.reapply(text, words, [span(CARD, 1, 2)])
        assert once == "[REDACTED] then [REDACTED] okay"
        assert twice == once
