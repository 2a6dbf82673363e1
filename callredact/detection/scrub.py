"""Pattern-based transcript scrubbing without word timestamps.

Used when span detection cannot run (malformed word timing) and for
free text such as call summaries. Deliberately broad: a keyword keeps
its label and everything sensitive after it is replaced.
"""

import re

from callredact.config import DEFAULT_REDACTION_MARKER

_STREET_SUFFIX = (
    r"(?:st|street|rd|road|ave|avenue|blvd|boulevard|dr|drive|ln|lane|ct|court"
    r"|way|cir|circle|pkwy|parkway|trl|trail)"
)

# (pattern, keep keyword group)
_RULES: list[tuple[re.Pattern[str], bool]] = [
    (
        re.compile(
            r"(credit\s*card|card\s*number|visa|mastercard|amex|discover|debit|payment\s*card)"
            r"(?:\s+\w+){0,20}?\s*(?:\d[\d\s\-]*\d)",
            re.IGNORECASE,
        ),
        True,
    ),
    (
        re.compile(
            r"(cvv|cvc|security\s*code|verification\s*code|card\s*code)"
            r"(?:\s+\w+){0,10}?\s*(?:\d[\d\s\-]*)",
            re.IGNORECASE,
        ),
        True,
    ),
    (
        re.compile(
            r"(expir\w*|exp\s*date|valid\s*through)(?:\s+\w+){0,10}?\s*(?:\d[\d\s\-/]*)",
            re.IGNORECASE,
        ),
        True,
    ),
    (re.compile(r"\d[\d\s-]{10,}\d"), False),
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE), False),
    (
        re.compile(
            r"\b[a-z0-9._%+-]+\s+at\s+[a-z0-9.-]+\s+dot\s+[a-z]{2,}(?:\s+dot\s+[a-z]{2,})?\b",
            re.IGNORECASE,
        ),
        False,
    ),
    (
        re.compile(
            r"\b(date(?:\s|-)+of(?:\s|-)+birth|dateofbirth|dob|birthday|birth(?:\s|-)?date)\b"
            r"[^.\n]{0,150}?(?:\d[\d\s\-/]*\d)",
            re.IGNORECASE,
        ),
        True,
    ),
    (
        re.compile(r"\b(password|passcode|pin|pincode)\b(?:\s+\S+){0,10}", re.IGNORECASE),
        True,
    ),
    (
        re.compile(r"\b(street\s+address|address)\b(?:\s+\S+){0,25}", re.IGNORECASE),
        True,
    ),
    (
        re.compile(
            rf"\b\d{{1,6}}\s+[a-z0-9.\-]+\s+{_STREET_SUFFIX}\b[^.\n]{{0,60}}",
            re.IGNORECASE,
        ),
        False,
    ),
    (re.compile(r"\b\d{3}[-\s]\d{2}[-\s]\d{4}\b"), False),
    (
        re.compile(
            r"\b(ssn|social\s+security(?:\s+number)?)\b[^.\n]{0,80}\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b",
            re.IGNORECASE,
        ),
        True,
    ),
]


def scrub_text(text: str | None, marker: str = DEFAULT_REDACTION_MARKER) -> str:
    """Replace anything that looks like sensitive data in ``text`` with ``marker``."""
    if not text:
        return ""

    scrubbed = text
    for pattern, keep_keyword in _RULES:
        if keep_keyword:
            scrubbed = pattern.sub(lambda m: f"{m.group(1)} {marker}", scrubbed)
        else:
            scrubbed = pattern.sub(lambda m: marker, scrubbed)
    return scrubbed
