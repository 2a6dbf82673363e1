"""Token normalization and evidence predicates.

Transcription providers emit numbers either as digits ("4532") or spelled
out ("four five three two"); both count as numeric evidence.
"""

import re
from collections.abc import Callable

_NON_ALNUM = re.compile(r"[^0-9a-z]")
_DIGIT = re.compile(r"\d")
_EMAIL = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_SSN_TOKEN = re.compile(r"^\d{3}[-\s]?\d{2}[-\s]?\d{4}$")

NUMBER_WORDS = frozenset(
    {
        "zero",
        "oh",
        "one",
        "two",
        "three",
        "four",
        "five",
        "six",
        "seven",
        "eight",
        "nine",
        "ten",
        "eleven",
        "twelve",
        "thirteen",
        "fourteen",
        "fifteen",
        "sixteen",
        "seventeen",
        "eighteen",
        "nineteen",
        "twenty",
        "thirty",
        "forty",
        "fifty",
        "sixty",
        "seventy",
        "eighty",
        "ninety",
        "hundred",
        "thousand",
        "double",
        "triple",
    }
)

STREET_SUFFIXES = frozenset(
    {
        "st",
        "street",
        "rd",
        "road",
        "ave",
        "avenue",
        "blvd",
        "boulevard",
        "dr",
        "drive",
        "ln",
        "lane",
        "ct",
        "court",
        "way",
        "circle",
        "cir",
        "pkwy",
        "parkway",
        "trail",
        "trl",
        "apt",
        "apartment",
        "suite",
    }
)


def normalize_token(text: str) -> str:
    """Lower-case a token and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", str(text or "").lower())


def is_number_word(token: str) -> bool:
    return normalize_token(token) in NUMBER_WORDS


def is_numeric_token(token: str) -> bool:
    """Any token carrying a digit, or a spelled-out number ("4532-12", "five")."""
    return bool(_DIGIT.search(str(token or ""))) or is_number_word(token)


def is_digit_token(token: str) -> bool:
    """Tokens made only of digits once separators are dropped, or number words."""
    normalized = normalize_token(token)
    if not normalized:
        return False
    return normalized.isdigit() or normalized in NUMBER_WORDS


def is_street_suffix(token: str) -> bool:
    return normalize_token(token) in STREET_SUFFIXES


def is_address_token(token: str) -> bool:
    """House/unit numbers and street-type words."""
    return is_numeric_token(token) or is_street_suffix(token)


def looks_like_email(token: str) -> bool:
    raw = str(token or "")
    return "@" in raw or bool(_EMAIL.search(raw))


def is_formatted_ssn(token: str) -> bool:
    return bool(_SSN_TOKEN.match(str(token or "").strip().strip(".,;:")))


def count_digits(token: str) -> int:
    return len(_DIGIT.findall(str(token or "")))


EvidencePredicate = Callable[[str], bool]

EVIDENCE_PREDICATES: dict[str, EvidencePredicate] = {
    "numeric": is_numeric_token,
    "digits": is_digit_token,
    "address": is_address_token,
}
