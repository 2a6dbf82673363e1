"""Per-category detection and padding policy.

Keyword lists, look-ahead windows, evidence predicates and audio padding
are data, not code: the detector and mapper only ever read a
``RedactionPolicy``. Defaults live here; a YAML file named by
``CALLREDACT_POLICY_FILE`` may override any field of any category:

    categories:
      dob:
        pad_before: 0.2
        pad_after: 0.2
      credential:
        keywords: ["password*", "passcode*", "pin", "pincode", "memorable*"]
    patterns:
      card_digit_run: false

Keyword syntax: a trailing ``*`` matches any token starting with the stem
("expir*" matches "expiry", "expiration"); otherwise the normalized token
must equal the keyword. ``phrases`` match consecutive words.
"""

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

from callredact.common.models import TriggerCategory
from callredact.detection.tokens import (
    EVIDENCE_PREDICATES,
    EvidencePredicate,
    normalize_token,
)

logger = structlog.get_logger()

DEFAULT_WINDOW = 15
DEFAULT_PADDING_SECONDS = 0.5
DOB_PADDING_SECONDS = 0.15


class CategoryPolicy(BaseModel):
    """How one trigger category is detected and padded."""

    keywords: list[str] = Field(default_factory=list)
    phrases: list[str] = Field(default_factory=list)
    window: int = Field(default=DEFAULT_WINDOW, ge=1, description="Look-ahead words")
    evidence: str = Field(default="numeric", description="Evidence predicate name")
    pad_before: float = Field(default=DEFAULT_PADDING_SECONDS, ge=0)
    pad_after: float = Field(default=DEFAULT_PADDING_SECONDS, ge=0)
    trim_to_evidence: bool = Field(
        default=False,
        description="Trim the span to its evidence words before padding",
    )
    priority: int = Field(
        default=100,
        description="Lower wins when one word triggers several categories",
    )

    @field_validator("evidence")
    @classmethod
    def _known_evidence(cls, value: str) -> str:
        if value not in EVIDENCE_PREDICATES:
            raise ValueError(
                f"Unknown evidence predicate '{value}'. "
                f"Use one of: {', '.join(sorted(EVIDENCE_PREDICATES))}"
            )
        return value

    @property
    def predicate(self) -> EvidencePredicate:
        return EVIDENCE_PREDICATES[self.evidence]

    def keyword_hit(self, token: str) -> bool:
        """True if a single normalized token matches one of the keywords."""
        if not token:
            return False
        for keyword in self.keywords:
            if keyword.endswith("*"):
                stem = normalize_token(keyword[:-1])
                if stem and token.startswith(stem):
                    return True
            elif token == normalize_token(keyword):
                return True
        return False

    def phrase_hit(self, tokens: list[str], index: int) -> int | None:
        """Length of the phrase starting at ``index``, or None.

        Longest phrase wins so the evidence window opens after it.
        """
        best: int | None = None
        for phrase in self.phrases:
            parts = [normalize_token(p) for p in phrase.split()]
            parts = [p for p in parts if p]
            if not parts or index + len(parts) > len(tokens):
                continue
            if tokens[index : index + len(parts)] == parts:
                if best is None or len(parts) > best:
                    best = len(parts)
        return best


class PatternPolicy(BaseModel):
    """Keyword-free detectors for unmistakable shapes."""

    card_digit_run: bool = True
    card_digit_run_window: int = Field(default=10, ge=1)
    card_digit_run_min: int = Field(default=12, ge=1)
    card_digit_run_max: int = Field(default=19, ge=1)
    ssn_token: bool = True
    email_token: bool = True
    spoken_email: bool = True
    spoken_email_window: int = Field(default=8, ge=1)
    street_address: bool = True
    street_suffix_window: int = Field(default=6, ge=1)
    street_tail_words: int = Field(default=6, ge=0)


def _default_categories() -> dict[TriggerCategory, CategoryPolicy]:
    return {
        TriggerCategory.DOB: CategoryPolicy(
            keywords=["dob", "birthday*", "birthdate*", "dateofbirth", "born"],
            phrases=["date of birth", "birth date", "day of birth"],
            evidence="digits",
            pad_before=DOB_PADDING_SECONDS,
            pad_after=DOB_PADDING_SECONDS,
            trim_to_evidence=True,
            priority=10,
        ),
        TriggerCategory.CVV: CategoryPolicy(
            keywords=["cvv*", "cvc*", "security", "verification", "code"],
            phrases=["security code", "verification code", "card code"],
            priority=20,
        ),
        TriggerCategory.EXPIRY: CategoryPolicy(
            keywords=["expir*", "exp", "valid"],
            phrases=["valid through", "valid thru", "valid until", "good through"],
            priority=30,
        ),
        TriggerCategory.CREDENTIAL: CategoryPolicy(
            keywords=["password*", "passcode*", "passphrase*", "pin", "pincode*"],
            phrases=["pin number", "access code"],
            priority=40,
        ),
        TriggerCategory.SSN: CategoryPolicy(
            keywords=["ssn"],
            phrases=["social security"],
            window=20,
            priority=50,
        ),
        TriggerCategory.CARD_NUMBER: CategoryPolicy(
            keywords=[
                "credit*",
                "card*",
                "visa",
                "mastercard*",
                "amex",
                "discover",
                "debit*",
                "payment*",
                "number*",
            ],
            phrases=["american express", "long number"],
            priority=60,
        ),
        TriggerCategory.ADDRESS: CategoryPolicy(
            keywords=["address*", "streetaddress*", "postcode*", "zipcode*"],
            phrases=["street address", "zip code", "postal code"],
            window=25,
            evidence="address",
            priority=70,
        ),
        TriggerCategory.EMAIL: CategoryPolicy(priority=80),
    }


class RedactionPolicy(BaseModel):
    """Complete detection policy: categories plus pattern detectors."""

    categories: dict[TriggerCategory, CategoryPolicy] = Field(
        default_factory=_default_categories
    )
    patterns: PatternPolicy = Field(default_factory=PatternPolicy)

    def for_category(self, category: TriggerCategory) -> CategoryPolicy:
        """Policy for a category, falling back to generic defaults."""
        return self.categories.get(category) or CategoryPolicy()

    def by_priority(self) -> list[tuple[TriggerCategory, CategoryPolicy]]:
        return sorted(self.categories.items(), key=lambda item: item[1].priority)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_policy(path: str | Path | None = None) -> RedactionPolicy:
    """Build the policy from defaults plus an optional YAML override file.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist
        ValueError: If the file is not a mapping or fails validation
    """
    policy = RedactionPolicy()
    if path is None:
        return policy

    path = Path(path)
    with path.open() as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Policy file {path} must contain a mapping")

    base = policy.model_dump(mode="json")
    merged = RedactionPolicy.model_validate(_merge(base, overrides))
    logger.info(
        "redaction_policy_loaded",
        path=str(path),
        categories=sorted(c.value for c in merged.categories),
    )
    return merged
