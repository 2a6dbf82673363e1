"""Tests for detection policy data and YAML overrides."""

import pytest
from pydantic import ValidationError

from callredact.common.models import TriggerCategory
from callredact.detection import CategoryPolicy, RedactionPolicy, load_policy
from callredact.detection.policy import DOB_PADDING_SECONDS


class TestCategoryPolicy:
    """Tests for keyword and phrase matching."""

    def test_stem_keyword_matches_prefix(self):
        policy = CategoryPolicy(keywords=["expir*"])
        assert policy.keyword_hit("expiration")
        assert policy.keyword_hit("expiry")
        assert not policy.keyword_hit("expert")

    def test_plain_keyword_matches_exactly(self):
        policy = CategoryPolicy(keywords=["pin"])
        assert policy.keyword_hit("pin")
        assert not policy.keyword_hit("pinnacle")
        assert not policy.keyword_hit("")

    def test_longest_phrase_wins(self):
        policy = CategoryPolicy(phrases=["valid", "valid through"])
        assert policy.phrase_hit(["valid", "through", "june"], 0) == 2
        assert policy.phrase_hit(["valid", "until"], 0) == 1
        assert policy.phrase_hit(["not", "valid"], 0) is None

    def test_unknown_evidence_rejected(self):
        with pytest.raises(ValidationError):
            CategoryPolicy(evidence="vibes")


class TestRedactionPolicy:
    """Tests for defaults and priority order."""

    def test_every_category_has_a_policy(self):
        policy = RedactionPolicy()
        assert set(policy.categories) == set(TriggerCategory)

    def test_dob_is_tighter_than_generic(self):
        policy = RedactionPolicy()
        dob = policy.for_category(TriggerCategory.DOB)
        card = policy.for_category(TriggerCategory.CARD_NUMBER)
        assert dob.pad_before == DOB_PADDING_SECONDS
        assert dob.pad_before < card.pad_before
        assert dob.trim_to_evidence

    def test_priority_order(self):
        order = [category for category, _ in RedactionPolicy().by_priority()]
        assert order[:3] == [TriggerCategory.DOB, TriggerCategory.CVV, TriggerCategory.EXPIRY]

    def test_missing_category_falls_back_to_generic(self):
        policy = RedactionPolicy(categories={})
        assert policy.for_category(TriggerCategory.CVV).window == 15


class TestLoadPolicy:
    """Tests for YAML policy overrides."""

    def test_defaults_without_file(self):
        assert load_policy(None) == RedactionPolicy()

    def test_override_merges_with_defaults(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            "categories:\n"
            "  dob:\n"
            "    pad_before: 0.2\n"
            "patterns:\n"
            "  card_digit_run: false\n"
        )
        policy = load_policy(path)
        dob = policy.for_category(TriggerCategory.DOB)
        assert dob.pad_before == 0.2
        assert dob.pad_after == DOB_PADDING_SECONDS
        assert "dob" in dob.keywords
        assert policy.patterns.card_digit_run is False
        assert policy.patterns.ssn_token is True

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError):
            load_policy(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_policy(tmp_path / "absent.yaml")
