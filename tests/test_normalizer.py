"""
Tests for execution/legal_rules_rag/normalizer.py

Covers: text layout, jurisdiction fallback, determinism, validation,
        statistics and metadata filtering.
"""

import pytest


def _record(**overrides):
    from execution.legal_rules_rag.rule_models import RuleRecord
    data = {
        "rule_id": "R1",
        "rule": "Use 'shall' for obligations.",
        "severity": "high",
        "contract_types": ["NDA", "MSA"],
    }
    data.update(overrides)
    return RuleRecord.model_validate(data)


class TestNormalizeRule:

    def test_full_text_layout(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        rule = normalize_rule(_record(
            bad_example="  The Supplier will deliver. ",
            good_example="The Supplier shall deliver.",
            explanation="Obligation vs prediction.",
        ))
        assert rule.text == (
            "Rule: Use 'shall' for obligations.\n"
            "Bad example: The Supplier will deliver.\n"
            "Good example: The Supplier shall deliver.\n"
            "Explanation: Obligation vs prediction."
        )

    def test_optional_fields_skipped(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        rule = normalize_rule(_record(good_example="Good.", bad_example=""))
        assert rule.text == "Rule: Use 'shall' for obligations.\nGood example: Good."
        assert not rule.text.endswith("\n")

    def test_id_and_metadata(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        rule = normalize_rule(_record(category="obligations", reference="UCC 2-201"))
        assert rule.id == "R1"
        assert rule.metadata.severity == "high"
        assert rule.metadata.contract_types == ["NDA", "MSA"]
        assert rule.metadata.category == "obligations"
        assert rule.metadata.reference == "UCC 2-201"

    def test_jurisdiction_fallback(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        assert normalize_rule(_record(), "UK").metadata.jurisdiction == "UK"
        assert normalize_rule(_record(jurisdiction="US-CA"), "UK").metadata.jurisdiction == "US-CA"
        assert normalize_rule(_record()).metadata.jurisdiction == "US"

    def test_deterministic(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        record = _record(bad_example="x", explanation="y", category="c")
        a = normalize_rule(record, "US")
        b = normalize_rule(record, "US")
        assert a.text == b.text
        assert a.metadata.to_dict() == b.metadata.to_dict()

    def test_contract_types_are_copied(self):
        from execution.legal_rules_rag.normalizer import normalize_rule
        record = _record()
        rule = normalize_rule(record)
        rule.metadata.contract_types.append("SOW")
        assert record.contract_types == ["NDA", "MSA"]


class TestNormalizeAllRules:

    def test_uses_corpus_jurisdiction(self):
        from execution.legal_rules_rag.rules_loader import load_rules_from_data
        from execution.legal_rules_rag.normalizer import normalize_all_rules
        data = {
            "metadata": {"jurisdiction": "US-NY"},
            "rules": [{"rule_id": "R1", "rule": "x", "severity": "low", "contract_types": ["NDA"]}],
        }
        rules = normalize_all_rules(load_rules_from_data(data))
        assert rules[0].metadata.jurisdiction == "US-NY"

    def test_none_and_empty(self):
        from execution.legal_rules_rag.normalizer import normalize_all_rules
        assert normalize_all_rules(None) == []

    def test_preserves_corpus_order(self, sample_normalized_rules):
        assert [r.id for r in sample_normalized_rules] == [
            "US_LEGAL_001", "US_LEGAL_009", "US_LEGAL_007",
        ]


class TestValidateNormalizedRule:

    def test_valid(self, sample_normalized_rules):
        from execution.legal_rules_rag.normalizer import validate_normalized_rule
        ok, errors = validate_normalized_rule(sample_normalized_rules[0])
        assert ok is True
        assert errors == []

    def test_missing_fields(self):
        from execution.legal_rules_rag.normalizer import validate_normalized_rule
        from execution.legal_rules_rag.rule_models import NormalizedRule, RuleMetadata
        rule = NormalizedRule(id="", text="", metadata=RuleMetadata("", "", []))
        ok, errors = validate_normalized_rule(rule)
        assert ok is False
        assert len(errors) == 5


class TestStatsAndFilters:

    def test_stats(self, sample_normalized_rules):
        from execution.legal_rules_rag.normalizer import get_normalized_rules_stats
        stats = get_normalized_rules_stats(sample_normalized_rules)
        assert stats["total"] == 3
        assert stats["by_severity"] == {"high": 2, "low": 1}
        assert stats["by_contract_type"] == {"NDA": 2, "MSA": 2}
        assert stats["by_category"] == {"obligations": 1, "payment": 1}
        assert stats["by_jurisdiction"] == {"US": 3}
        assert stats["average_text_length"] > 0

    def test_stats_empty_and_invalid(self):
        from execution.legal_rules_rag.normalizer import get_normalized_rules_stats
        assert get_normalized_rules_stats([])["average_text_length"] == 0
        assert get_normalized_rules_stats(None) is None

    @pytest.mark.parametrize("filters, expected", [
        ({}, ["US_LEGAL_001", "US_LEGAL_009", "US_LEGAL_007"]),
        ({"severity": "high"}, ["US_LEGAL_001", "US_LEGAL_009"]),
        ({"contract_type": "NDA"}, ["US_LEGAL_001", "US_LEGAL_007"]),
        ({"severity": "high", "contract_type": "NDA"}, ["US_LEGAL_001"]),
        ({"category": "payment"}, ["US_LEGAL_009"]),
        ({"jurisdiction": "UK"}, []),
    ])
    def test_filter(self, sample_normalized_rules, filters, expected):
        from execution.legal_rules_rag.normalizer import filter_normalized_rules
        result = filter_normalized_rules(sample_normalized_rules, **filters)
        assert [r.id for r in result] == expected
