"""
Rules Normalizer for RAG

Transforms validated legal rules into a clean format suitable for
embedding: { id, text, metadata }.

Text layout (one line each, only when the field is present):
    Rule: ...
    Bad example: ...
    Good example: ...
    Explanation: ...
"""

from typing import Optional
from collections import Counter

from .rule_models import RuleRecord, RuleMetadata, NormalizedRule
from .rules_loader import RulesLoadResult


DEFAULT_JURISDICTION = "US"

TEXT_FIELDS = (
    ("rule", "Rule"),
    ("bad_example", "Bad example"),
    ("good_example", "Good example"),
    ("explanation", "Explanation"),
)


def normalize_rule(record: RuleRecord, default_jurisdiction: str = DEFAULT_JURISDICTION) -> NormalizedRule:
    """
    Normalize a single rule for embedding.

    Args:
        record: Validated rule record
        default_jurisdiction: Used when the record has no jurisdiction

    Returns:
        NormalizedRule with deterministic text and metadata
    """
    lines = []
    for attr, label in TEXT_FIELDS:
        value = getattr(record, attr)
        if value and value.strip():
            lines.append(f"{label}: {value.strip()}")

    metadata = RuleMetadata(
        jurisdiction=record.jurisdiction or default_jurisdiction,
        severity=record.severity,
        contract_types=list(record.contract_types),
        category=record.category or None,
        reference=record.reference or None,
    )

    return NormalizedRule(id=record.rule_id, text="\n".join(lines), metadata=metadata)


def normalize_all_rules(load_result: Optional[RulesLoadResult]) -> list[NormalizedRule]:
    """Normalize every rule of a load result using the corpus jurisdiction."""
    if load_result is None or not load_result.rules:
        return []

    jurisdiction = load_result.jurisdiction or DEFAULT_JURISDICTION
    return [normalize_rule(r, jurisdiction) for r in load_result.rules]


def validate_normalized_rule(rule: NormalizedRule) -> tuple[bool, list[str]]:
    """Check that a normalized rule has all required fields."""
    errors = []

    if not rule.id:
        errors.append("Normalized rule missing id")
    if not rule.text or not isinstance(rule.text, str):
        errors.append("Normalized rule missing or invalid text")

    meta = rule.metadata
    if meta is None:
        errors.append("Normalized rule missing metadata")
    else:
        if not meta.jurisdiction:
            errors.append("Normalized rule metadata missing jurisdiction")
        if not meta.severity:
            errors.append("Normalized rule metadata missing severity")
        if not isinstance(meta.contract_types, list) or not meta.contract_types:
            errors.append("Normalized rule metadata missing or invalid contract_types")

    return (not errors, errors)


def get_normalized_rules_stats(rules: list[NormalizedRule]) -> Optional[dict]:
    """Summary statistics over a list of normalized rules."""
    if not isinstance(rules, list):
        return None

    by_contract_type = Counter()
    for rule in rules:
        by_contract_type.update(rule.metadata.contract_types)

    total_text = sum(len(r.text) for r in rules)

    return {
        "total": len(rules),
        "average_text_length": round(total_text / len(rules)) if rules else 0,
        "by_severity": dict(Counter(r.metadata.severity for r in rules)),
        "by_contract_type": dict(by_contract_type),
        "by_category": dict(Counter(r.metadata.category for r in rules if r.metadata.category)),
        "by_jurisdiction": dict(Counter(r.metadata.jurisdiction for r in rules)),
    }


def filter_normalized_rules(
    rules: list[NormalizedRule],
    severity: Optional[str] = None,
    contract_type: Optional[str] = None,
    category: Optional[str] = None,
    jurisdiction: Optional[str] = None,
) -> list[NormalizedRule]:
    """
    Filter normalized rules by metadata. All provided filters must match.

    Returns:
        Matching rules in their original order
    """
    result = []
    for rule in rules:
        meta = rule.metadata
        if severity and meta.severity != severity:
            continue
        if contract_type and contract_type not in meta.contract_types:
            continue
        if category and meta.category != category:
            continue
        if jurisdiction and meta.jurisdiction != jurisdiction:
            continue
        result.append(rule)
    return result
