"""
Prompt text built from legal rule subsets.

Two families:
- Context blocks (markdown) injected into a chat session's instructions
- Complete system instructions for the legal drafting assistant

Every builder returns "" when it has no rules to render, so callers can
tell "no context to inject" apart from real content.
"""

from typing import Optional, Union

from .rule_models import NormalizedRule, ScoredRule

BASIC_INSTRUCTIONS = (
    "You are a legal document assistant specializing in US contract drafting. "
    "Help users draft and review contracts according to legal best practices."
)

CONTEXT_HEADER = "# Legal Drafting Guidelines"
CONTEXT_INTRO = "Apply the following legal style rules when reviewing or drafting contracts:"
COMPACT_HEADER = "Legal Style Rules:"

SEMANTIC_INSTRUCTIONS = """You are a legal document assistant specializing in US contract drafting.

IMPORTANT: Apply these legal style rules when reviewing or drafting:

{rules}

When the user asks you to review their contract or help with drafting:
- Check for compliance with these rules
- Point out violations with specific examples
- Suggest corrections
- Prioritize high-severity issues first

Always cite the rule ID when making suggestions."""

SYSTEM_INSTRUCTIONS = """You are an expert legal document assistant specializing in US contract drafting and review.

CRITICAL: When reviewing or drafting contracts, you MUST apply these legal style rules:

{rules}

When the user asks you to review their contract:
1. Check for compliance with the above rules
2. Identify specific violations with line references
3. Explain why each violation matters (cite rule ID)
4. Provide concrete corrections using the good examples
5. Prioritize high-severity issues first

When helping draft new content:
1. Apply these rules from the start
2. Use proper legal language (shall, may, etc.)
3. Be specific with timeframes and obligations
4. Avoid ambiguous terms

Always cite the rule ID (e.g., "{example_id}") when making suggestions."""

COMPACT_INSTRUCTIONS = """You are a legal assistant. Apply US legal drafting rules:
- Use "shall" for obligations (not "will")
- Use "may" only for discretion
- Avoid "and/or" - be specific
- Specify exact timeframes
- Avoid "guarantee" unless explicit

Check contracts for compliance and suggest fixes."""


def _relevance_label(rule: Union[NormalizedRule, ScoredRule]) -> Optional[str]:
    if isinstance(rule, ScoredRule):
        percent = rule.relevance_percent
        return f"{percent}% relevant" if percent is not None else "keyword match"
    return None


def render_context(
    rules: list[Union[NormalizedRule, ScoredRule]],
    jurisdiction: Optional[str] = None,
    version: Optional[str] = None,
) -> str:
    """
    Render rules as a labeled markdown context block.

    Scored rules carry a relevance label; plain normalized rules (static
    filtering) do not. The version line is only written when given.
    """
    if not rules:
        return ""

    parts = [CONTEXT_HEADER, "", f"Jurisdiction: {jurisdiction or 'US'}"]
    if version:
        parts.append(f"Version: {version}")
    parts.extend(["", CONTEXT_INTRO, ""])

    for index, rule in enumerate(rules, start=1):
        label = _relevance_label(rule)
        heading = f"## Rule {index}: {rule.id}"
        if label:
            heading += f" ({label})"

        parts.extend([heading, "", rule.text, ""])
        parts.append(f"**Severity:** {rule.metadata.severity}")
        parts.append(f"**Applies to:** {', '.join(rule.metadata.contract_types)}")
        if rule.metadata.category:
            parts.append(f"**Category:** {rule.metadata.category}")
        parts.extend(["", "---", ""])

    return "\n".join(parts)


def render_compact_context(rules: list[NormalizedRule]) -> str:
    """One line per rule: '- <id>: <text>'."""
    if not rules:
        return ""
    lines = [COMPACT_HEADER]
    lines.extend(f"- {rule.id}: {' '.join(rule.text.splitlines())}" for rule in rules)
    return "\n".join(lines)


def build_semantic_instructions(rules: list[ScoredRule]) -> str:
    """System instructions listing semantically ranked rules with relevance."""
    if not rules:
        return ""

    blocks = []
    for index, rule in enumerate(rules, start=1):
        label = _relevance_label(rule)
        blocks.append(
            f"{index}. [{rule.id}, {label}]\n"
            f"   {rule.text}\n"
            f"   Severity: {rule.metadata.severity}\n"
            f"   Applies to: {', '.join(rule.metadata.contract_types)}"
        )
    return SEMANTIC_INSTRUCTIONS.format(rules="\n\n".join(blocks))


def build_legal_system_instructions(
    rules: list[NormalizedRule],
    contract_type: Optional[str] = None,
) -> str:
    """
    Full system instructions from a static rule list.

    Args:
        rules: Normalized rules to apply
        contract_type: Keep only rules for this contract type (e.g. "NDA")
    """
    if contract_type:
        rules = [r for r in rules if contract_type in r.metadata.contract_types]
    if not rules:
        return ""

    listed = "\n\n".join(f"{i}. {r.id}: {r.text}" for i, r in enumerate(rules, start=1))
    return SYSTEM_INSTRUCTIONS.format(rules=listed, example_id=rules[0].id)


def build_compact_instructions() -> str:
    """Short fixed instructions for tight token budgets."""
    return COMPACT_INSTRUCTIONS
