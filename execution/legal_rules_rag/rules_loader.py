"""
Legal Rules Loader & Validator

Loads the legal rules dataset (JSON with comments) and validates every
record against RuleRecord. Invalid records are dropped with a per-index
error message; the surviving records are guaranteed to have a unique
rule_id, non-empty rule text, a valid severity and at least one contract type.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Union
from dataclasses import dataclass, field

from pydantic import ValidationError

from .errors import CorpusLoadError
from .rule_models import RuleRecord, RulesMetadata

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
RULES_FILENAME = "us-legal-rules.jsonc"


@dataclass
class RulesLoadResult:
    """Outcome of loading a rule corpus."""
    success: bool
    rules: list[RuleRecord]
    metadata: Optional[RulesMetadata] = None
    errors: list[str] = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    @property
    def version(self) -> Optional[str]:
        return self.metadata.version if self.metadata else None

    @property
    def jurisdiction(self) -> Optional[str]:
        return self.metadata.jurisdiction if self.metadata else None


def strip_jsonc_comments(text: str) -> str:
    """
    Remove // line comments and /* */ block comments from JSONC text.

    Comment markers inside string literals (e.g. URLs) are preserved.
    Line comments keep their terminating newline so line numbers in
    JSON decode errors still point at the right place.
    """
    out = []
    i = 0
    n = len(text)
    in_string = False

    while i < n:
        ch = text[i]

        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def _format_validation_error(index: int, exc: ValidationError) -> list[str]:
    """Turn a pydantic ValidationError into loader-style messages."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "record"
        messages.append(f"Rule at index {index}: '{loc}' {err.get('msg', 'is invalid')}")
    return messages


def load_rules_from_data(data: dict) -> RulesLoadResult:
    """
    Validate an already-deserialized rules dataset.

    Args:
        data: Dict with a "rules" list and an optional "metadata" object

    Returns:
        RulesLoadResult with the surviving records

    Raises:
        CorpusLoadError: If the dataset has no "rules" array
    """
    if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
        raise CorpusLoadError('Rules data must contain a "rules" array')

    errors = []
    metadata = None
    raw_metadata = data.get("metadata")
    if raw_metadata is not None:
        try:
            metadata = RulesMetadata.model_validate(raw_metadata)
        except ValidationError as e:
            errors.extend(f"Metadata: {msg}" for msg in _format_validation_error(-1, e))

    validated = []
    seen_ids = set()
    raw_rules = data["rules"]

    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, dict):
            errors.append(f"Rule at index {index}: must be an object")
            continue
        try:
            record = RuleRecord.model_validate(raw)
        except ValidationError as e:
            errors.extend(_format_validation_error(index, e))
            continue

        if record.rule_id in seen_ids:
            errors.append(f"Rule at index {index}: duplicate rule_id '{record.rule_id}'")
            continue

        seen_ids.add(record.rule_id)
        validated.append(record)

    if errors:
        logger.warning(f"Dropped {len(raw_rules) - len(validated)} invalid rules ({len(errors)} errors)")

    return RulesLoadResult(
        success=not errors,
        rules=validated,
        metadata=metadata,
        errors=errors,
        stats={
            "total": len(raw_rules),
            "valid": len(validated),
            "invalid": len(raw_rules) - len(validated),
        },
    )


def _candidate_paths() -> list[Path]:
    paths = []
    env_path = os.getenv("LEGAL_RULES_PATH")
    if env_path:
        paths.append(Path(env_path))
    paths.append(PROJECT_ROOT / "data" / RULES_FILENAME)
    paths.append(Path.cwd() / "data" / RULES_FILENAME)
    return paths


def load_legal_rules(path: Optional[Union[str, Path]] = None) -> RulesLoadResult:
    """
    Load and validate the legal rules dataset from a JSONC file.

    Args:
        path: Explicit file path. If omitted, LEGAL_RULES_PATH and the
              project's data/ directory are tried in order.

    Raises:
        CorpusLoadError: If no file is found or it cannot be read/decoded
    """
    candidates = [Path(path)] if path else _candidate_paths()

    for file_path in candidates:
        if not file_path.exists():
            continue
        try:
            content = file_path.read_text(encoding="utf-8")
            data = json.loads(strip_jsonc_comments(content))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorpusLoadError(f"Error loading rules from {file_path}: {e}") from e

        result = load_rules_from_data(data)
        logger.info(
            f"Loaded {result.stats['valid']}/{result.stats['total']} legal rules "
            f"from {file_path}"
        )
        return result

    raise CorpusLoadError(
        "Legal rules file not found (tried: " + ", ".join(str(p) for p in candidates) + ")"
    )


def get_rules_by_severity(rules: list[RuleRecord], severity: str) -> list[RuleRecord]:
    return [r for r in rules if r.severity == severity]


def get_rules_by_contract_type(rules: list[RuleRecord], contract_type: str) -> list[RuleRecord]:
    return [r for r in rules if contract_type in r.contract_types]


def get_rules_by_category(rules: list[RuleRecord], category: str) -> list[RuleRecord]:
    return [r for r in rules if r.category == category]


def get_rule_by_id(rules: list[RuleRecord], rule_id: str) -> Optional[RuleRecord]:
    """Return the rule with the given id, or None."""
    for rule in rules:
        if rule.rule_id == rule_id:
            return rule
    return None
