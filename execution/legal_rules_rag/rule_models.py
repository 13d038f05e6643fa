"""
Record types for the legal rules corpus.

RuleRecord and RulesMetadata are pydantic models: the loader validates raw
JSON objects against them exactly once. Everything downstream (normalized,
embedded and scored rules) is a plain dataclass that trusts that contract.
"""

from typing import Literal, Optional
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["low", "medium", "high"]

SEVERITIES = ("low", "medium", "high")


class RuleRecord(BaseModel):
    """A single legal drafting rule as loaded from the corpus."""
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    rule_id: str = Field(..., min_length=1)
    rule: str = Field(..., min_length=1)
    severity: Severity
    contract_types: list[str] = Field(..., min_length=1)
    category: Optional[str] = None
    bad_example: Optional[str] = None
    good_example: Optional[str] = None
    explanation: Optional[str] = None
    jurisdiction: Optional[str] = None
    reference: Optional[str] = None


class RulesMetadata(BaseModel):
    """Corpus-level metadata block (version drives cache invalidation)."""
    model_config = ConfigDict(extra="allow")

    version: Optional[str] = None
    jurisdiction: Optional[str] = None
    supported_contract_types: list[str] = []

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_str(cls, value):
        # Numeric versions such as 2.0 are compared as "2.0"
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


@dataclass
class RuleMetadata:
    """Structured metadata carried alongside the embeddable text."""
    jurisdiction: str
    severity: str
    contract_types: list[str]
    category: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "jurisdiction": self.jurisdiction,
            "severity": self.severity,
            "contract_types": list(self.contract_types),
        }
        if self.category:
            data["category"] = self.category
        if self.reference:
            data["reference"] = self.reference
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RuleMetadata":
        return cls(
            jurisdiction=data["jurisdiction"],
            severity=data["severity"],
            contract_types=list(data["contract_types"]),
            category=data.get("category"),
            reference=data.get("reference"),
        )


@dataclass
class NormalizedRule:
    """Embedding-ready view of a rule: {id, text, metadata}."""
    id: str
    text: str
    metadata: RuleMetadata

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "metadata": self.metadata.to_dict()}


@dataclass
class EmbeddedRule(NormalizedRule):
    """A normalized rule with its embedding vector attached."""
    embedding: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EmbeddedRule":
        return cls(
            id=data["id"],
            text=data["text"],
            metadata=RuleMetadata.from_dict(data["metadata"]),
            embedding=[float(x) for x in data["embedding"]],
        )

    @classmethod
    def from_normalized(cls, rule: NormalizedRule, embedding: list[float]) -> "EmbeddedRule":
        return cls(id=rule.id, text=rule.text, metadata=rule.metadata, embedding=list(embedding))


@dataclass
class ScoredRule(NormalizedRule):
    """
    A rule returned from search.

    similarity_score is the cosine similarity in [-1, 1], or None for results
    produced by keyword or static-filter fallback (unscored).
    """
    similarity_score: Optional[float] = None
    embedding: Optional[list[float]] = None

    @property
    def is_scored(self) -> bool:
        return self.similarity_score is not None

    @property
    def relevance_percent(self) -> Optional[str]:
        """Similarity as a percentage with one decimal, e.g. '87.3'."""
        if self.similarity_score is None:
            return None
        return f"{self.similarity_score * 100:.1f}"

    @classmethod
    def unscored(cls, rule: NormalizedRule) -> "ScoredRule":
        return cls(id=rule.id, text=rule.text, metadata=rule.metadata)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["similarity_score"] = self.similarity_score
        return data
