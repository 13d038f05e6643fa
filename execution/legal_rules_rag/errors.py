"""
Error types for the Legal Rules RAG engine.

The retrieval orchestrator (LegalRulesRAG) is the boundary for all of these:
components below it raise, the orchestrator catches and degrades.

- CorpusLoadError: rule corpus unreadable or empty (fatal to initialization)
- ProviderError: embedding provider call failed (degrade to keyword/static search)
- DimensionMismatchError: vectors of different lengths compared (skip candidate)
- CacheCorruptionError: internal to the cache layer, always resolved to a miss
"""

from typing import Optional


class LegalRulesRAGError(Exception):
    """Base class for all retrieval engine errors."""


class CorpusLoadError(LegalRulesRAGError):
    """Raised when the rule corpus cannot be loaded or has no valid rules.

    Attributes:
        details: Per-record validation messages, if any
    """

    def __init__(self, message: str, details: Optional[list[str]] = None):
        self.details = details or []
        super().__init__(message)


class ProviderError(LegalRulesRAGError):
    """Raised when the embedding provider fails.

    Attributes:
        kind: "auth", "rate_limit", "bad_request", "malformed_response",
              "unavailable" or "cancelled"
        provider: Human-readable provider name
    """

    def __init__(self, message: str, kind: str = "unavailable", provider: str = ""):
        self.kind = kind
        self.provider = provider
        super().__init__(message)


class EmbeddingCancelledError(ProviderError):
    """Raised when a caller-supplied cancel event aborts an embedding call."""

    def __init__(self, message: str = "Embedding request cancelled", provider: str = ""):
        super().__init__(message, kind="cancelled", provider=provider)


class DimensionMismatchError(LegalRulesRAGError):
    """Raised when two vectors of different lengths are compared."""

    def __init__(self, len_a: int, len_b: int):
        self.len_a = len_a
        self.len_b = len_b
        super().__init__(f"Vectors must have the same length ({len_a} != {len_b})")


class CacheCorruptionError(LegalRulesRAGError):
    """Raised inside the cache layer when a stored entry cannot be decoded."""
