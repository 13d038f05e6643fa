"""
Legal Rules RAG - rule retrieval for a legal drafting assistant

This module selects, from a fixed corpus of legal drafting rules, the subset
most relevant to a user's query or document and renders it for injection
into a language-model prompt:
- Loading and validating the rules corpus (JSON with comments)
- Normalizing rules into embeddable text + metadata
- Embedding via OpenAI or Voyage AI, with durable and process-local caches
- Cosine similarity ranking with keyword and static-filter fallbacks
"""

from .errors import (
    LegalRulesRAGError,
    CorpusLoadError,
    ProviderError,
    EmbeddingCancelledError,
    DimensionMismatchError,
)
from .rule_models import RuleRecord, NormalizedRule, EmbeddedRule, ScoredRule
from .rules_loader import load_legal_rules, load_rules_from_data
from .normalizer import normalize_rule, normalize_all_rules
from .embeddings import EmbeddingConfig, get_embedding_service
from .similarity import cosine_similarity, top_k
from .embedding_cache import DurableEmbeddingCache, ProcessLocalCache
from .legal_rules_rag import LegalRulesRAG, RAGConfig, FilterContext, create_legal_rules_rag
from .semantic_search import SemanticRuleSearch

__all__ = [
    "LegalRulesRAGError",
    "CorpusLoadError",
    "ProviderError",
    "EmbeddingCancelledError",
    "DimensionMismatchError",
    "RuleRecord",
    "NormalizedRule",
    "EmbeddedRule",
    "ScoredRule",
    "load_legal_rules",
    "load_rules_from_data",
    "normalize_rule",
    "normalize_all_rules",
    "EmbeddingConfig",
    "get_embedding_service",
    "cosine_similarity",
    "top_k",
    "DurableEmbeddingCache",
    "ProcessLocalCache",
    "LegalRulesRAG",
    "RAGConfig",
    "FilterContext",
    "create_legal_rules_rag",
    "SemanticRuleSearch",
]

__version__ = "0.1.0"
