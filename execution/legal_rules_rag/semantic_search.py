"""
Semantic rule search for short-lived server workers.

Keeps the embedded corpus in a ProcessLocalCache (1 hour). When the slot is
empty or expired, the next request loads the corpus and regenerates every
embedding before answering; that request pays the generation cost.

Unlike LegalRulesRAG this is a thin layer: search errors propagate to the
caller, and only build_semantic_instructions() degrades (to basic
instructions).
"""

import logging
import threading
from typing import Callable, Optional

from .errors import CorpusLoadError, LegalRulesRAGError
from .rule_models import EmbeddedRule, ScoredRule
from .rules_loader import RulesLoadResult, load_legal_rules
from .normalizer import normalize_all_rules
from .embeddings import BaseEmbeddingService, generate_rule_embeddings
from .embedding_cache import ProcessLocalCache
from .similarity import top_k as rank_top_k
from .prompts import BASIC_INSTRUCTIONS, build_semantic_instructions

logger = logging.getLogger(__name__)


class SemanticRuleSearch:
    """Process-local semantic search over the legal rules corpus."""

    def __init__(
        self,
        embedding_service: BaseEmbeddingService,
        corpus_loader: Optional[Callable[[], RulesLoadResult]] = None,
        cache: Optional[ProcessLocalCache] = None,
        batch_delay_seconds: Optional[float] = None,
    ):
        self.embeddings = embedding_service
        self.cache = cache or ProcessLocalCache()
        self._corpus_loader = corpus_loader or load_legal_rules
        self._batch_delay = batch_delay_seconds
        self._lock = threading.Lock()

    def ensure_embeddings_cache(self) -> list[EmbeddedRule]:
        """
        Return the cached embedded corpus, regenerating it if expired.

        Raises:
            CorpusLoadError: Corpus missing or empty
            ProviderError: Embedding generation failed
        """
        cached = self.cache.get()
        if cached is not None:
            logger.info("Using cached embeddings")
            return cached

        with self._lock:
            # Another request may have refreshed the slot while we waited
            cached = self.cache.get()
            if cached is not None:
                return cached

            logger.info("Generating fresh embeddings...")
            result = self._corpus_loader()
            if not result.rules:
                raise CorpusLoadError("No valid legal rules loaded", details=result.errors)

            embedded = generate_rule_embeddings(
                self.embeddings,
                normalize_all_rules(result),
                delay_seconds=self._batch_delay,
            )
            self.cache.set(embedded)
            logger.info(f"Generated {len(embedded)} embeddings")
            return embedded

    def search_relevant_rules(self, query: str, top_k: int = 5) -> list[ScoredRule]:
        """
        Rank rules by similarity to the query.

        Raises:
            LegalRulesRAGError: On corpus or provider failure
        """
        rules = self.ensure_embeddings_cache()
        query_vector = self.embeddings.embed_query(query)
        results = rank_top_k(query_vector, rules, top_k)
        logger.info(f"Found {len(results)} relevant rules for query: \"{query[:50]}...\"")
        return results

    def build_semantic_instructions(self, query: str, max_rules: int = 5) -> str:
        """System instructions with the most relevant rules, or basic instructions on error."""
        try:
            results = self.search_relevant_rules(query, max_rules)
        except LegalRulesRAGError as e:
            logger.error(f"Error building semantic instructions: {e}")
            return BASIC_INSTRUCTIONS

        return build_semantic_instructions(results) or BASIC_INSTRUCTIONS
