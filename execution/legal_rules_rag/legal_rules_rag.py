"""
Legal Rules RAG

The single entry point other layers use to pick legal drafting rules for a
prompt. Given a query it ranks rules by embedding similarity; when embeddings
are unavailable it degrades to keyword containment search, and given no query
it falls back to deterministic metadata filtering.

Lifecycle per instance:
    UNINITIALIZED --initialize()--> RULES_LOADED --embeddings--> EMBEDDINGS_READY
    any state --teardown()/reinitialize()--> UNINITIALIZED

Only a corpus load failure is reported as failure (initialize() -> False).
Provider errors are logged and absorbed here.
"""

import os
import logging
import threading
from enum import Enum
from pathlib import Path
from functools import partial
from typing import Callable, Optional, Union
from dataclasses import dataclass

from .errors import CorpusLoadError, ProviderError
from .rule_models import RuleRecord, RulesMetadata, NormalizedRule, EmbeddedRule, ScoredRule
from .rules_loader import RulesLoadResult, load_legal_rules, PROJECT_ROOT
from .normalizer import normalize_all_rules, filter_normalized_rules
from .embeddings import BaseEmbeddingService, generate_rule_embeddings, get_embedding_service
from .similarity import top_k as rank_top_k
from .embedding_cache import DurableEmbeddingCache, JSONFileStorage
from .metrics import MetricsCollector
from .prompts import render_context, render_compact_context

logger = logging.getLogger(__name__)


class RAGState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RULES_LOADED = "rules_loaded"
    EMBEDDINGS_READY = "embeddings_ready"


@dataclass
class RAGConfig:
    """Configuration for LegalRulesRAG."""
    use_cache: bool = True
    default_top_k: int = 5
    default_severities: tuple = ("high", "medium")  # Used when no severity filter is given
    batch_size: Optional[int] = None  # None = embedding service default
    batch_delay_seconds: Optional[float] = None


@dataclass
class FilterContext:
    """Static filter criteria. All provided fields must match."""
    contract_type: Optional[str] = None
    severity: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["FilterContext", dict, None]) -> "FilterContext":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls(
            contract_type=value.get("contract_type"),
            severity=value.get("severity"),
            category=value.get("category"),
        )


class LegalRulesRAG:
    """
    Retrieval orchestrator over a legal rules corpus.

    Create one per process (or per test) and inject it where needed.
    initialize() and generate_embeddings() are serialized by a lock;
    searches read an immutable snapshot of the embedded rules.
    """

    def __init__(
        self,
        embedding_service: Optional[BaseEmbeddingService] = None,
        corpus_loader: Optional[Callable[[], RulesLoadResult]] = None,
        durable_cache: Optional[DurableEmbeddingCache] = None,
        config: Optional[RAGConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize the orchestrator (no I/O happens until initialize()).

        Args:
            embedding_service: Provider client. None disables semantic search.
            corpus_loader: Callable returning a RulesLoadResult. Defaults to
                           load_legal_rules() with path discovery.
            durable_cache: Persistent embeddings cache. None disables caching.
            config: Optional configuration
            metrics: Optional metrics collector (a private one is created otherwise)
        """
        self.embeddings = embedding_service
        self.config = config or RAGConfig()
        self.metrics = metrics or MetricsCollector()
        self._corpus_loader = corpus_loader or load_legal_rules
        self._durable_cache = durable_cache
        self._lock = threading.RLock()
        self._reset()

    def _reset(self):
        self._state = RAGState.UNINITIALIZED
        self._rules: list[RuleRecord] = []
        self._normalized: list[NormalizedRule] = []
        self._embedded: list[EmbeddedRule] = []
        self._metadata: Optional[RulesMetadata] = None
        self._load_error: Optional[str] = None
        self._last_provider_error: Optional[ProviderError] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RAGState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state != RAGState.UNINITIALIZED

    @property
    def embeddings_ready(self) -> bool:
        return self._state == RAGState.EMBEDDINGS_READY

    @property
    def metadata(self) -> Optional[RulesMetadata]:
        return self._metadata

    @property
    def version(self) -> Optional[str]:
        return self._metadata.version if self._metadata else None

    @property
    def jurisdiction(self) -> str:
        return (self._metadata.jurisdiction if self._metadata else None) or "US"

    @property
    def load_error(self) -> Optional[str]:
        """Reason for the last failed initialize(), if any."""
        return self._load_error

    @property
    def last_provider_error(self) -> Optional[ProviderError]:
        return self._last_provider_error

    @property
    def _model_id(self) -> Optional[str]:
        return getattr(self.embeddings, "model", None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        use_cache: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """
        Load the corpus, then load or generate rule embeddings.

        Returns:
            False if the corpus could not be loaded or has no valid rules
            (state stays UNINITIALIZED). True otherwise, even when embeddings
            could not be produced; check embeddings_ready for semantic mode.
        """
        use_cache = self.config.use_cache if use_cache is None else use_cache

        with self._lock:
            try:
                result = self._corpus_loader()
            except CorpusLoadError as e:
                logger.error(f"Failed to load legal rules: {e}")
                self._reset()
                self._load_error = str(e)
                return False

            if not result.rules:
                logger.error(f"No valid legal rules loaded: {result.errors}")
                self._reset()
                self._load_error = "No valid legal rules loaded"
                return False

            if result.errors:
                logger.warning(f"Skipped invalid legal rules: {result.errors}")

            self._reset()
            self._rules = list(result.rules)
            self._normalized = normalize_all_rules(result)
            self._metadata = result.metadata
            self._state = RAGState.RULES_LOADED

            logger.info(
                f"Legal rules loaded: {len(self._normalized)} rules, "
                f"jurisdiction={self.jurisdiction}, version={self.version}"
            )

            if use_cache and self._load_from_cache():
                return True

            self._generate_locked(cancel_event)
            return True

    def ensure_initialized(self, use_cache: Optional[bool] = None) -> bool:
        """Initialize once; concurrent callers wait for the first one."""
        with self._lock:
            if self.is_loaded:
                return True
            return self.initialize(use_cache=use_cache)

    def _load_from_cache(self) -> bool:
        if self._durable_cache is None or self.embeddings is None:
            return False

        cached = self._durable_cache.load(
            self.version,
            expected_model=self._model_id,
            expected_count=len(self._normalized),
        )
        if cached is not None and [r.id for r in cached] != [r.id for r in self._normalized]:
            logger.info("Cached embeddings do not match the current rule ids")
            cached = None

        if cached is None:
            self.metrics.record_cache_miss()
            return False

        self.metrics.record_cache_hit()
        self._embedded = cached
        self._state = RAGState.EMBEDDINGS_READY
        logger.info("Using cached embeddings")
        return True

    def generate_embeddings(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        (Re)generate embeddings for the loaded rules and write them through
        to the durable cache. On failure the previous state is kept.
        """
        with self._lock:
            if not self.is_loaded:
                logger.warning("Cannot generate embeddings before rules are loaded")
                return False
            return self._generate_locked(cancel_event)

    def _generate_locked(self, cancel_event: Optional[threading.Event]) -> bool:
        if self.embeddings is None:
            logger.warning("No embedding service configured, semantic search disabled")
            return False

        logger.info("Generating embeddings for legal rules...")
        try:
            with self.metrics.track_generation():
                embedded = generate_rule_embeddings(
                    self.embeddings,
                    self._normalized,
                    batch_size=self.config.batch_size,
                    delay_seconds=self.config.batch_delay_seconds,
                    cancel_event=cancel_event,
                )
        except ProviderError as e:
            logger.error(f"Error generating embeddings ({e.kind}): {e}")
            self._last_provider_error = e
            return False

        self._embedded = embedded
        self._state = RAGState.EMBEDDINGS_READY
        self._last_provider_error = None

        if self._durable_cache is not None:
            self._durable_cache.store(embedded, self.version, model=self._model_id)

        logger.info("Embeddings generated and cached")
        return True

    def teardown(self):
        """Discard all in-memory rules and vectors."""
        with self._lock:
            self._reset()

    def reinitialize(
        self,
        use_cache: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Reset to UNINITIALIZED and load again (e.g. after a corpus version bump)."""
        with self._lock:
            self.teardown()
            return self.initialize(use_cache=use_cache, cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search_relevant_rules(
        self,
        query: str,
        top_k: Optional[int] = None,
        filter_context: Union[FilterContext, dict, None] = None,
    ) -> list[ScoredRule]:
        """
        Rank rules by semantic similarity to the query.

        Degrades instead of raising:
        - blank query: static filter results (filter_context), unscored
        - embeddings not ready or query embedding fails: keyword
          containment search in corpus order, unscored

        Args:
            query: User's question or document excerpt
            top_k: Max results (default: config.default_top_k)
            filter_context: Static filters used for a blank query

        Returns:
            At most top_k ScoredRules
        """
        k = self.config.default_top_k if top_k is None else top_k
        if k <= 0:
            return []

        if not query or not query.strip():
            self.metrics.record_search("static")
            return [ScoredRule.unscored(r) for r in self.get_relevant_rules(filter_context)[:k]]

        embedded = self._embedded
        if self.embeddings_ready and embedded and self.embeddings is not None:
            try:
                query_vector = self.embeddings.embed_query(query)
            except ProviderError as e:
                logger.error(f"Error in semantic search ({e.kind}), falling back to keyword search: {e}")
                self.metrics.record_provider_error(e.kind)
            else:
                mismatched = sum(1 for r in embedded if len(r.embedding) != len(query_vector))
                if mismatched:
                    self.metrics.record_dimension_mismatch(mismatched)

                results = rank_top_k(query_vector, embedded, k)
                self.metrics.record_search("semantic")
                logger.info(f"Found {len(results)} relevant rules for: \"{query[:50]}...\"")
                return results
        else:
            logger.warning("Embeddings not ready, falling back to keyword search")

        self.metrics.record_search("keyword")
        return [ScoredRule.unscored(r) for r in self.search_rules(query)[:k]]

    def search_rules(self, query: str) -> list[NormalizedRule]:
        """Case-insensitive substring search over rule text and id."""
        if not self.is_loaded or not query:
            return []

        lower_query = query.lower()
        return [
            r for r in self._normalized
            if lower_query in r.text.lower() or lower_query in r.id.lower()
        ]

    def get_relevant_rules(
        self,
        filter_context: Union[FilterContext, dict, None] = None,
    ) -> list[NormalizedRule]:
        """
        Static metadata filtering, usable without embeddings.

        Severity defaults to high + medium when not given. Results keep
        corpus order.
        """
        if not self.is_loaded:
            return []

        ctx = FilterContext.coerce(filter_context)
        severities = (ctx.severity,) if ctx.severity else self.config.default_severities

        candidates = filter_normalized_rules(
            self._normalized,
            contract_type=ctx.contract_type,
            category=ctx.category,
        )
        return [r for r in candidates if r.metadata.severity in severities]

    def get_rules_for_contract_type(self, contract_type: str) -> list[NormalizedRule]:
        return self.get_relevant_rules(FilterContext(contract_type=contract_type))

    def get_high_priority_rules(self) -> list[NormalizedRule]:
        return self.get_relevant_rules(FilterContext(severity="high"))

    def get_all_normalized_rules(self) -> list[NormalizedRule]:
        return list(self._normalized)

    # ------------------------------------------------------------------
    # Prompt context
    # ------------------------------------------------------------------

    def build_semantic_context(self, query: str, max_rules: int = 5) -> str:
        """Markdown context of the top rules for a query, or "" if none."""
        results = self.search_relevant_rules(query, max_rules)
        return render_context(results, jurisdiction=self.jurisdiction, version=self.version or "1.0")

    def build_compact_context(self, query: str, max_rules: int = 5) -> str:
        """Terse '- <id>: <text>' context for tight token budgets."""
        return render_compact_context(self.search_relevant_rules(query, max_rules))

    def build_chat_context(
        self,
        filter_context: Union[FilterContext, dict, None] = None,
        max_rules: int = 10,
    ) -> str:
        """Markdown context from static filtering (no query, no embeddings)."""
        rules = self.get_relevant_rules(filter_context)[:max_rules]
        return render_context(rules, jurisdiction=self.jurisdiction)

    def build_compact_static_context(
        self,
        filter_context: Union[FilterContext, dict, None] = None,
        max_rules: int = 10,
    ) -> str:
        return render_compact_context(self.get_relevant_rules(filter_context)[:max_rules])

    def get_stats(self) -> dict:
        return {
            "total": len(self._normalized),
            "state": self._state.value,
            "is_loaded": self.is_loaded,
            "embeddings_ready": self.embeddings_ready,
            "jurisdiction": self.jurisdiction,
            "version": self.version,
            "contract_types": self._metadata.supported_contract_types if self._metadata else [],
            "embedding_model": self._model_id,
            "load_error": self._load_error,
            "metrics": self.metrics.get_metrics_dict(),
        }


def create_legal_rules_rag(
    rules_path: Optional[Union[str, Path]] = None,
    cache_dir: Optional[Union[str, Path]] = None,
    provider: Optional[str] = None,
    config: Optional[RAGConfig] = None,
) -> LegalRulesRAG:
    """
    Build a LegalRulesRAG wired to the configured provider, corpus file and
    on-disk embeddings cache.

    Args:
        rules_path: Corpus file (default: LEGAL_RULES_PATH or data/)
        cache_dir: Cache directory (default: LEGAL_RULES_CACHE_DIR or .cache/)
        provider: "openai" or "voyage" (default: EMBEDDING_PROVIDER)
        config: Optional RAGConfig
    """
    cache_dir = cache_dir or os.getenv("LEGAL_RULES_CACHE_DIR") or PROJECT_ROOT / ".cache"

    return LegalRulesRAG(
        embedding_service=get_embedding_service(provider),
        corpus_loader=partial(load_legal_rules, rules_path),
        durable_cache=DurableEmbeddingCache(JSONFileStorage(cache_dir)),
        config=config,
    )
