"""
Metrics Collection for Legal Rules RAG

Tracks retrieval mode (semantic vs fallback), embedding cache effectiveness,
provider failures and embedding generation latency.
"""

import time
import logging
import threading
from typing import Optional
from dataclasses import dataclass, field
from collections import defaultdict
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class RetrievalMetrics:
    """Aggregated retrieval metrics."""
    # Search metrics
    total_searches: int = 0
    semantic_searches: int = 0
    keyword_fallbacks: int = 0
    static_fallbacks: int = 0

    # Embedding cache metrics
    cache_hits: int = 0
    cache_misses: int = 0

    # Embedding generation (in ms)
    generations: int = 0
    failed_generations: int = 0
    total_generation_ms: float = 0
    generation_latencies: list = field(default_factory=list)

    # Error tracking
    provider_errors: int = 0
    dimension_mismatches: int = 0
    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_generation_ms(self) -> float:
        """Average successful embedding generation time."""
        if self.generations == 0:
            return 0
        return self.total_generation_ms / self.generations

    @property
    def p95_generation_ms(self) -> float:
        """95th percentile generation time."""
        if not self.generation_latencies:
            return 0
        sorted_latencies = sorted(self.generation_latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0
        return self.cache_hits / total

    @property
    def fallback_rate(self) -> float:
        """Share of searches served without semantic ranking."""
        if self.total_searches == 0:
            return 0
        return (self.keyword_fallbacks + self.static_fallbacks) / self.total_searches

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "searches": {
                "total": self.total_searches,
                "semantic": self.semantic_searches,
                "keyword_fallback": self.keyword_fallbacks,
                "static_fallback": self.static_fallbacks,
                "fallback_rate": f"{self.fallback_rate:.2%}",
            },
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hit_rate": f"{self.cache_hit_rate:.2%}",
            },
            "generation_ms": {
                "count": self.generations,
                "failed": self.failed_generations,
                "avg": round(self.avg_generation_ms, 2),
                "p95": round(self.p95_generation_ms, 2),
            },
            "errors": {
                "provider": self.provider_errors,
                "dimension_mismatch": self.dimension_mismatches,
                "by_type": dict(self.errors_by_type),
            },
        }


class MetricsCollector:
    """
    Collects retrieval metrics for one orchestrator instance.

    Usage:
        collector = MetricsCollector()

        with collector.track_generation():
            rules = generate_rule_embeddings(service, normalized)

        collector.record_search("semantic")
        print(collector.get_metrics_dict())
    """

    def __init__(self, max_history: int = 1000):
        self.metrics = RetrievalMetrics()
        self._max_history = max_history
        self._start_time = datetime.now()
        self._lock = threading.Lock()

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = RetrievalMetrics()
            self._start_time = datetime.now()

    class GenerationTracker:
        """Context manager timing one embedding generation run."""

        def __init__(self, collector: 'MetricsCollector'):
            self.collector = collector
            self.start_time = 0.0

        def __enter__(self):
            self.start_time = time.time()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            duration_ms = (time.time() - self.start_time) * 1000
            if exc_type:
                self.collector._record_failed_generation(exc_type.__name__, getattr(exc_val, "kind", None))
            else:
                self.collector._record_generation(duration_ms)
            return False  # Don't suppress exceptions

    def track_generation(self) -> GenerationTracker:
        return self.GenerationTracker(self)

    def _record_generation(self, duration_ms: float):
        with self._lock:
            m = self.metrics
            m.generations += 1
            m.total_generation_ms += duration_ms
            m.generation_latencies.append(duration_ms)
            if len(m.generation_latencies) > self._max_history:
                m.generation_latencies = m.generation_latencies[-self._max_history:]

    def _record_failed_generation(self, error_type: str, provider_kind: Optional[str] = None):
        with self._lock:
            self.metrics.failed_generations += 1
            if provider_kind:
                self.metrics.provider_errors += 1
                self.metrics.errors_by_type[f"provider:{provider_kind}"] += 1
            else:
                self.metrics.errors_by_type[error_type] += 1

    def record_search(self, mode: str):
        """Record a search served in "semantic", "keyword" or "static" mode."""
        with self._lock:
            self.metrics.total_searches += 1
            if mode == "semantic":
                self.metrics.semantic_searches += 1
            elif mode == "keyword":
                self.metrics.keyword_fallbacks += 1
            else:
                self.metrics.static_fallbacks += 1

    def record_provider_error(self, kind: str):
        with self._lock:
            self.metrics.provider_errors += 1
            self.metrics.errors_by_type[f"provider:{kind}"] += 1

    def record_dimension_mismatch(self, count: int = 1):
        with self._lock:
            self.metrics.dimension_mismatches += count

    def record_cache_hit(self):
        """Record a durable/process cache hit."""
        with self._lock:
            self.metrics.cache_hits += 1

    def record_cache_miss(self):
        with self._lock:
            self.metrics.cache_misses += 1

    def get_metrics(self) -> RetrievalMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        return self.metrics.to_dict()

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time
