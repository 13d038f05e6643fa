"""
Shared fixtures and test utilities for Legal Rules RAG tests.

Provides a deterministic stub embedding provider, sample rule corpora and
a controllable clock so that all tests run without API keys or network
access.
"""

import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

SAMPLE_RULES_FILE = PROJECT_ROOT / "data" / "us-legal-rules.jsonc"


# ---------------------------------------------------------------------------
# Sample corpora
# ---------------------------------------------------------------------------

def make_rules_data(version="1.0", rules=None):
    """Three-rule corpus; exactly one rule mentions payment."""
    return {
        "metadata": {
            "version": version,
            "jurisdiction": "US",
            "supported_contract_types": ["NDA", "MSA"],
        },
        "rules": rules if rules is not None else [
            {
                "rule_id": "US_LEGAL_001",
                "category": "obligations",
                "rule": "Use 'shall' to impose a binding obligation on a party.",
                "bad_example": "The Supplier will deliver the Products by June 1.",
                "good_example": "The Supplier shall deliver the Products by June 1.",
                "severity": "high",
                "contract_types": ["NDA", "MSA"],
            },
            {
                "rule_id": "US_LEGAL_009",
                "category": "payment",
                "rule": "State payment terms with a fixed due date.",
                "bad_example": "Payment shall be made within a reasonable time.",
                "good_example": "Payment is due within thirty (30) days of invoice receipt.",
                "severity": "high",
                "contract_types": ["MSA"],
            },
            {
                "rule_id": "US_LEGAL_007",
                "rule": "Avoid archaic legalese such as 'hereinafter'.",
                "severity": "low",
                "contract_types": ["NDA"],
            },
        ],
    }


@pytest.fixture
def sample_rules_data():
    return make_rules_data()


@pytest.fixture
def sample_load_result(sample_rules_data):
    from execution.legal_rules_rag.rules_loader import load_rules_from_data
    return load_rules_from_data(sample_rules_data)


@pytest.fixture
def sample_normalized_rules(sample_load_result):
    from execution.legal_rules_rag.normalizer import normalize_all_rules
    return normalize_all_rules(sample_load_result)


# ---------------------------------------------------------------------------
# Stub embedding provider
# ---------------------------------------------------------------------------

VOCABULARY = (
    "payment", "terminat", "confidential", "shall", "will", "may",
    "and/or", "guarantee", "define", "law", "legalese", "notice",
)


def keyword_vector(text):
    """Bag-of-keywords vector with a constant bias component."""
    lower = text.lower()
    return [float(lower.count(term)) for term in VOCABULARY] + [1.0]


def _make_stub_service_class():
    from execution.legal_rules_rag.embeddings import BaseEmbeddingService

    class StubEmbeddingService(BaseEmbeddingService):
        """Deterministic provider -- never calls external APIs."""

        _provider_name = "Stub"
        _env_var_name = "STUB_API_KEY"

        def __init__(self, config=None, vector_fn=keyword_vector, available=True):
            self._vector_fn = vector_fn
            self._available = available
            self.calls = []
            self.fail_with = None
            self.fail_on_call = None
            super().__init__(config)

        def _init_client(self):
            self._client = object() if self._available else None

        def _request_embeddings(self, texts, input_type):
            self.calls.append(list(texts))
            if self.fail_with is not None and (
                self.fail_on_call is None or len(self.calls) == self.fail_on_call
            ):
                raise self.fail_with
            return [self._vector_fn(t) for t in texts]

    return StubEmbeddingService


@pytest.fixture
def stub_service_class():
    return _make_stub_service_class()


@pytest.fixture
def stub_embedding_service(stub_service_class):
    from execution.legal_rules_rag.embeddings import EmbeddingConfig
    return stub_service_class(EmbeddingConfig(
        provider="stub", model="stub-model", dimensions=len(VOCABULARY) + 1,
        batch_delay_seconds=0,
    ))


# ---------------------------------------------------------------------------
# Clock and caches
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def durable_cache(fake_clock):
    from execution.legal_rules_rag.embedding_cache import DurableEmbeddingCache, MemoryStorage
    return DurableEmbeddingCache(MemoryStorage(), clock=fake_clock)


# ---------------------------------------------------------------------------
# Orchestrator factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_rag(stub_embedding_service, durable_cache):
    """Build a LegalRulesRAG over an in-memory corpus."""
    from execution.legal_rules_rag.legal_rules_rag import LegalRulesRAG
    from execution.legal_rules_rag.rules_loader import load_rules_from_data

    def _make(data=None, embedding_service=stub_embedding_service, cache=durable_cache, loader=None):
        corpus = data if data is not None else make_rules_data()
        return LegalRulesRAG(
            embedding_service=embedding_service,
            corpus_loader=loader or (lambda: load_rules_from_data(corpus)),
            durable_cache=cache,
        )

    return _make
