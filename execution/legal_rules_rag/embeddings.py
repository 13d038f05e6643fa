"""
Embedding Service for Legal Rules RAG

Converts normalized rule text into fixed-length vectors via an external
embedding provider. Supports single-text and batched requests.

Architecture:
    BaseEmbeddingService  -- shared batching, validation, error classification
        OpenAIEmbeddingService  -- OpenAI text-embedding-3-small (default)
        VoyageEmbeddingService  -- Voyage AI voyage-law-2

Every provider failure surfaces as ProviderError. No retries happen here;
callers decide how to degrade.
"""

import os
import time
import logging
import threading
from typing import Optional, Union
from dataclasses import dataclass

from .errors import ProviderError, EmbeddingCancelledError
from .rule_models import NormalizedRule, EmbeddedRule

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "openai"  # "openai" or "voyage"
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100
    batch_delay_seconds: float = 0.1  # Pause between batches (rate limits)
    timeout: Optional[float] = 60.0
    max_retries: int = 0


def _classify_error(exc: Exception) -> str:
    """Map a provider SDK exception to a ProviderError kind."""
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    if status in (401, 403):
        return "auth"
    if status == 429:
        return "rate_limit"
    if status in (400, 404, 413, 422):
        return "bad_request"
    return "unavailable"


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Provides shared functionality:
    - embed(): one text, one provider call
    - embed_batch(): ordered, chunked, all-or-nothing batch embedding
    - Response validation and error classification

    Subclasses only need to implement:
    - _init_client(): Initialize the provider-specific API client
    - _request_embeddings(): One raw provider call for a list of texts

    And set these class attributes:
    - _provider_name: Human-readable provider name for error messages
    - _env_var_name: Environment variable name for the API key
    - _doc_input_type / _query_input_type: Provider input type hints
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: Optional[str] = None
    _query_input_type: Optional[str] = None

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        """
        Initialize embedding service.

        Args:
            config: Optional configuration. Uses defaults if not provided.
        """
        self.config = config or EmbeddingConfig()
        self._client = None
        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _request_embeddings(self, texts: list[str], input_type: Optional[str]) -> list[list[float]]:
        """Issue one provider call. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _request_embeddings()")

    @property
    def available(self) -> bool:
        """True when a provider client was created (credential present)."""
        return self._client is not None

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise EmbeddingCancelledError(provider=self._provider_name)

    def _call_provider(self, texts: list[str], input_type: Optional[str]) -> list[list[float]]:
        """Call the provider for one chunk and validate the response shape."""
        if not self._client:
            raise ProviderError(
                f"{self._provider_name} client not initialized. Check {self._env_var_name}.",
                kind="auth",
                provider=self._provider_name,
            )

        cleaned = [t.strip() if isinstance(t, str) else "" for t in texts]
        if any(not t for t in cleaned):
            raise ProviderError(
                "Cannot embed empty text", kind="bad_request", provider=self._provider_name
            )

        try:
            vectors = self._request_embeddings(cleaned, input_type)
        except ProviderError:
            raise
        except Exception as e:
            kind = _classify_error(e)
            logger.error(f"{self._provider_name} embedding failed ({kind}): {e}")
            raise ProviderError(
                f"{self._provider_name} embedding failed: {e}",
                kind=kind,
                provider=self._provider_name,
            ) from e

        if not isinstance(vectors, list) or len(vectors) != len(cleaned):
            raise ProviderError(
                f"{self._provider_name} returned {len(vectors) if isinstance(vectors, list) else 'no'} "
                f"embeddings for {len(cleaned)} inputs",
                kind="malformed_response",
                provider=self._provider_name,
            )

        result = []
        for vector in vectors:
            if not vector or not all(isinstance(x, (int, float)) for x in vector):
                raise ProviderError(
                    f"{self._provider_name} returned a malformed embedding",
                    kind="malformed_response",
                    provider=self._provider_name,
                )
            result.append([float(x) for x in vector])

        if len({len(v) for v in result}) > 1:
            raise ProviderError(
                f"{self._provider_name} returned embeddings of mixed length",
                kind="malformed_response",
                provider=self._provider_name,
            )

        return result

    def embed(
        self,
        text: str,
        input_type: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[float]:
        """
        Generate an embedding for a single text.

        Raises:
            ProviderError: Provider unreachable, credential missing/invalid,
                           or malformed response
        """
        self._check_cancelled(cancel_event)
        return self._call_provider([text], input_type)[0]

    def embed_batch(
        self,
        texts: list[str],
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        input_type: Optional[str] = None,
    ) -> list[list[float]]:
        """
        Generate embeddings for many texts, preserving input order.

        Texts are sent in chunks of at most batch_size, one provider call
        per chunk, with delay_seconds between chunks. If any chunk fails
        the whole call fails; no partial list is returned.

        Args:
            texts: Texts to embed
            batch_size: Max texts per provider call (default: config.batch_size)
            delay_seconds: Pause between chunks (default: config.batch_delay_seconds)
            cancel_event: Set to abort before the next chunk
            input_type: Provider input type hint

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        size = self.config.batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValueError("batch_size must be >= 1")
        delay = self.config.batch_delay_seconds if delay_seconds is None else delay_seconds

        batches = [texts[i:i + size] for i in range(0, len(texts), size)]
        logger.info(
            f"Embedding {len(texts)} texts in {len(batches)} batches with {self._provider_name}"
        )

        embeddings = []
        for batch_idx, batch in enumerate(batches):
            self._check_cancelled(cancel_event)
            embeddings.extend(self._call_provider(batch, input_type))

            if batch_idx < len(batches) - 1 and delay > 0:
                time.sleep(delay)

        return embeddings

    def embed_documents(self, texts: list[str], **kwargs) -> list[list[float]]:
        """Embed rule texts (document input type)."""
        return self.embed_batch(texts, input_type=self._doc_input_type, **kwargs)

    def embed_query(self, query: str, cancel_event: Optional[threading.Event] = None) -> list[float]:
        """Embed a search query (query input type)."""
        return self.embed(query, input_type=self._query_input_type, cancel_event=cancel_event)


class OpenAIEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using OpenAI's text-embedding-3-small model.

    - 1536-dimensional embeddings
    - Same input handling for documents and queries
    """

    _provider_name = "OpenAI"
    _env_var_name = "OPENAI_API_KEY"

    def _init_client(self):
        """Initialize the OpenAI client."""
        api_key = os.getenv("OPENAI_API_KEY")

        if not api_key:
            logger.warning(
                "OPENAI_API_KEY not found. Semantic search disabled, "
                "falling back to keyword and static filtering."
            )
            return

        from openai import OpenAI
        self._client = OpenAI(
            api_key=api_key,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )
        logger.info(f"OpenAI client initialized with model {self.config.model}")

    def _request_embeddings(self, texts: list[str], input_type: Optional[str]) -> list[list[float]]:
        response = self._client.embeddings.create(
            model=self.config.model,
            input=texts,
            encoding_format="float",
        )
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 provides:
    - 1024-dimensional embeddings
    - Better retrieval on legal text than general-purpose models
    - Different input types for documents vs queries
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        """Initialize the Voyage AI client."""
        api_key = os.getenv("VOYAGE_API_KEY")

        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Semantic search disabled. "
                "Get your free API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.Client(
            api_key=api_key,
            max_retries=self.config.max_retries,
            timeout=self.config.timeout,
        )
        logger.info(f"Voyage AI client initialized with model {self.config.model}")

    def _request_embeddings(self, texts: list[str], input_type: Optional[str]) -> list[list[float]]:
        response = self._client.embed(
            texts=texts,
            model=self.config.model,
            input_type=input_type,
        )
        return response.embeddings


def generate_rule_embeddings(
    service: BaseEmbeddingService,
    rules: list[NormalizedRule],
    batch_size: Optional[int] = None,
    delay_seconds: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> list[EmbeddedRule]:
    """
    Embed every normalized rule and attach the vectors.

    Raises:
        ProviderError: If any batch fails (no partial result)
    """
    logger.info(f"Generating embeddings for {len(rules)} rules...")

    vectors = service.embed_documents(
        [r.text for r in rules],
        batch_size=batch_size,
        delay_seconds=delay_seconds,
        cancel_event=cancel_event,
    )
    embedded = [EmbeddedRule.from_normalized(rule, vec) for rule, vec in zip(rules, vectors)]

    logger.info(f"Successfully generated {len(embedded)} embeddings")
    return embedded


def get_embedding_service(
    provider: Optional[str] = None,
    config: Optional[EmbeddingConfig] = None,
) -> Union[OpenAIEmbeddingService, VoyageEmbeddingService]:
    """
    Factory function to get the configured embedding service.

    Args:
        provider: "openai" (default) or "voyage". Falls back to the
                  EMBEDDING_PROVIDER environment variable.
        config: Optional explicit configuration

    Returns:
        Configured embedding service
    """
    prov = (provider or os.getenv("EMBEDDING_PROVIDER") or "openai").lower()

    if prov == "voyage":
        return VoyageEmbeddingService(config or EmbeddingConfig(
            provider="voyage",
            model="voyage-law-2",
            dimensions=1024,
            batch_size=100,
        ))

    if prov != "openai":
        logger.warning(f"Unknown embedding provider '{prov}', using OpenAI")

    return OpenAIEmbeddingService(config or EmbeddingConfig())


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_embedding_service()
    print(f"Using embedding provider: {service.config.provider} ({service.model})")

    if len(sys.argv) > 1:
        query = " ".join(sys.argv[1:])
    else:
        query = "How should payment terms be drafted?"

    print(f"Query: {query}")
    embedding = service.embed_query(query)
    print(f"Embedding dimensions: {len(embedding)}")
    print(f"First 10 values: {embedding[:10]}")
