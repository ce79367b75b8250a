"""OpenAI embedding generation for index writes and queries."""

from __future__ import annotations

from typing import List, Optional

from openai import AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.errors import EmbeddingError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("embedding_service")
settings = get_settings()


class EmbeddingService:
    """Embed texts in batches with retry on transient failures."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        self._model_name = settings.embedding.embedding_model
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client

        if not settings.embedding.openai_api_key:
            raise EmbeddingError("OPENAI_API_KEY is required for embeddings", model=self._model_name)
        self._client = AsyncOpenAI(
            api_key=settings.embedding.openai_api_key,
            base_url=settings.embedding.openai_base_url,
            timeout=settings.embedding.embedding_timeout,
        )
        return self._client

    async def _embed_batch(self, inputs: List[str]) -> List[List[float]]:
        client = self._get_client()
        try:
            resp = await client.embeddings.create(model=self._model_name, input=inputs)
            return [d.embedding for d in resp.data]
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}", model=self._model_name) from e

    async def _embed_batch_with_retry(self, inputs: List[str]) -> List[List[float]]:
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(settings.embedding.embedding_max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(EmbeddingError),
        ):
            with attempt:
                return await self._embed_batch(inputs)
        raise EmbeddingError("Embedding retries exhausted", model=self._model_name)

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts, preserving input order.

        Empty strings are not accepted by the API; callers substitute a
        stand-in text (e.g. the document name) before calling.
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        batch_size = max(1, settings.embedding.embedding_batch_size)
        for start in range(0, len(texts), batch_size):
            batch = texts[start : start + batch_size]
            batch_vectors = await self._embed_batch_with_retry(batch)
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    "Embedding response size mismatch",
                    model=self._model_name,
                    details={"expected": len(batch), "got": len(batch_vectors)},
                )
            expected_dim = settings.embedding.embedding_dimension
            for vector in batch_vectors:
                if expected_dim is not None and len(vector) != expected_dim:
                    raise EmbeddingError(
                        "Embedding dimension mismatch",
                        model=self._model_name,
                        details={"expected_dimension": expected_dim, "actual_dimension": len(vector)},
                    )
            vectors.extend(batch_vectors)

        logger.debug(f"Embedded {len(vectors)} texts with {self._model_name}")
        return vectors

    async def embed_text(self, text: str) -> List[float]:
        return (await self.embed_texts([text]))[0]
