"""Embedding service backed by the OpenAI embeddings API."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Sequence

from openai import AsyncOpenAI

from notes_index.config.logger import app_logger, log_performance
from notes_index.config.settings import settings
from notes_index.services.errors import EmbeddingError

DIMENSION_PROBE_TEXT = "notes index dimension probe"


def prepare_text_for_embedding(title: str, body: str) -> str:
    """Combine title and body into the text that gets embedded."""
    return f"{title}\n\n{body}".strip()


class Embedder:
    """Turns text into fixed-length vectors.

    The client is created lazily on first use. Initialization is single-flight:
    callers that arrive while it is in progress await the same task, so the
    client is built and probed once no matter how many documents of a batch
    ask for it at the same moment.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        sub_batch_size: Optional[int] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        client_factory: Optional[Callable[[], AsyncOpenAI]] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._model = model or settings.OPENAI_EMBEDDING_MODEL
        self._dimensions = dimensions if dimensions is not None else settings.EMBEDDING_DIMENSIONS
        self._sub_batch_size = sub_batch_size if sub_batch_size is not None else settings.EMBEDDING_SUB_BATCH_SIZE
        self._api_base = api_base if api_base is not None else settings.OPENAI_API_BASE
        self._timeout = timeout if timeout is not None else settings.EMBEDDING_TIMEOUT_SECONDS
        if self._dimensions < 1 or self._sub_batch_size < 1:
            raise ValueError("dimensions and sub_batch_size must be >= 1")
        self._client_factory = client_factory or self._create_client

        self._client: Optional[AsyncOpenAI] = None
        self._init_task: Optional[asyncio.Task] = None
        self.load_count = 0

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    def _create_client(self) -> AsyncOpenAI:
        if not self._api_key:
            raise EmbeddingError("OPENAI_API_KEY must be configured")
        return AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._api_base or None,
            timeout=self._timeout,
        )

    async def initialize(self) -> "Embedder":
        """Load the client once; concurrent callers share the in-flight load."""
        if self._client is not None:
            return self

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        task = self._init_task

        try:
            # shield: a cancelled caller must not cancel the load other callers wait on
            await asyncio.shield(task)
        except Exception:
            # Failed loads are not cached so a later call can retry
            if self._init_task is task:
                self._init_task = None
            raise
        return self

    async def _load(self) -> None:
        self.load_count += 1
        app_logger.info(f"Loading embedding model {self._model} ({self._dimensions} dims)")
        start = time.perf_counter()

        client = self._client_factory()
        probe = await self._request(client, [DIMENSION_PROBE_TEXT])
        if len(probe[0]) != self._dimensions:
            raise EmbeddingError(
                f"Model {self._model} returned {len(probe[0])} dimensions, expected {self._dimensions}"
            )

        self._client = client
        duration = time.perf_counter() - start
        app_logger.info(f"Embedding model loaded in {duration * 1000:.0f}ms")
        log_performance("embedding_model_load", duration, model=self._model)

    async def _request(self, client: AsyncOpenAI, texts: Sequence[str]) -> List[List[float]]:
        kwargs = {}
        # Only the v3 models accept a reduced output size
        if self._model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self._dimensions
        try:
            response = await client.embeddings.create(
                model=self._model,
                input=list(texts),
                **kwargs,
            )
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        # Sort by index to ensure correct order
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, received {len(data)}")
        return [list(item.embedding) for item in data]

    def _check_dimensions(self, vectors: List[List[float]]) -> List[List[float]]:
        for vector in vectors:
            if len(vector) != self._dimensions:
                raise EmbeddingError(
                    f"Embedding has {len(vector)} dimensions, expected {self._dimensions}"
                )
        return vectors

    async def embed(self, text: str) -> List[float]:
        """Generate the embedding for a single text."""
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        await self.initialize()
        vectors = await self._request(self._client, [text])
        return self._check_dimensions(vectors)[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Generate embeddings for many texts in fixed-size sub-batches."""
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise EmbeddingError("Cannot embed empty text")
        await self.initialize()

        results: List[List[float]] = []
        for i in range(0, len(texts), self._sub_batch_size):
            batch = texts[i : i + self._sub_batch_size]
            results.extend(self._check_dimensions(await self._request(self._client, batch)))
        return results

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._init_task = None
