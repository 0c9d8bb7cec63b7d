"""
Embedding Gateway
Converts text to fixed-length vectors with OpenAI, memoizing results.

When the provider cannot be used (no API key, network failure, error
response, malformed payload) a deterministic pseudo-embedding derived from
a string hash is returned instead, so downstream scoring keeps working with
degraded ranking quality.
"""
import math
from collections import OrderedDict
from typing import TYPE_CHECKING, Optional

import openai
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.adapters.types import DEFAULT_DIMENSION, normalize_vector
from backend.core.exceptions import EmbeddingError

if TYPE_CHECKING:
    from backend.services.cache import ResponseCache

logger = structlog.get_logger().bind(service="embeddings")

RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def string_hash(text: str) -> int:
    """32-bit signed rolling hash (h * 31 + c)."""
    h = 0
    for char in text:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def pseudo_embedding(text: str, dimension: int = DEFAULT_DIMENSION) -> list[float]:
    """Deterministic stand-in vector for ``text``."""
    h = string_hash(text)
    return [math.sin(h + i) * 0.1 for i in range(dimension)]


class EmbeddingGateway:
    """
    Text-to-vector gateway on the OpenAI embeddings API.

    Memoizes by exact text. Once the memo grows past ``cache_size`` entries
    it is cut back to the most recent half. Fallback vectors are never
    memoized so a recovered provider is used on the next call.
    """

    EMBEDDING_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = EMBEDDING_MODEL,
        dimension: int = DEFAULT_DIMENSION,
        cache_size: int = 1000,
        client: Optional[openai.AsyncOpenAI] = None,
        response_cache: Optional["ResponseCache"] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.cache_size = cache_size
        self._client = client
        self._memo: OrderedDict[str, list[float]] = OrderedDict()
        self.response_cache = response_cache

    @property
    def client(self) -> openai.AsyncOpenAI:
        """Lazy-loaded OpenAI client."""
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def cache_size_used(self) -> int:
        return len(self._memo)

    def clear_cache(self) -> None:
        self._memo.clear()

    def _remember(self, text: str, vector: list[float]) -> None:
        self._memo[text] = vector
        self._memo.move_to_end(text)
        if len(self._memo) > self.cache_size:
            keep = self.cache_size // 2
            while len(self._memo) > keep:
                self._memo.popitem(last=False)

    def _recall(self, text: str) -> Optional[list[float]]:
        vector = self._memo.get(text)
        if vector is not None:
            self._memo.move_to_end(text)
            return list(vector)
        return None

    @retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _create_embeddings(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(model=self.model, input=texts)

        data = getattr(response, "data", None) or []
        if len(data) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(data)}")

        vectors = []
        for item in data:
            embedding = getattr(item, "embedding", None)
            if not embedding or not all(isinstance(v, (int, float)) for v in embedding):
                raise EmbeddingError("malformed embedding in provider response")
            vectors.append(normalize_vector([float(v) for v in embedding], self.dimension))
        return vectors

    async def get_embedding(self, text: str) -> list[float]:
        """Embedding for ``text``; never raises."""
        cached = self._recall(text)
        if cached is not None:
            return cached

        if self.response_cache is not None:
            shared = await self.response_cache.get_embedding(text)
            if shared:
                vector = normalize_vector(shared, self.dimension)
                self._remember(text, vector)
                return list(vector)

        if not self.is_configured:
            logger.warning("embedding_api_key_missing", fallback="pseudo")
            return pseudo_embedding(text, self.dimension)

        try:
            vector = (await self._create_embeddings([text]))[0]
        except Exception as e:
            logger.warning("embedding_fallback", error=str(e), text_length=len(text))
            return pseudo_embedding(text, self.dimension)

        self._remember(text, vector)
        if self.response_cache is not None:
            await self.response_cache.set_embedding(text, vector)
        return list(vector)

    async def get_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Batched form of get_embedding; one provider call for all misses."""
        results: list[Optional[list[float]]] = [self._recall(text) for text in texts]
        missing = [i for i, vector in enumerate(results) if vector is None]

        if missing and self.is_configured:
            try:
                vectors = await self._create_embeddings([texts[i] for i in missing])
                for i, vector in zip(missing, vectors):
                    self._remember(texts[i], vector)
                    results[i] = list(vector)
            except Exception as e:
                logger.warning("embedding_batch_fallback", error=str(e), batch_size=len(missing))
        elif missing:
            logger.warning("embedding_api_key_missing", fallback="pseudo", batch_size=len(missing))

        return [
            vector if vector is not None else pseudo_embedding(texts[i], self.dimension)
            for i, vector in enumerate(results)
        ]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
