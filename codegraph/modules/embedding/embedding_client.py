# codegraph/modules/embedding/embedding_client.py

import hashlib
import logging
import re
from collections import OrderedDict
from typing import List, Optional

import httpx
import numpy as np

from codegraph.core.interfaces.embedding_service_interface import EmbeddingServiceInterface
from codegraph.utils.exceptions import InvalidInputError, TransientError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 1536

_TOKEN = re.compile(r"[a-z0-9]+")


class EmbeddingException(TransientError):
    pass


class EmbeddingClient(EmbeddingServiceInterface):
    """
    Embeddings from an OpenAI-compatible /v1/embeddings endpoint.
    Keeps a small LRU cache so repeated queries do not hit the network.
    """

    def __init__(
        self,
        base_url: str,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        dimension: int = DEFAULT_DIMENSION,
        request_timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        max_cache_size: int = 200
    ):
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.api_key = api_key
        self.dimension = dimension
        self.request_timeout = request_timeout
        self.client = client
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._max_cache_size = max_cache_size

    async def initialize(self) -> None:
        if self.client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.request_timeout, connect=10)
            )

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def embed_text(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        if text in self._cache:
            self._cache.move_to_end(text)
            return self._cache[text]

        if self.client is None:
            await self.initialize()

        try:
            response = await self.client.post(
                "/v1/embeddings",
                json={"model": self.model_name, "input": text}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TransportError as e:
            raise EmbeddingException(f"Embedding endpoint unreachable at {self.base_url}: {e}") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429 or e.response.status_code >= 500:
                raise EmbeddingException(f"Embedding API error {e.response.status_code}") from e
            raise InvalidInputError(f"Embedding request rejected: {e.response.status_code} {e.response.text}") from e

        embedding = [float(v) for v in data["data"][0]["embedding"]]
        if len(embedding) != self.dimension:
            logger.warning(f"Embedding model '{self.model_name}' returned {len(embedding)} dims, expected {self.dimension}")

        self._cache[text] = embedding
        if len(self._cache) > self._max_cache_size:
            self._cache.popitem(last=False)
        return embedding


class HashEmbeddingService(EmbeddingServiceInterface):
    """
    Deterministic bag-of-words embeddings via feature hashing.
    Texts sharing tokens get similar vectors, which is enough for offline use and tests.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        self.dimension = dimension

    def _bucket(self, token: str) -> tuple:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "little") % self.dimension
        sign = 1.0 if digest[4] & 1 else -1.0
        return index, sign

    async def embed_text(self, text: str) -> List[float]:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in _TOKEN.findall(text.lower()):
            index, sign = self._bucket(token)
            vector[index] += sign
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()
