import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import chromadb
from chromadb.config import Settings as ChromaSettings

from codegraph.core.interfaces.vector_store_interface import VectorStoreInterface
from codegraph.utils.exceptions import TransientError

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "ui_components"


class ChromaDBVectorStore(VectorStoreInterface):
    """
    VectorStoreInterface backed by ChromaDB, one embedding per graph element.
    The collection uses cosine space, so similarity = 1 - distance.
    """

    def __init__(
        self,
        persistence_directory: str,
        use_server: bool = False,
        host: str = "localhost",
        port: int = 8003,
        collection_name: str = DEFAULT_COLLECTION_NAME
    ):
        self.db_path = str(persistence_directory)
        self.use_server = use_server
        self.host = host
        self.port = port
        self.collection_name = collection_name
        self.client = None
        self.collection = None
        if not self.use_server:
            os.makedirs(self.db_path, exist_ok=True)

    async def initialize(self):
        if self.client is None:
            if self.use_server:
                self.client = chromadb.HttpClient(
                    host=self.host,
                    port=self.port,
                    settings=ChromaSettings(anonymized_telemetry=False)
                )
                logger.info(f"ChromaDB client connected to server at {self.host}:{self.port}")
            else:
                self.client = chromadb.PersistentClient(
                    path=self.db_path,
                    settings=ChromaSettings(anonymized_telemetry=False)
                )
                logger.info(f"ChromaDB client initialized for local path: {self.db_path}")

        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"}
        )
        logger.info(f"ChromaDB collection '{self.collection_name}' ready with {self.collection.count()} items")

    async def _ensure_initialized(self):
        if self.collection is None:
            await self.initialize()

    async def upsert(self, element_id: UUID, embedding: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        await self._ensure_initialized()
        try:
            await asyncio.to_thread(
                self.collection.upsert,
                ids=[str(element_id)],
                embeddings=[[float(v) for v in embedding]],
                metadatas=[metadata or {"element_id": str(element_id)}]
            )
        except Exception as e:
            logger.error(f"Failed to upsert vector for {element_id} into ChromaDB: {e}", exc_info=True)
            raise TransientError(f"ChromaDB upsert failed: {e}") from e

    async def search(
        self,
        embedding: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Tuple[UUID, float]]:
        await self._ensure_initialized()
        if limit <= 0 or self.collection.count() == 0:
            return []

        try:
            results = await asyncio.to_thread(
                self.collection.query,
                query_embeddings=[[float(v) for v in embedding]],
                n_results=min(limit, self.collection.count()),
                where=filters or None
            )
        except Exception as e:
            logger.error(f"[ChromaDB] Query failed: {e}")
            raise TransientError(f"ChromaDB query failed: {e}") from e

        ids = results.get("ids", [[]])[0] if results.get("ids") else []
        distances = results.get("distances", [[]])[0] if results.get("distances") else []

        hits = []
        for i, raw_id in enumerate(ids):
            distance = distances[i] if i < len(distances) else 1.0
            try:
                element_id = UUID(str(raw_id))
            except ValueError:
                logger.warning(f"[ChromaDB] Skipping non-UUID id '{raw_id}'")
                continue
            hits.append((element_id, max(0.0, min(1.0, 1.0 - float(distance)))))
        return hits
