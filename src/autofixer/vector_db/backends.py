"""Ranking strategies for similarity search over an index snapshot."""

import logging
import math
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from ..exceptions import ConfigError
from ..indexer.models import Chunk, IndexSnapshot

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when the dimensions differ or either vector has zero norm.
    """
    if len(a) != len(b):
        return 0.0
    dot = na = nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na == 0 or nb == 0:
        return 0.0
    return dot / (math.sqrt(na) * math.sqrt(nb))


class SimilarityBackend(ABC):
    """Ranks the chunks of a snapshot against a query vector."""

    name = "abstract"

    @abstractmethod
    def rank(self, snapshot: IndexSnapshot, query_vector: List[float], k: int) -> List[Chunk]:
        """Return at most k chunks, best first."""


class ExactScanBackend(SimilarityBackend):
    """Cosine similarity against every chunk vector."""

    name = "exact"

    def rank(self, snapshot: IndexSnapshot, query_vector: List[float], k: int) -> List[Chunk]:
        if k <= 0:
            return []
        scored = [
            (cosine_similarity(chunk.embedding or [], query_vector), chunk)
            for chunk in snapshot.chunks
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [chunk for _, chunk in scored[:k]]


class QdrantBackend(SimilarityBackend):
    """Flat inner-product index held in an in-memory Qdrant collection.

    The collection is built lazily on first use and reused until a different
    snapshot is ranked.
    """

    name = "qdrant"

    def __init__(self, collection_name: str = "code_chunks"):
        """Initialize the backend.

        Args:
            collection_name: Name of the in-memory collection
        """
        self.collection_name = collection_name
        self.client: Optional[QdrantClient] = None
        self._indexed_key: Optional[tuple] = None

    def _ensure_index(self, snapshot: IndexSnapshot) -> bool:
        """Build the collection for this snapshot unless it is already built.

        Returns:
            False when the snapshot holds no vectors
        """
        key = (id(snapshot), snapshot.created_at)
        if self._indexed_key == key:
            return True

        dim = snapshot.dimension
        if not dim:
            return False

        if self.client is None:
            self.client = QdrantClient(":memory:")
        if self.client.collection_exists(self.collection_name):
            self.client.delete_collection(self.collection_name)

        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=dim, distance=Distance.DOT),
        )
        points = [
            PointStruct(id=position, vector=chunk.embedding)
            for position, chunk in enumerate(snapshot.chunks)
            if chunk.embedding and len(chunk.embedding) == dim
        ]
        self.client.upsert(collection_name=self.collection_name, points=points)
        self._indexed_key = key
        logger.info(f"Built in-memory Qdrant index with {len(points)} vectors (dim={dim})")
        return True

    def rank(self, snapshot: IndexSnapshot, query_vector: List[float], k: int) -> List[Chunk]:
        if k <= 0 or not self._ensure_index(snapshot):
            return []

        response = self.client.query_points(
            collection_name=self.collection_name,
            query=query_vector,
            limit=k,
        )

        results = []
        for point in response.points:
            position = point.id
            if isinstance(position, int) and 0 <= position < len(snapshot.chunks):
                results.append(snapshot.chunks[position])
        return results[:k]


def create_backend(name: str) -> SimilarityBackend:
    """Create the ranking backend selected in configuration.

    Args:
        name: "exact" or "qdrant"

    Raises:
        ConfigError: For an unknown backend name
    """
    if name == "exact":
        return ExactScanBackend()
    if name == "qdrant":
        return QdrantBackend()
    raise ConfigError(f"Unknown search backend: {name}")
