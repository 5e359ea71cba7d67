"""Semantic code search over the embedding index."""

import logging
from typing import List, Optional

from ..indexer.embeddings import OllamaEmbeddings
from ..indexer.models import Chunk, IndexSnapshot
from ..indexer.snapshot import EmbeddingIndex
from ..vector_db.backends import SimilarityBackend

logger = logging.getLogger(__name__)


class SimilaritySearch:
    """Rank indexed chunks against a text query."""

    def __init__(
        self,
        index: EmbeddingIndex,
        embeddings: OllamaEmbeddings,
        backend: SimilarityBackend,
    ):
        """Initialize search.

        Args:
            index: Embedding index that provides the snapshot
            embeddings: Embedding service client used for the query
            backend: Ranking strategy, fixed for the lifetime of this object
        """
        self.index = index
        self.embeddings = embeddings
        self.backend = backend
        self._snapshot: Optional[IndexSnapshot] = None

    async def get_snapshot(self) -> IndexSnapshot:
        """Snapshot in use, loaded (or built when missing or stale) on first call."""
        if self._snapshot is None:
            self._snapshot = await self.index.load_or_build()
        return self._snapshot

    def use_snapshot(self, snapshot: IndexSnapshot) -> None:
        """Search against this snapshot from now on (after an explicit rebuild)."""
        self._snapshot = snapshot

    async def search(self, query: str, k: int = 10) -> List[Chunk]:
        """Search for the chunks most similar to a query.

        Args:
            query: Free text (typically an error message plus context)
            k: Maximum number of results

        Returns:
            At most k chunks, best first
        """
        snapshot = await self.get_snapshot()
        if not snapshot.chunks or k <= 0:
            return []

        logger.info(f"Searching {len(snapshot.chunks)} chunks with {self.backend.name} backend")
        query_vector = await self.embeddings.embed_query(query)
        return self.backend.rank(snapshot, query_vector, k)

    async def search_code(self, query: str, limit: int = 10) -> dict:
        """Search and format results for tool callers.

        Returns:
            Dictionary with search results, or an error entry
        """
        try:
            results = await self.search(query, limit)
            formatted_results = [
                {
                    "rank": i,
                    "file": chunk.file_path,
                    "lines": f"{chunk.start_line}-{chunk.end_line}",
                    "kind": chunk.kind,
                    "name": chunk.name,
                    "code": chunk.text,
                }
                for i, chunk in enumerate(results, 1)
            ]
            return {
                "success": True,
                "query": query,
                "total_results": len(formatted_results),
                "results": formatted_results,
            }

        except Exception as e:
            logger.error(f"Error during search: {e}")
            return {"success": False, "error": str(e)}
