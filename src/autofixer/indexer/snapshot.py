"""Build, persist and load the embedding index snapshot."""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional

from gitignore_parser import parse_gitignore

from ..exceptions import EmbeddingDimensionError
from .chunker import ChunkExtractor
from .embeddings import OllamaEmbeddings
from .models import Chunk, IndexSnapshot

logger = logging.getLogger(__name__)

# Version-control and dependency directories never indexed
DEFAULT_EXCLUDES = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    ".autofixer",
    "dist",
    "build",
    "vendor",
}


class EmbeddingIndex:
    """Corpus-wide chunk collection with embeddings, persisted as one JSON snapshot."""

    def __init__(
        self,
        root_path: Path,
        snapshot_path: Path,
        extractor: ChunkExtractor,
        embeddings: OllamaEmbeddings,
        follow_gitignore: bool = True,
    ):
        """Initialize the index.

        Args:
            root_path: Project root to scan
            snapshot_path: JSON file holding the persisted snapshot
            extractor: Chunk extractor
            embeddings: Embedding service client
            follow_gitignore: Whether to respect the root .gitignore
        """
        self.root_path = Path(root_path).resolve()
        self.snapshot_path = Path(snapshot_path)
        self.extractor = extractor
        self.embeddings = embeddings
        self.follow_gitignore = follow_gitignore
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)

    def _gitignore_matcher(self) -> Optional[Callable[[str], bool]]:
        gitignore_path = self.root_path / ".gitignore"
        if not self.follow_gitignore or not gitignore_path.exists():
            return None
        try:
            return parse_gitignore(gitignore_path, base_dir=str(self.root_path))
        except Exception as e:
            self._warn(f"Error parsing .gitignore: {e}")
            return None

    def discover_files(self) -> List[Path]:
        """Recursively list eligible source files under the root, sorted.

        Returns:
            Files whose extension is on the allow-list, outside excluded directories
        """
        registry = self.extractor.registry
        matcher = self._gitignore_matcher()
        files = []

        for file_path in self.root_path.rglob("*"):
            relative_parts = file_path.relative_to(self.root_path).parts
            if any(part in DEFAULT_EXCLUDES for part in relative_parts[:-1]):
                continue
            if not file_path.is_file() or not registry.is_supported_file(str(file_path)):
                continue
            if matcher and matcher(str(file_path)):
                continue
            files.append(file_path)

        return sorted(files)

    async def build(self) -> IndexSnapshot:
        """Rebuild the whole index and persist it.

        Files that cannot be read or chunked are skipped. All chunk texts are
        embedded in one batch request.

        Returns:
            The new snapshot

        Raises:
            EmbeddingServiceError: If the embedding request fails
            EmbeddingDimensionError: If returned vectors differ in dimensionality
        """
        files = self.discover_files()
        logger.info(f"Indexing {len(files)} files under {self.root_path}")

        all_chunks: List[Chunk] = []
        for file_path in files:
            try:
                all_chunks.extend(self.extractor.extract_file(str(file_path)))
            except Exception as e:
                self._warn(f"Skipping {file_path}: {e}")

        if all_chunks:
            vectors = await self.embeddings.embed([chunk.text for chunk in all_chunks])
            dimensions = {len(vector) for vector in vectors}
            if len(dimensions) > 1:
                raise EmbeddingDimensionError(
                    f"Embedding service returned mixed dimensions: {sorted(dimensions)}"
                )
            for chunk, vector in zip(all_chunks, vectors):
                chunk.embedding = vector

        snapshot = IndexSnapshot(
            created_at=int(time.time() * 1000),
            root_path=str(self.root_path),
            embedding_model=self.embeddings.model,
            chunks=all_chunks,
        )
        self.save(snapshot)
        logger.info(f"Index built: {len(all_chunks)} chunks from {len(files)} files")
        return snapshot

    def save(self, snapshot: IndexSnapshot) -> None:
        """Persist a snapshot, replacing any previous one in a single step."""
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".vector_index.", suffix=".tmp", dir=str(self.snapshot_path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_name, self.snapshot_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        logger.debug(f"Saved snapshot to {self.snapshot_path}")

    def load(self) -> Optional[IndexSnapshot]:
        """Load the persisted snapshot.

        Returns:
            The snapshot, or None if it does not exist or cannot be parsed
        """
        if not self.snapshot_path.exists():
            return None
        try:
            with open(self.snapshot_path, "r", encoding="utf-8") as f:
                return IndexSnapshot.from_dict(json.load(f))
        except Exception as e:
            logger.warning(f"Ignoring unreadable snapshot {self.snapshot_path}: {e}")
            return None

    def is_current(self, snapshot: IndexSnapshot) -> bool:
        """Whether a snapshot was built for this root with the configured model."""
        return (
            snapshot.root_path == str(self.root_path)
            and snapshot.embedding_model == self.embeddings.model
        )

    async def load_or_build(self, force: bool = False) -> IndexSnapshot:
        """Return the persisted snapshot, rebuilding when absent, stale or forced.

        Args:
            force: Always rebuild

        Returns:
            A snapshot matching the current root and embedding model
        """
        if not force:
            snapshot = self.load()
            if snapshot is not None and self.is_current(snapshot):
                return snapshot
            if snapshot is not None:
                logger.info("Snapshot was built for a different root or model, rebuilding")
            else:
                logger.info("Building vector index...")
        return await self.build()
