"""Shared fixtures and service fakes for the autofixer tests."""

import hashlib
import struct
from pathlib import Path
from typing import List, Sequence

import pytest

from autofixer.indexer.chunker import ChunkExtractor
from autofixer.indexer.models import Chunk
from autofixer.indexer.snapshot import EmbeddingIndex
from autofixer.repair.edits import EditApplier
from autofixer.repair.models import FixProposal
from autofixer.tools.fix_tool import FixTool
from autofixer.tools.search_tool import SimilaritySearch
from autofixer.vector_db.backends import ExactScanBackend

EMBEDDING_DIMENSION = 8


def _hash_to_float(text: str, index: int) -> float:
    digest = hashlib.sha256(f"{text}|{index}".encode("utf-8")).digest()
    value = struct.unpack(">Q", digest[:8])[0]
    return (value / (2**63)) - 1.0


class FakeEmbeddings:
    """Deterministic embedding service that records its batch calls."""

    model = "fake-embedding-v1"

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [[_hash_to_float(text, i) for i in range(EMBEDDING_DIMENSION)] for text in texts]

    async def embed_query(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class ScriptedProposer:
    """Fix-proposal service returning queued proposals, then empty ones."""

    def __init__(self, proposals: Sequence[FixProposal] = ()) -> None:
        self.proposals = list(proposals)
        self.requests: List[dict] = []

    async def propose(
        self,
        error_message: str,
        chunks: Sequence[Chunk],
        root_path: Path,
        extra_context: str = "",
        preferred_paths: Sequence[str] = (),
    ) -> FixProposal:
        self.requests.append(
            {
                "error_message": error_message,
                "chunks": list(chunks),
                "extra_context": extra_context,
                "preferred_paths": list(preferred_paths),
            }
        )
        if self.proposals:
            return self.proposals.pop(0)
        return FixProposal()

    async def close(self) -> None:
        pass


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external services)")
    config.addinivalue_line("markers", "integration: Several components working together")


@pytest.fixture
def extractor() -> ChunkExtractor:
    return ChunkExtractor(max_chunk_len=3000)


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def index(project: Path, extractor: ChunkExtractor, fake_embeddings: FakeEmbeddings) -> EmbeddingIndex:
    return EmbeddingIndex(
        root_path=project,
        snapshot_path=project / ".autofixer" / "vector_index.json",
        extractor=extractor,
        embeddings=fake_embeddings,
    )


@pytest.fixture
def applier(project: Path, tmp_path: Path) -> EditApplier:
    return EditApplier(project, tmp_path / "backups")


def make_fix_tool(
    index: EmbeddingIndex,
    embeddings: FakeEmbeddings,
    proposer: ScriptedProposer,
    applier: EditApplier,
) -> FixTool:
    search = SimilaritySearch(index, embeddings, ExactScanBackend())
    return FixTool(search, proposer, applier, index.root_path, top_k=5)
