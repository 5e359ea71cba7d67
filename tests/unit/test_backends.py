"""Similarity ranking: cosine scan and the in-memory Qdrant index."""

import math

import pytest

from autofixer.exceptions import ConfigError
from autofixer.indexer.models import Chunk, IndexSnapshot, chunk_id
from autofixer.vector_db.backends import (
    ExactScanBackend,
    QdrantBackend,
    cosine_similarity,
    create_backend,
)


def make_snapshot(vectors):
    chunks = [
        Chunk(
            id=chunk_id(f"f{i}.py", 1, 1),
            file_path=f"f{i}.py",
            kind="file",
            name=f"f{i}.py",
            start_line=1,
            end_line=1,
            text=f"chunk {i}",
            embedding=vector,
        )
        for i, vector in enumerate(vectors)
    ]
    return IndexSnapshot(created_at=1, root_path="/repo", embedding_model="m", chunks=chunks)


@pytest.mark.unit
def test_cosine_of_vector_with_itself_is_one():
    vector = [0.3, -1.2, 4.0]
    assert math.isclose(cosine_similarity(vector, vector), 1.0, rel_tol=1e-9)


@pytest.mark.unit
@pytest.mark.parametrize(
    "a,b",
    [([0.0, 0.0], [1.0, 2.0]), ([1.0, 2.0], [0.0, 0.0]), ([1.0], [1.0, 0.0])],
)
def test_cosine_degenerate_inputs_are_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


@pytest.mark.unit
def test_exact_scan_orders_best_first_and_limits_to_k():
    snapshot = make_snapshot([[0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])

    results = ExactScanBackend().rank(snapshot, [1.0, 0.1], k=2)

    assert [c.name for c in results] == ["f1.py", "f2.py"]


@pytest.mark.unit
def test_exact_scan_handles_empty_snapshot_and_zero_k():
    backend = ExactScanBackend()

    assert backend.rank(make_snapshot([]), [1.0], k=5) == []
    assert backend.rank(make_snapshot([[1.0]]), [1.0], k=0) == []


@pytest.mark.unit
def test_qdrant_ranks_by_inner_product():
    snapshot = make_snapshot([[0.0, 1.0], [1.0, 0.0], [0.5, 0.5]])

    results = QdrantBackend().rank(snapshot, [1.0, 0.0], k=2)

    assert [c.name for c in results] == ["f1.py", "f2.py"]


@pytest.mark.unit
def test_qdrant_returns_at_most_k_even_when_k_exceeds_corpus():
    snapshot = make_snapshot([[1.0, 0.0], [0.0, 1.0]])

    results = QdrantBackend().rank(snapshot, [1.0, 1.0], k=10)

    assert sorted(c.name for c in results) == ["f0.py", "f1.py"]


@pytest.mark.unit
def test_qdrant_index_is_built_once_per_snapshot():
    snapshot = make_snapshot([[1.0, 0.0], [0.0, 1.0]])
    backend = QdrantBackend()

    backend.rank(snapshot, [1.0, 0.0], k=1)
    client = backend.client
    backend.rank(snapshot, [0.0, 1.0], k=1)

    assert backend.client is client
    assert backend._indexed_key == (id(snapshot), snapshot.created_at)


@pytest.mark.unit
def test_qdrant_empty_snapshot_returns_nothing():
    assert QdrantBackend().rank(make_snapshot([]), [1.0], k=3) == []


@pytest.mark.unit
def test_create_backend_by_name():
    assert isinstance(create_backend("exact"), ExactScanBackend)
    assert isinstance(create_backend("qdrant"), QdrantBackend)
    with pytest.raises(ConfigError):
        create_backend("faiss")
