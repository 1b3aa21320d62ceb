import random

import numpy as np
import pytest

from mlvectorsearch.exceptions import ConfigurationError
from mlvectorsearch.interfaces.vector_collection import VectorCollection
from mlvectorsearch.implementations.distance_metrics import (
    EuclideanDistance, CosineDistance, ManhattanDistance, MinkowskiDistance
)
from mlvectorsearch.implementations.vector import Vector, SparseVector
from mlvectorsearch.implementations.vector_array import VectorArray


@pytest.fixture(scope="module")
def simple_set():
    return [Vector([float(i)]) for i in range(1000)]


@pytest.fixture
def collection(simple_set):
    col = VectorArray(EuclideanDistance())
    col.build(simple_set)
    return col


@pytest.mark.parametrize("radius", [2.0, 5.0, 10.0])
def test_range_search(collection, simple_set, radius):
    rng = random.Random(1)
    for _ in range(50):
        idx = rng.randrange(len(simple_set))
        found = collection.search_range(simple_set[idx], radius)

        low = int(max(idx - radius, 0))
        high = int(min(idx + radius, len(simple_set) - 1))
        assert len(found) == 1 + high - low
        for r in found:
            assert low <= r.vector.get(0) <= high
            assert r.vector is simple_set[r.index]
        distances = [r.distance for r in found]
        assert distances == sorted(distances)
        assert found[0].index == idx
        assert found[0].distance == 0.0


def test_knn_search(collection, simple_set):
    rng = random.Random(2)
    for k in range(1, 100):
        # stay away from the edges so the neighbourhood is symmetric
        idx = k + rng.randrange(len(simple_set) - 2 * k)
        found = collection.search_knn(simple_set[idx], k)

        assert len(found) == k
        low, high = idx - k // 2, idx + k // 2
        for r in found:
            assert low <= r.vector.get(0) <= high
        distances = [r.distance for r in found]
        assert distances == sorted(distances)


def test_knn_ties_keep_insertion_order(collection, simple_set):
    found = collection.search_knn(simple_set[500], 2)
    assert [r.index for r in found] == [500, 499]


def test_knn_k_larger_than_size():
    col = VectorArray()
    col.build([Vector([0.0]), Vector([3.0]), Vector([1.0])])
    found = col.search_knn(Vector([0.2]), 10)
    assert [r.index for r in found] == [0, 2, 1]


def test_search_dispatch(collection, simple_set):
    query = simple_set[10]
    assert collection.search(query, k=3) == collection.search_knn(query, 3)
    assert collection.search(query, radius=1.5) == collection.search_range(query, 1.5)
    with pytest.raises(ConfigurationError):
        collection.search(query)
    with pytest.raises(ConfigurationError):
        collection.search(query, k=3, radius=1.0)


@pytest.mark.parametrize("k", [0, -1, 2.5, True])
def test_invalid_k(collection, simple_set, k):
    with pytest.raises(ConfigurationError):
        collection.search_knn(simple_set[0], k)


@pytest.mark.parametrize("radius", [-0.1, float("nan")])
def test_invalid_radius(collection, simple_set, radius):
    with pytest.raises(ConfigurationError):
        collection.search_range(simple_set[0], radius)


def test_empty_collection():
    col = VectorArray()
    col.build([])
    assert col.size() == 0
    assert len(col) == 0
    assert col.search_knn(Vector([1.0, 2.0]), 5) == []
    assert col.search_range(Vector([1.0, 2.0]), 10.0) == []


def test_query_length_mismatch(collection):
    with pytest.raises(ValueError):
        collection.search_knn(Vector([1.0, 2.0]), 3)


def test_build_rejects_mixed_lengths():
    with pytest.raises(ValueError):
        VectorArray().build([Vector([1.0]), Vector([1.0, 2.0])])


def test_get(collection, simple_set):
    assert collection.get(7) is simple_set[7]
    with pytest.raises(IndexError):
        collection.get(1000)
    with pytest.raises(IndexError):
        collection.get(-1)


def test_add_and_extend_match_full_build():
    rng = np.random.default_rng(4)
    vectors = [Vector(rng.standard_normal(6)) for _ in range(40)]
    query = Vector(rng.standard_normal(6))

    built = VectorArray(CosineDistance())
    built.build(vectors)

    grown = VectorArray(CosineDistance())
    grown.build(vectors[:10])
    grown.add(vectors[10])
    grown.extend(vectors[11:])

    assert grown.size() == 40
    expected = [(r.index, r.distance) for r in built.search_knn(query, 7)]
    actual = [(r.index, r.distance) for r in grown.search_knn(query, 7)]
    assert actual == expected


def test_extend_rejects_wrong_length(collection):
    with pytest.raises(ValueError):
        collection.add(Vector([1.0, 2.0]))


def test_metric_change_and_uncached_metric(simple_set):
    col = VectorArray()
    col.build(simple_set[:20], metric=ManhattanDistance())
    assert isinstance(col.distance_metric, ManhattanDistance)
    found = col.search_range(Vector([5.0]), 1.0)
    assert [r.index for r in found] == [5, 4, 6]

    col.set_distance_metric(EuclideanDistance())
    assert [r.index for r in col.search_knn(Vector([5.4]), 2)] == [5, 6]


def test_parallel_build_gives_same_results():
    rng = np.random.default_rng(8)
    vectors = [Vector(rng.standard_normal(10)) for _ in range(300)]
    query = Vector(rng.standard_normal(10))
    seq, par = VectorArray(), VectorArray()
    seq.build(vectors)
    par.build(vectors, parallel=True)
    assert seq.search_knn(query, 15) == par.search_knn(query, 15)


def test_sparse_vectors():
    col = VectorArray(EuclideanDistance())
    col.build([SparseVector(100, [3], [1.0]), SparseVector(100, [50], [1.0]), SparseVector(100, [3], [2.0])])
    found = col.search_knn(SparseVector(100, [3], [1.9]), 2)
    assert [r.index for r in found] == [2, 0]


def test_is_vector_collection():
    assert isinstance(VectorArray(), VectorCollection)


def _random_vectors(rng, n, dim, sparse):
    data = rng.standard_normal((n, dim))
    if sparse:
        data *= rng.random((n, dim)) < 0.5
        return [SparseVector.from_dense(row) for row in data]
    return [Vector(row) for row in data]


@pytest.mark.parametrize("metric", [
    EuclideanDistance(), CosineDistance(), ManhattanDistance(), MinkowskiDistance(3.0)
])
@pytest.mark.parametrize("sparse", [False, True])
def test_matches_linear_scan(metric, sparse):
    rng = np.random.default_rng(21)
    vectors = _random_vectors(rng, 60, 6, sparse)
    col = VectorArray(metric)
    col.build(vectors)

    for query in _random_vectors(rng, 5, 6, sparse):
        truth = sorted(
            ((metric.distance(v, query), i) for i, v in enumerate(vectors)),
            key=lambda pair: pair[0]
        )

        found = col.search_knn(query, 10)
        assert [r.index for r in found] == [i for _, i in truth[:10]]
        for r, (d, _) in zip(found, truth):
            assert r.distance == pytest.approx(d, abs=1e-9)

        # halfway between two neighbours so no distance sits on the boundary
        radius = (truth[29][0] + truth[30][0]) / 2
        within = col.search_range(query, radius)
        assert {r.index for r in within} == {i for d, i in truth if d <= radius}
        for r in within:
            assert r.distance == pytest.approx(metric.distance(vectors[r.index], query), abs=1e-9)


def test_failed_rebuild_keeps_metric_and_cache():
    stored = [Vector([3.0, 4.0]), Vector([1.0, 0.0])]
    col = VectorArray(EuclideanDistance())
    col.build(stored)

    with pytest.raises(ValueError):
        col.build([Vector([1.0]), Vector([1.0, 2.0])], metric=CosineDistance())

    assert isinstance(col.distance_metric, EuclideanDistance)
    assert col.size() == 2
    found = col.search_knn(Vector([3.0, 4.0]), 2)
    assert [r.index for r in found] == [0, 1]
    assert found[0].distance == 0.0
    assert found[1].distance == pytest.approx(EuclideanDistance().distance(stored[1], stored[0]))


def test_rebuild_with_new_metric_uses_its_cache():
    stored = [Vector([3.0, 4.0]), Vector([1.0, 0.0])]
    col = VectorArray(EuclideanDistance())
    col.build(stored)
    col.build(stored, metric=CosineDistance())

    found = col.search_knn(Vector([6.0, 8.0]), 2)
    assert found[0].index == 0
    assert found[0].distance == pytest.approx(0.0, abs=1e-7)
    assert found[1].distance == pytest.approx(CosineDistance().distance(stored[1], Vector([6.0, 8.0])))
