import math

import numpy as np
import pytest

from mlvectorsearch.exceptions import ConfigurationError
from mlvectorsearch.implementations.distance_metrics import (
    CosineDistance, CosineDistanceNormalized, EuclideanDistance
)
from mlvectorsearch.implementations.random_projection_lsh import (
    RandomProjectionLSH, ProjectionMatrix, WORD_BITS, pack_bits, unpack_bits,
    hamming_distances, splitmix64
)
from mlvectorsearch.implementations.vector import Vector, SparseVector
from mlvectorsearch.implementations.vector_array import VectorArray
from mlvectorsearch.implementations.vector_collection_utils import kth_neighbor_stats


def unit_vectors(n, dim, seed):
    rng = np.random.default_rng(seed)
    data = rng.standard_normal((n, dim))
    data /= np.linalg.norm(data, axis=1, keepdims=True)
    return [Vector(row, metadata={"i": i}) for i, row in enumerate(data)]


@pytest.fixture(scope="module")
def normal_vecs():
    return unit_vectors(100, 20, seed=42)


@pytest.fixture(scope="module")
def naive(normal_vecs):
    col = VectorArray(CosineDistanceNormalized())
    col.build(normal_vecs)
    return col


@pytest.fixture(scope="module")
def lsh(normal_vecs):
    col = RandomProjectionLSH(signature_bits=16 * WORD_BITS, seed=1234)
    col.build(normal_vecs)
    return col


def _contained(truth, approx):
    in_truth = {r.index for r in truth}
    return sum(1 for r in approx if r.index in in_truth)


class TestRecall:

    def test_knn_recall(self, normal_vecs, naive, lsh):
        for v in normal_vecs:
            true_results = naive.search_knn(v, 15)
            aprx_results = lsh.search_knn(v, 15)
            assert len(aprx_results) == 15
            assert _contained(true_results, aprx_results) >= len(true_results) // 2

    def test_range_recall(self, normal_vecs, naive, lsh):
        # the first neighbour is the query itself
        stats = kth_neighbor_stats(naive, normal_vecs, 11)
        search_dist = stats.mean + 2 * stats.standard_deviation

        for v in normal_vecs:
            true_results = naive.search_range(v, search_dist)
            aprx_results = lsh.search_range(v, search_dist)
            assert _contained(true_results, aprx_results) >= len(true_results) // 2

    @pytest.mark.parametrize("options", [
        {"in_memory": False},
        {"pool_size": 4096},
    ])
    def test_other_matrix_modes_recall(self, normal_vecs, naive, options):
        col = RandomProjectionLSH(signature_bits=512, seed=99, **options)
        col.build(normal_vecs)
        recalls = [
            _contained(naive.search_knn(v, 15), col.search_knn(v, 15)) / 15
            for v in normal_vecs
        ]
        assert np.mean(recalls) >= 0.5


class TestSearch:

    def test_knn_results_sorted_and_query_first(self, normal_vecs, lsh):
        for idx in [0, 17, 99]:
            found = lsh.search_knn(normal_vecs[idx], 10)
            distances = [r.distance for r in found]
            assert distances == sorted(distances)
            assert found[0].index == idx
            assert found[0].distance == 0.0
            assert found[0].vector is normal_vecs[idx]

    def test_knn_k_larger_than_size(self, normal_vecs, lsh):
        assert len(lsh.search_knn(normal_vecs[0], 500)) == 100

    def test_range_extremes(self, normal_vecs, lsh):
        assert len(lsh.search_range(normal_vecs[3], 1.0)) == 100
        found = lsh.search_range(normal_vecs[3], 0.0)
        assert [r.index for r in found][:1] == [3]
        for r in lsh.search_range(normal_vecs[3], 0.6):
            assert r.distance <= 0.6 + 1e-12

    def test_range_sorted(self, normal_vecs, lsh):
        found = lsh.search_range(normal_vecs[5], 0.7)
        distances = [r.distance for r in found]
        assert distances == sorted(distances)

    def test_search_dispatch(self, normal_vecs, lsh):
        assert lsh.search(normal_vecs[1], k=4) == lsh.search_knn(normal_vecs[1], 4)
        with pytest.raises(ConfigurationError):
            lsh.search(normal_vecs[1])

    def test_invalid_arguments(self, normal_vecs, lsh):
        with pytest.raises(ConfigurationError):
            lsh.search_knn(normal_vecs[0], 0)
        with pytest.raises(ConfigurationError):
            lsh.search_range(normal_vecs[0], -1.0)
        with pytest.raises(ValueError):
            lsh.search_knn(Vector(np.ones(7)), 3)

    def test_empty_collection(self):
        col = RandomProjectionLSH(seed=1)
        col.build([])
        assert col.size() == 0
        assert col.search_knn(Vector([1.0, 0.0]), 3) == []
        assert col.search_range(Vector([1.0, 0.0]), 0.5) == []

    def test_parallel_build_matches_sequential(self, normal_vecs):
        seq = RandomProjectionLSH(seed=7)
        par = RandomProjectionLSH(seed=7)
        seq.build(normal_vecs)
        par.build(normal_vecs, parallel=True)
        for v in normal_vecs[:10]:
            assert seq.search_knn(v, 5) == par.search_knn(v, 5)

    def test_unnormalized_inputs_use_direction_only(self, normal_vecs, lsh):
        scaled = Vector(normal_vecs[8].to_numpy() * 25.0)
        np.testing.assert_array_equal(lsh.signature(scaled), lsh.signature(normal_vecs[8]))

    def test_get_and_size(self, normal_vecs, lsh):
        assert lsh.size() == 100
        assert len(lsh) == 100
        assert lsh.get(4) is normal_vecs[4]
        with pytest.raises(IndexError):
            lsh.get(100)


class TestConfiguration:

    @pytest.mark.parametrize("bits", [0, -32, 100, 33, True, 64.0])
    def test_invalid_signature_bits(self, bits):
        with pytest.raises(ConfigurationError):
            RandomProjectionLSH(signature_bits=bits)

    def test_invalid_pool_size(self):
        with pytest.raises(ConfigurationError):
            RandomProjectionLSH(pool_size=0)

    def test_metric_guard(self, normal_vecs):
        with pytest.raises(ConfigurationError):
            RandomProjectionLSH(metric=EuclideanDistance())

        col = RandomProjectionLSH(seed=3)
        with pytest.raises(ConfigurationError):
            col.set_distance_metric(EuclideanDistance())
        with pytest.raises(ConfigurationError):
            col.build(normal_vecs, metric=EuclideanDistance())

        col.set_distance_metric(CosineDistanceNormalized())
        assert isinstance(col.distance_metric, CosineDistanceNormalized)
        assert isinstance(RandomProjectionLSH().distance_metric, CosineDistance)

    def test_words_per_signature(self):
        col = RandomProjectionLSH(signature_bits=96)
        assert col.signature_bits == 96
        assert col.words_per_signature == 3

    def test_signature_requires_matrix(self):
        with pytest.raises(RuntimeError):
            RandomProjectionLSH(seed=1).signature(Vector([1.0, 2.0]))


class TestSignatures:

    def test_deterministic_for_seed(self, normal_vecs):
        a = RandomProjectionLSH(seed=5)
        b = RandomProjectionLSH(seed=5)
        a.build(normal_vecs)
        b.build(normal_vecs)
        for v in normal_vecs[:5]:
            sig = a.signature(v)
            assert sig.dtype == np.uint32
            assert sig.shape == (16,)
            np.testing.assert_array_equal(sig, b.signature(v))

    def test_matrix_reused_for_same_dimension(self, normal_vecs):
        col = RandomProjectionLSH(seed=5)
        col.build(normal_vecs)
        matrix = col.projection_matrix
        col.build(normal_vecs[:50])
        assert col.projection_matrix is matrix
        col.build(unit_vectors(10, 8, seed=1))
        assert col.projection_matrix is not matrix
        assert col.projection_matrix.cols == 8

    def test_sparse_and_dense_signatures_agree(self):
        rng = np.random.default_rng(6)
        dense = rng.standard_normal(50) * (rng.random(50) < 0.3)
        col = RandomProjectionLSH(seed=21)
        col.build([Vector(dense)])
        np.testing.assert_array_equal(
            col.signature(SparseVector.from_dense(dense)), col.signature(Vector(dense))
        )

    def test_hamming_distance_conversions(self):
        col = RandomProjectionLSH(signature_bits=512)
        assert col.hamming_to_distance(0) == 0.0
        assert col.hamming_to_distance(512) == pytest.approx(1.0)
        assert col.hamming_to_distance(256) == pytest.approx(math.sqrt(0.5))
        assert col.distance_to_hamming(0.0) == 0
        assert col.distance_to_hamming(1.0) == 512
        assert col.distance_to_hamming(5.0) == 512
        for h in [10, 100, 300]:
            assert col.distance_to_hamming(col.hamming_to_distance(h) + 1e-9) == h


class TestBitHelpers:

    def test_pack_bits_layout(self):
        bits = np.zeros(64, dtype=bool)
        bits[0] = True
        bits[33] = True
        bits[63] = True
        words = pack_bits(bits)
        assert words.dtype == np.uint32
        assert words.tolist() == [1, 2 | (1 << 31)]
        np.testing.assert_array_equal(unpack_bits(words), bits)

    def test_pack_bits_rows(self):
        rng = np.random.default_rng(0)
        bits = rng.random((4, 96)) < 0.5
        words = pack_bits(bits)
        assert words.shape == (4, 3)
        np.testing.assert_array_equal(unpack_bits(words), bits)

    def test_pack_bits_requires_whole_words(self):
        with pytest.raises(ValueError):
            pack_bits(np.zeros(40, dtype=bool))

    def test_hamming_distances(self):
        rng = np.random.default_rng(1)
        bits = rng.random((6, 64)) < 0.5
        query = rng.random(64) < 0.5
        expected = (bits != query).sum(axis=1)
        np.testing.assert_array_equal(hamming_distances(pack_bits(bits), pack_bits(query)), expected)

    def test_splitmix64_reference_value(self):
        assert int(splitmix64(0)[0]) == 0xE220A8397B1DCDAF


class TestProjectionMatrix:

    def test_in_memory_and_on_demand_are_identical(self):
        dense = ProjectionMatrix(64, 30, seed=17)
        lazy = ProjectionMatrix(64, 30, seed=17, in_memory=False)
        assert dense.mode == "in_memory"
        assert lazy.mode == "on_demand"
        np.testing.assert_array_equal(dense.materialize(), lazy.materialize())
        assert dense.get(5, 7) == lazy.get(5, 7)

    @pytest.mark.parametrize("options", [
        {},
        {"in_memory": False},
        {"pool_size": 1000},
    ])
    def test_deterministic_and_consistent(self, options):
        a = ProjectionMatrix(32, 2500, seed=8, **options)
        b = ProjectionMatrix(32, 2500, seed=8, **options)
        full = a.materialize()
        assert full.shape == (32, 2500)
        np.testing.assert_array_equal(full, b.materialize())
        assert a.get(31, 2499) == full[31, 2499]
        np.testing.assert_array_equal(a.columns([3, 2000]), full[:, [3, 2000]])

        rng = np.random.default_rng(2)
        values = rng.standard_normal(2500)
        np.testing.assert_allclose(a.multiply(Vector(values)), full @ values, rtol=1e-9, atol=1e-9)

        sparse = SparseVector(2500, [1, 1500, 2400], [1.0, -2.0, 0.5])
        np.testing.assert_allclose(a.multiply(sparse), full @ sparse.to_numpy(), rtol=1e-9, atol=1e-9)

    def test_pool_mode_draws_from_pool(self):
        matrix = ProjectionMatrix(16, 16, seed=4, pool_size=10)
        assert matrix.mode == "pool"
        assert len(np.unique(matrix.materialize())) <= 10

    def test_get_out_of_range(self):
        with pytest.raises(IndexError):
            ProjectionMatrix(4, 4, seed=1).get(4, 0)


class _UnreadableVector(Vector):
    def to_numpy(self):
        raise RuntimeError("vector data unavailable")


class TestRebuild:

    def test_failed_projection_keeps_previous_state(self, normal_vecs):
        col = RandomProjectionLSH(seed=31)
        col.build(normal_vecs)
        matrix = col.projection_matrix
        before = col.search_knn(normal_vecs[2], 5)

        rng = np.random.default_rng(5)
        new_vectors = [Vector(rng.standard_normal(8)), _UnreadableVector(rng.standard_normal(8))]
        with pytest.raises(RuntimeError, match="vector data unavailable"):
            col.build(new_vectors)

        assert col.projection_matrix is matrix
        assert col.projection_matrix.cols == 20
        assert col.size() == 100
        assert col.search_knn(normal_vecs[2], 5) == before

    def test_rejected_metric_keeps_previous_collection(self, normal_vecs):
        col = RandomProjectionLSH(seed=31, metric=CosineDistanceNormalized())
        col.build(normal_vecs)
        with pytest.raises(ConfigurationError):
            col.build(unit_vectors(10, 8, seed=2), metric=EuclideanDistance())

        assert isinstance(col.distance_metric, CosineDistanceNormalized)
        assert col.size() == 100
        assert col.projection_matrix.cols == 20

    def test_rebuild_with_new_dimension_swaps_everything(self, normal_vecs):
        col = RandomProjectionLSH(seed=31)
        col.build(normal_vecs)
        smaller = unit_vectors(10, 8, seed=2)
        col.build(smaller, metric=CosineDistanceNormalized())

        assert isinstance(col.distance_metric, CosineDistanceNormalized)
        assert col.projection_matrix.cols == 8
        found = col.search_knn(smaller[4], 1)
        assert found[0].index == 4
