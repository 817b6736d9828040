"""Unit tests for per-observation ranking."""

import pytest
import numpy as np
from scipy import sparse

from cellsig.core.scoring import RankMatrix, effective_max_rank, rank_chunk, rank_values
from cellsig.errors import ConfigurationError, InputError


class TestRankValues:
    """Tests for rank_values tie handling."""

    def test_descending_distinct(self):
        """Highest value gets rank 1."""
        ranks = rank_values(np.array([3.0, 10.0, 1.0, 7.0]))
        np.testing.assert_array_equal(ranks, [3.0, 1.0, 4.0, 2.0])

    @pytest.mark.parametrize(
        "method,expected",
        [
            ("average", [1.0, 2.5, 2.5, 4.0]),
            ("min", [1.0, 2.0, 2.0, 4.0]),
            ("max", [1.0, 3.0, 3.0, 4.0]),
            ("first", [1.0, 2.0, 3.0, 4.0]),
            ("last", [1.0, 3.0, 2.0, 4.0]),
            ("dense", [1.0, 2.0, 2.0, 3.0]),
        ],
    )
    def test_tie_methods(self, method, expected):
        """Each tie method resolves the tied pair as documented."""
        ranks = rank_values(np.array([9.0, 5.0, 5.0, 1.0]), ties_method=method)
        np.testing.assert_array_equal(ranks, expected)

    def test_columns_ranked_independently(self):
        """A 2-D input ranks each column on its own."""
        values = np.array([[1.0, 3.0], [2.0, 2.0], [3.0, 1.0]])
        ranks = rank_values(values)
        np.testing.assert_array_equal(ranks[:, 0], [3.0, 2.0, 1.0])
        np.testing.assert_array_equal(ranks[:, 1], [1.0, 2.0, 3.0])

    def test_all_equal_average(self):
        """All-tied column gets the mean rank everywhere."""
        ranks = rank_values(np.zeros(4))
        np.testing.assert_array_equal(ranks, [2.5, 2.5, 2.5, 2.5])

    def test_nan_rejected(self):
        with pytest.raises(InputError):
            rank_values(np.array([1.0, np.nan]))

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            rank_values(np.array([1.0, 2.0]), ties_method="random")


class TestEffectiveMaxRank:
    """Tests for horizon clamping."""

    def test_clamped_to_features(self):
        assert effective_max_rank(1500, 200) == 200

    def test_kept_when_smaller(self):
        assert effective_max_rank(10, 200) == 10

    def test_non_positive_rejected(self):
        with pytest.raises(ConfigurationError):
            effective_max_rank(0, 10)


class TestRankChunk:
    """Tests for chunk ranking with the sentinel."""

    def test_out_of_horizon_becomes_sentinel(self):
        """Ranks above max_rank are stored implicitly and read as max_rank + 1."""
        block = np.array([[5.0], [4.0], [3.0], [2.0], [1.0]])
        result = rank_chunk(block, max_rank=2)

        assert isinstance(result, RankMatrix)
        assert result.ranks.nnz == 2
        np.testing.assert_array_equal(result.to_dense()[:, 0], [1.0, 2.0, 3.0, 3.0, 3.0])

    def test_sparse_and_dense_agree(self):
        """Sparse input gives the same ranks as its dense form."""
        rng = np.random.default_rng(0)
        dense = rng.poisson(2.0, size=(20, 6)).astype(float)
        a = rank_chunk(dense, max_rank=8).to_dense()
        b = rank_chunk(sparse.csc_matrix(dense), max_rank=8).to_dense()
        np.testing.assert_array_equal(a, b)

    def test_rows_fill_sentinel(self):
        block = np.array([[3.0, 1.0], [2.0, 2.0], [1.0, 3.0]])
        result = rank_chunk(block, max_rank=1)
        np.testing.assert_array_equal(result.rows([0]), [[1.0, 2.0]])

    def test_feature_count_checked(self):
        with pytest.raises(InputError):
            rank_chunk(np.ones((3, 2)), max_rank=2, n_features=4)
