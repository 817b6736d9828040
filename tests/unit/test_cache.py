"""Unit tests for RankCache storage, reuse and persistence."""

import pytest
import numpy as np
import pandas as pd
from scipy import sparse

from cellsig.core.scoring import (
    ArrayFeatureMatrix,
    RankCache,
    ScoringConfig,
    ScoringEngine,
    rank_chunk,
)
from cellsig.errors import ConfigurationError


def _block(values, max_rank=2):
    return rank_chunk(np.asarray(values, dtype=float), max_rank=max_rank)


class TestRankCacheBlocks:
    """Tests for put/get over observation ranges."""

    @pytest.fixture
    def cache(self):
        cache = RankCache(2, "average", ["g1", "g2", "g3"])
        cache.put(0, 2, _block([[3, 1], [2, 2], [1, 3]]))
        cache.put(2, 3, _block([[5], [9], [1]]))
        return cache

    def test_exact_hit(self, cache):
        assert cache.get(0, 2) is not None
        assert (0, 2) in cache

    def test_assembled_from_pieces(self, cache):
        """A range spanning two blocks is stitched together."""
        merged = cache.get(1, 3)
        assert merged.shape == (3, 2)
        np.testing.assert_array_equal(merged.to_dense()[:, 0], [3.0, 2.0, 1.0])
        np.testing.assert_array_equal(merged.to_dense()[:, 1], [2.0, 1.0, 3.0])

    def test_gap_is_miss(self, cache):
        assert cache.get(0, 4) is None
        assert (2, 5) not in cache

    def test_shape_checked(self, cache):
        with pytest.raises(ConfigurationError):
            cache.put(3, 5, _block([[1], [2], [3]]))

    def test_max_rank_checked(self, cache):
        with pytest.raises(ConfigurationError):
            cache.put(3, 4, _block([[1], [2], [3]], max_rank=3))

    def test_to_sparse_full(self, cache):
        full = cache.to_sparse()
        assert full.shape == (3, 3)

    def test_compatible_with(self, cache):
        assert cache.compatible_with(2, "average", ["g1", "g2", "g3"])
        assert not cache.compatible_with(2, "min", ["g1", "g2", "g3"])
        assert not cache.compatible_with(3, "average", ["g1", "g2", "g3"])


class TestRankReuse:
    """Scoring from stored ranks equals scoring from the source."""

    def test_round_trip_reuse(self, mock_frame, mock_signatures):
        config = ScoringConfig(max_rank=20, chunk_size=8, store_ranks=True)
        first = ScoringEngine(config).score(mock_frame, mock_signatures)
        assert first.rank_cache is not None
        assert len(first.rank_cache) == 5

        # Different chunking still reuses the stored blocks
        replay_config = ScoringConfig(max_rank=20, chunk_size=13)
        replay = ScoringEngine(replay_config).score(
            mock_frame, mock_signatures, rank_cache=first.rank_cache
        )
        pd.testing.assert_frame_equal(replay.scores, first.scores)

    def test_cached_ranks_are_used(self, mock_frame, mock_signatures):
        """A cache for a different matrix of the same shape drives the scores."""
        config = ScoringConfig(max_rank=20, chunk_size=40, store_ranks=True)
        first = ScoringEngine(config).score(mock_frame, mock_signatures)

        shuffled = mock_frame.copy()
        shuffled.iloc[:, :] = mock_frame.to_numpy()[:, ::-1]
        replay = ScoringEngine(ScoringConfig(max_rank=20, chunk_size=40)).score(
            shuffled, mock_signatures, rank_cache=first.rank_cache
        )
        pd.testing.assert_frame_equal(replay.scores, first.scores)

    def test_incompatible_cache_rejected(self, mock_frame, mock_signatures):
        config = ScoringConfig(max_rank=20, store_ranks=True)
        first = ScoringEngine(config).score(mock_frame, mock_signatures)

        with pytest.raises(ConfigurationError):
            ScoringEngine(ScoringConfig(max_rank=15)).score(
                mock_frame, mock_signatures, rank_cache=first.rank_cache
            )
        with pytest.raises(ConfigurationError):
            ScoringEngine(ScoringConfig(max_rank=20, ties_method="min")).score(
                mock_frame, mock_signatures, rank_cache=first.rank_cache
            )


class TestRankCachePersistence:
    """Tests for .h5ad save/load."""

    def test_save_load_round_trip(self, tmp_path, mock_frame, mock_signatures):
        config = ScoringConfig(max_rank=20, chunk_size=16, store_ranks=True)
        first = ScoringEngine(config).score(mock_frame, mock_signatures)

        path = first.rank_cache.save(tmp_path / "ranks.h5ad")
        loaded = RankCache.load(path)

        assert loaded.max_rank == 20
        assert loaded.ties_method == "average"
        assert loaded.feature_names == list(mock_frame.index)
        assert loaded.observation_names == list(mock_frame.columns)
        assert (loaded.to_sparse() != first.rank_cache.to_sparse()).nnz == 0

        replay = ScoringEngine(ScoringConfig(max_rank=20, chunk_size=16)).score(
            mock_frame, mock_signatures, rank_cache=loaded
        )
        pd.testing.assert_frame_equal(replay.scores, first.scores)

    def test_load_rejects_plain_h5ad(self, tmp_path):
        import anndata as ad

        path = tmp_path / "plain.h5ad"
        ad.AnnData(X=sparse.csr_matrix(np.ones((2, 2), dtype=np.float32))).write_h5ad(path)
        with pytest.raises(ConfigurationError):
            RankCache.load(path)

    def test_from_sparse(self):
        source = ArrayFeatureMatrix(np.eye(3), ["a", "b", "c"], ["x", "y", "z"])
        ranks = rank_chunk(source.column_slice(0, 3), max_rank=1).ranks
        cache = RankCache.from_sparse(ranks, 1, "average", source.feature_names)
        assert cache.covers(0, 3)
        assert cache.metadata()["n_blocks"] == 1
