"""Unit tests for AnnData integration."""

import pytest
import numpy as np
import pandas as pd

from cellsig.core.scoring import ScoringConfig, score_signatures
from cellsig.core.smoothing import SmoothingConfig
from cellsig.errors import ConfigurationError, InputError
from cellsig.io import (
    RANK_CACHE_KEY,
    AnnDataSource,
    add_scores_to_adata,
    score_adata,
    smooth_adata,
)
from tests.fixtures import create_mock_signatures

SIGNATURES = create_mock_signatures(n_genes=30)


class TestAnnDataSource:
    """Tests for AnnDataSource."""

    def test_transposed_view(self, mock_adata):
        source = AnnDataSource(mock_adata)
        assert source.shape == (30, 60)
        block = source.column_slice(0, 4)
        np.testing.assert_array_equal(
            block.toarray(), mock_adata.X[:4].toarray().T
        )

    def test_missing_layer(self, mock_adata):
        with pytest.raises(ConfigurationError):
            AnnDataSource(mock_adata, layer="nope")

    def test_matches_array_scoring(self, dense_adata):
        """Scoring through AnnData equals scoring the transposed frame."""
        sigs = create_mock_signatures(n_genes=20)
        frame = pd.DataFrame(
            dense_adata.X.T, index=dense_adata.var_names, columns=dense_adata.obs_names
        )
        config = ScoringConfig(max_rank=10, chunk_size=7)
        direct = score_signatures(frame, sigs, config=config)
        via_adata = score_signatures(AnnDataSource(dense_adata), sigs, config=config)
        pd.testing.assert_frame_equal(via_adata.scores, direct.scores)


class TestScoreAdata:
    """Tests for score_adata."""

    def test_adds_obs_columns(self, mock_adata):
        result = score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        for column in result.scores.columns:
            assert column in mock_adata.obs.columns
        np.testing.assert_allclose(
            mock_adata.obs["Planted_UCell"].to_numpy(),
            result.scores["Planted_UCell"].to_numpy(),
        )
        assert mock_adata.uns["cellsig"]["score_columns"] == list(result.scores.columns)

    def test_layer(self, mock_adata):
        from_x = score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        from_layer = score_adata(
            mock_adata, SIGNATURES, ScoringConfig(max_rank=15), layer="counts",
            overwrite=True,
        )
        pd.testing.assert_frame_equal(from_layer.scores, from_x.scores)

    def test_column_collision(self, mock_adata):
        score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        with pytest.raises(ConfigurationError, match="already present"):
            score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15), overwrite=True)

    def test_rank_cache_stored_and_reused(self, mock_adata, caplog):
        config = ScoringConfig(max_rank=15, chunk_size=11, store_ranks=True)
        first = score_adata(mock_adata, SIGNATURES, config)

        stored = mock_adata.uns[RANK_CACHE_KEY]
        assert stored["ranks"].shape == (60, 30)
        assert stored["max_rank"] == 15

        # Change X; reused ranks keep the scores identical
        mock_adata.X = mock_adata.X * 0
        with caplog.at_level("INFO"):
            second = score_adata(mock_adata, SIGNATURES, config, overwrite=True)
        pd.testing.assert_frame_equal(second.scores, first.scores)
        assert "Reusing rank cache" in caplog.text

    def test_stale_rank_cache_ignored(self, mock_adata):
        score_adata(
            mock_adata, SIGNATURES, ScoringConfig(max_rank=15, store_ranks=True)
        )
        other = score_adata(
            mock_adata,
            SIGNATURES,
            ScoringConfig(max_rank=12, store_ranks=True),
            overwrite=True,
        )
        assert other.effective_max_rank == 12
        assert mock_adata.uns[RANK_CACHE_KEY]["max_rank"] == 12

    def test_h5ad_round_trip(self, mock_adata, tmp_path):
        import anndata as ad

        config = ScoringConfig(max_rank=15, store_ranks=True)
        first = score_adata(mock_adata, SIGNATURES, config)
        path = tmp_path / "scored.h5ad"
        mock_adata.write_h5ad(path)

        reloaded = ad.read_h5ad(path)
        reloaded.X = reloaded.X * 0
        second = score_adata(reloaded, SIGNATURES, config, overwrite=True)
        pd.testing.assert_frame_equal(second.scores, first.scores)


class TestAddScores:
    """Tests for add_scores_to_adata."""

    def test_aligns_by_name(self, dense_adata):
        names = dense_adata.obs_names.tolist()
        scores = pd.DataFrame({"x": np.arange(len(names), dtype=float)}, index=names)
        add_scores_to_adata(dense_adata, scores.iloc[::-1])
        np.testing.assert_array_equal(dense_adata.obs["x"].to_numpy(), scores["x"].to_numpy())

    def test_mismatched_observations(self, dense_adata):
        scores = pd.DataFrame({"x": [1.0]}, index=["someone_else"])
        with pytest.raises(InputError):
            add_scores_to_adata(dense_adata, scores)


class TestSmoothAdata:
    """Tests for smooth_adata."""

    def test_smooths_scored_columns(self, mock_adata):
        score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        smoothed = smooth_adata(mock_adata, SmoothingConfig(k=5))
        assert list(smoothed.columns) == [
            "Planted_UCell_kNN",
            "Mixed_UCell_kNN",
            "Background_UCell_kNN",
        ]
        assert "Planted_UCell_kNN" in mock_adata.obs.columns

    def test_missing_embedding(self, mock_adata):
        score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        with pytest.raises(InputError):
            smooth_adata(mock_adata, SmoothingConfig(embedding_key="X_umap"))

    def test_identity_with_k_zero(self, mock_adata):
        score_adata(mock_adata, SIGNATURES, ScoringConfig(max_rank=15))
        smoothed = smooth_adata(
            mock_adata, SmoothingConfig(k=0, columns=["Planted_UCell"])
        )
        np.testing.assert_array_equal(
            smoothed["Planted_UCell_kNN"].to_numpy(),
            mock_adata.obs["Planted_UCell"].to_numpy(),
        )
