"""AnnData integration: score ``adata.X`` (or a layer) and write to ``obs``.

AnnData stores observations as rows; the scoring engine ranks features per
observation column, so the source below exposes the transposed view one
chunk at a time without copying the full matrix.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from ..core.scoring.cache import RankCache
from ..core.scoring.config import ScoringConfig
from ..core.scoring.engine import (
    ScoringEngine,
    ScoringResult,
    SignatureInput,
    coerce_signatures,
)
from ..core.scoring.matrix import FeatureMatrix, MatrixLike, _check_unique
from ..core.scoring.ranking import effective_max_rank
from ..core.smoothing.config import SmoothingConfig
from ..core.smoothing.knn import smooth_scores
from ..errors import ConfigurationError, InputError

if TYPE_CHECKING:
    from anndata import AnnData

RANK_CACHE_KEY = "cellsig_rank_cache"
RUN_KEY = "cellsig"


class AnnDataSource(FeatureMatrix):
    """FeatureMatrix view of an AnnData object.

    Parameters
    ----------
    adata : AnnData
        Observations x features container.
    layer : str, optional
        Layer to score instead of ``adata.X``.
    """

    def __init__(self, adata: "AnnData", layer: Optional[str] = None):
        if layer is not None:
            if layer not in adata.layers:
                raise ConfigurationError(
                    f"Layer '{layer}' not found. Available: {list(adata.layers.keys())}"
                )
            matrix = adata.layers[layer]
        else:
            matrix = adata.X
        if matrix is None:
            raise ConfigurationError("AnnData object has no expression matrix (X is None)")

        if sparse.issparse(matrix):
            # Row slices of CSR transpose to CSC chunks
            matrix = sparse.csr_matrix(matrix)
        self._matrix = matrix
        self._features = adata.var_names.astype(str).tolist()
        self._observations = adata.obs_names.astype(str).tolist()
        _check_unique(self._features, "Feature")
        _check_unique(self._observations, "Observation")
        self.layer = layer

    @property
    def feature_names(self) -> List[str]:
        return self._features

    @property
    def observation_names(self) -> List[str]:
        return self._observations

    def column_slice(self, start: int, stop: int) -> MatrixLike:
        block = self._matrix[start:stop]
        if sparse.issparse(block):
            return block.T.tocsc()
        return np.asarray(block).T


def _check_collisions(adata: "AnnData", columns: Sequence[str], overwrite: bool) -> None:
    clashes = [c for c in columns if c in adata.obs.columns]
    if clashes and not overwrite:
        raise ConfigurationError(
            f"Columns already present in adata.obs: {clashes}. "
            "Pass overwrite=True or choose a different suffix."
        )


def add_scores_to_adata(
    adata: "AnnData",
    scores: pd.DataFrame,
    overwrite: bool = False,
) -> List[str]:
    """Write score columns into ``adata.obs``.

    Parameters
    ----------
    adata : AnnData
        Target object; modified in place.
    scores : pd.DataFrame
        Observations x columns, indexed by observation name.
    overwrite : bool
        Replace existing columns of the same name.

    Returns
    -------
    List[str]
        Names of the columns written.
    """
    obs_names = adata.obs_names.astype(str)
    index = scores.index.astype(str)
    if len(index) != len(obs_names) or set(index) != set(obs_names):
        raise InputError(
            f"Score table has {len(index)} observations that do not match the "
            f"{len(obs_names)} observations of adata"
        )
    columns = [str(c) for c in scores.columns]
    _check_collisions(adata, columns, overwrite)

    aligned = scores.copy()
    aligned.index = index
    aligned = aligned.reindex(obs_names)
    for column in columns:
        adata.obs[column] = aligned[column].to_numpy()
    return columns


def _load_rank_cache(
    adata: "AnnData",
    source: AnnDataSource,
    max_rank: int,
    ties_method: str,
    logger: logging.Logger,
) -> Optional[RankCache]:
    stored = adata.uns.get(RANK_CACHE_KEY)
    if stored is None:
        return None

    ranks = stored.get("ranks")
    expected = (source.n_observations, source.n_features)
    if (
        ranks is None
        or tuple(ranks.shape) != expected
        or int(stored.get("max_rank", -1)) != max_rank
        or str(stored.get("ties_method")) != ties_method
        or str(stored.get("layer") or "") != str(source.layer or "")
    ):
        logger.info("Stored rank cache does not match the current settings; re-ranking")
        return None

    logger.info("Reusing rank cache from adata.uns['%s']", RANK_CACHE_KEY)
    return RankCache.from_sparse(
        sparse.csr_matrix(ranks).T,
        max_rank=max_rank,
        ties_method=ties_method,
        feature_names=source.feature_names,
        observation_names=source.observation_names,
    )


def _store_rank_cache(
    adata: "AnnData",
    cache: RankCache,
    layer: Optional[str],
) -> None:
    adata.uns[RANK_CACHE_KEY] = {
        "ranks": sparse.csr_matrix(cache.to_sparse().T),
        "max_rank": cache.max_rank,
        "ties_method": cache.ties_method,
        "layer": layer or "",
    }


def score_adata(
    adata: "AnnData",
    signatures: SignatureInput,
    config: Optional[ScoringConfig] = None,
    layer: Optional[str] = None,
    overwrite: bool = False,
    cancel_event: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> ScoringResult:
    """Score an AnnData object and add one ``obs`` column per signature.

    With ``config.store_ranks`` the ranks are kept in
    ``adata.uns["cellsig_rank_cache"]`` and reused by later calls with the
    same max_rank, ties_method and layer.

    Parameters
    ----------
    adata : AnnData
        Observations x features; ``obs`` and ``uns`` are modified in place.
    signatures : Sequence[Signature] or Mapping
        Signatures to score.
    config : ScoringConfig, optional
        Scoring configuration. If None, uses defaults.
    layer : str, optional
        Layer to score instead of ``X``.
    overwrite : bool
        Replace existing ``obs`` columns with the same names.
    cancel_event : threading.Event, optional
        Cooperative cancellation between chunks.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    ScoringResult
        The score table and run metadata.
    """
    logger = logger or logging.getLogger(__name__)
    config = config or ScoringConfig()
    engine = ScoringEngine(config, logger=logger)

    signatures = coerce_signatures(signatures)
    _check_collisions(
        adata, [config.column_name(s.name) for s in signatures], overwrite
    )

    source = AnnDataSource(adata, layer=layer)
    rank_cache = None
    if config.store_ranks:
        max_rank = effective_max_rank(config.max_rank, source.n_features)
        rank_cache = _load_rank_cache(
            adata, source, max_rank, config.ties_method, logger
        )

    result = engine.score(
        source, signatures, rank_cache=rank_cache, cancel_event=cancel_event
    )
    columns = add_scores_to_adata(adata, result.scores, overwrite=overwrite)

    if config.store_ranks and result.rank_cache is not None:
        _store_rank_cache(adata, result.rank_cache, layer)

    run: Dict[str, Any] = dict(adata.uns.get(RUN_KEY, {}))
    run["score_columns"] = columns
    run["scoring"] = {k: v for k, v in config.to_dict().items() if v is not None}
    run["effective_max_rank"] = result.effective_max_rank
    adata.uns[RUN_KEY] = run
    return result


def smooth_adata(
    adata: "AnnData",
    config: Optional[SmoothingConfig] = None,
    overwrite: bool = False,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """Smooth ``obs`` score columns over the kNN graph of an embedding.

    Columns default to those written by the last :func:`score_adata` call,
    or to every numeric ``obs`` column when there was none.

    Returns
    -------
    pd.DataFrame
        The smoothed columns, also written into ``adata.obs``.
    """
    logger = logger or logging.getLogger(__name__)
    config = config or SmoothingConfig()
    config.validate()

    if config.embedding_key not in adata.obsm:
        raise InputError(
            f"Embedding '{config.embedding_key}' not found in adata.obsm. "
            f"Available: {list(adata.obsm.keys())}"
        )
    embedding = np.asarray(adata.obsm[config.embedding_key])

    columns = config.columns
    if columns is None:
        columns = list(adata.uns.get(RUN_KEY, {}).get("score_columns", [])) or None

    smoothed = smooth_scores(
        adata.obs,
        embedding,
        k=config.k,
        weighting=config.weighting,
        include_self=config.include_self,
        suffix=config.suffix,
        columns=columns,
    )
    add_scores_to_adata(adata, smoothed, overwrite=overwrite)
    logger.info(
        "Added %d smoothed columns using obsm['%s']",
        smoothed.shape[1],
        config.embedding_key,
    )
    return smoothed
