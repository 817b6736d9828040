"""Per-observation feature ranking under a bounded ranking horizon.

Each observation (column) is ranked independently: the highest value gets
rank 1. Ranks beyond ``max_rank`` collapse to the sentinel ``max_rank + 1``.
Only in-horizon ranks are stored, in a sparse matrix whose implicit zeros
stand for the sentinel, so a rank block is usually far smaller than the
dense chunk it was computed from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy import sparse

from ...errors import ConfigurationError, InputError
from .config import TIES_METHODS
from .matrix import MatrixLike

RANK_DTYPE = np.float32


@dataclass
class RankMatrix:
    """Ranks for one block of observations.

    Attributes
    ----------
    ranks : sparse.csc_matrix
        (n_features, n_obs) in-horizon ranks; implicit zero = sentinel.
    max_rank : int
        Ranking horizon the block was computed with.
    """

    ranks: sparse.csc_matrix
    max_rank: int

    @property
    def shape(self):
        return self.ranks.shape

    @property
    def sentinel(self) -> int:
        return self.max_rank + 1

    def rows(self, idx: Sequence[int]) -> np.ndarray:
        """Dense float64 ranks for the given feature rows, sentinel filled."""
        block = self.ranks[np.asarray(idx, dtype=np.intp), :].toarray().astype(np.float64)
        block[block == 0] = self.sentinel
        return block

    def to_dense(self) -> np.ndarray:
        """Full dense rank matrix with values in ``[1, max_rank + 1]``."""
        dense = self.ranks.toarray().astype(np.float64)
        dense[dense == 0] = self.sentinel
        return dense


def effective_max_rank(max_rank: int, n_features: int) -> int:
    """Clamp the configured horizon to the number of available features."""
    if max_rank < 1:
        raise ConfigurationError(f"max_rank must be a positive integer, got {max_rank}")
    return min(int(max_rank), int(n_features))


def rank_values(values: np.ndarray, ties_method: str = "average") -> np.ndarray:
    """Rank each column of ``values`` in descending order.

    Ties are resolved by a stable sort followed by explicit tie-group
    handling, so ``first`` and ``last`` follow original row order.

    Parameters
    ----------
    values : np.ndarray
        1-D vector or 2-D (n_features, n_obs) array.
    ties_method : str
        average, min, max, first, last or dense.

    Returns
    -------
    np.ndarray
        float64 ranks with the same shape as ``values``.
    """
    if ties_method not in TIES_METHODS:
        raise ConfigurationError(f"Unknown ties_method '{ties_method}'")

    arr = np.asarray(values, dtype=np.float64)
    squeeze = arr.ndim == 1
    if squeeze:
        arr = arr[:, None]
    n = arr.shape[0]
    if n == 0:
        return np.empty(arr.shape[:1] if squeeze else arr.shape, dtype=np.float64)
    if np.isnan(arr).any():
        raise InputError("Cannot rank NaN values")

    order = np.argsort(-arr, axis=0, kind="stable")
    sorted_vals = np.take_along_axis(arr, order, axis=0)

    # Tie-group boundaries along each sorted column
    group_start = np.ones(sorted_vals.shape, dtype=bool)
    group_start[1:] = sorted_vals[1:] != sorted_vals[:-1]
    group_end = np.ones(sorted_vals.shape, dtype=bool)
    group_end[:-1] = group_start[1:]

    pos = np.broadcast_to(
        np.arange(1, n + 1, dtype=np.float64)[:, None], sorted_vals.shape
    )

    if ties_method == "first":
        sorted_ranks = pos
    elif ties_method == "dense":
        sorted_ranks = np.cumsum(group_start, axis=0).astype(np.float64)
    else:
        start = np.maximum.accumulate(np.where(group_start, pos, 0.0), axis=0)
        end = np.minimum.accumulate(
            np.where(group_end, pos, n + 1.0)[::-1], axis=0
        )[::-1]
        if ties_method == "average":
            sorted_ranks = (start + end) / 2.0
        elif ties_method == "min":
            sorted_ranks = start
        elif ties_method == "max":
            sorted_ranks = end
        else:  # last
            sorted_ranks = start + end - pos

    ranks = np.empty(arr.shape, dtype=np.float64)
    np.put_along_axis(ranks, order, sorted_ranks, axis=0)
    return ranks[:, 0] if squeeze else ranks


def rank_chunk(
    block: MatrixLike,
    max_rank: int,
    ties_method: str = "average",
    n_features: Optional[int] = None,
) -> RankMatrix:
    """Rank one chunk of observations.

    Parameters
    ----------
    block : np.ndarray or sparse matrix
        (n_features, n_obs) slice of the source matrix. Densified here;
        nothing larger than this block is ever materialized.
    max_rank : int
        Effective ranking horizon (already clamped to the feature count).
    ties_method : str
        Tie resolution method.
    n_features : int, optional
        Expected row count; a mismatch raises InputError.

    Returns
    -------
    RankMatrix
        Sparse in-horizon ranks for the chunk.
    """
    dense = block.toarray() if sparse.issparse(block) else np.asarray(block)
    if dense.ndim != 2:
        raise InputError(f"Expected a 2-D chunk, got shape {dense.shape}")
    if n_features is not None and dense.shape[0] != n_features:
        raise InputError(
            f"Chunk has {dense.shape[0]} feature rows, expected {n_features}"
        )

    ranks = rank_values(dense, ties_method=ties_method)
    del dense
    ranks[ranks > max_rank] = 0.0
    return RankMatrix(
        ranks=sparse.csc_matrix(ranks.astype(RANK_DTYPE)),
        max_rank=int(max_rank),
    )
