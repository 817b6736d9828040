"""Normalized Mann-Whitney U scores from per-observation ranks.

For a feature group of size ``n`` with ranks ``r_1..r_n`` under horizon
``max_rank``::

    U = 1 - (sum(r) - n(n+1)/2) / (n * max_rank)

U = 1 when the group holds the top ``n`` ranks. An observation where every
feature of the group sits at the sentinel ``max_rank + 1`` scores 0.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from ...errors import ScoreRangeError
from .ranking import RankMatrix
from .signatures import ResolvedSignature

# Largest tolerated overshoot of the unit interval before clipping
CLIP_TOLERANCE = 1e-9


def u_statistic(ranks: np.ndarray, max_rank: int) -> np.ndarray:
    """Normalized U statistic per observation.

    Parameters
    ----------
    ranks : np.ndarray
        (n_group, n_obs) ranks of one feature group, sentinel included.
    max_rank : int
        Ranking horizon.

    Returns
    -------
    np.ndarray
        (n_obs,) values in [0, 1].
    """
    n = ranks.shape[0]
    if n == 0:
        return np.zeros(ranks.shape[1], dtype=np.float64)
    min_sum = n * (n + 1) / 2.0
    excess = ranks.sum(axis=0, dtype=np.float64) - min_sum
    u = 1.0 - excess / (n * float(max_rank))
    # Nothing of the group within the horizon
    u[np.all(ranks > max_rank, axis=0)] = 0.0
    return u


def combine_scores(
    u_pos: np.ndarray | None,
    u_neg: np.ndarray | None,
    w_neg: float,
) -> np.ndarray:
    """Combine positive and negative group statistics into one score.

    - positive only: ``U_P``
    - both: ``(U_P - w_neg * U_N) / (1 + w_neg)``, floored at 0
    - negative only: ``(1 - w_neg * U_N) / (1 + w_neg)``

    ``w_neg = 0`` ignores negative features entirely, so a signature with
    only negative features then scores 1.0 for every observation.
    """
    if u_pos is None and u_neg is None:
        raise ValueError("At least one feature group is required")
    if u_neg is None:
        score = np.asarray(u_pos, dtype=np.float64).copy()
    elif u_pos is None:
        score = (1.0 - w_neg * u_neg) / (1.0 + w_neg)
    else:
        score = np.maximum((u_pos - w_neg * u_neg) / (1.0 + w_neg), 0.0)
    return clip_unit(score)


def clip_unit(score: np.ndarray) -> np.ndarray:
    """Clip floating-point drift into [0, 1].

    Raises ScoreRangeError when a value lies outside the interval by more
    than CLIP_TOLERANCE.
    """
    if score.size:
        low, high = float(np.min(score)), float(np.max(score))
        if low < -CLIP_TOLERANCE or high > 1.0 + CLIP_TOLERANCE:
            raise ScoreRangeError(
                f"Score outside [0, 1] beyond tolerance: min={low!r}, max={high!r}"
            )
    return np.clip(score, 0.0, 1.0)


def score_chunk(
    rank_matrix: RankMatrix,
    signatures: Sequence[ResolvedSignature],
    w_neg: float = 1.0,
    index: Sequence[str] | None = None,
) -> pd.DataFrame:
    """Score one chunk of observations against resolved signatures.

    Parameters
    ----------
    rank_matrix : RankMatrix
        Ranks for the chunk.
    signatures : Sequence[ResolvedSignature]
        Signatures resolved against the source matrix rows.
    w_neg : float
        Weight of negative features.
    index : Sequence[str], optional
        Observation names for the chunk rows.

    Returns
    -------
    pd.DataFrame
        (chunk observations, signatures) table; empty signatures score 0.
    """
    n_obs = rank_matrix.shape[1]
    max_rank = rank_matrix.max_rank
    columns = {}
    for sig in signatures:
        if sig.is_empty:
            columns[sig.column] = np.zeros(n_obs, dtype=np.float64)
            continue
        u_pos = (
            u_statistic(rank_matrix.rows(sig.positive_idx), max_rank)
            if sig.positive_idx.size
            else None
        )
        u_neg = (
            u_statistic(rank_matrix.rows(sig.negative_idx), max_rank)
            if sig.negative_idx.size
            else None
        )
        columns[sig.column] = combine_scores(u_pos, u_neg, w_neg)

    return pd.DataFrame(
        columns,
        index=pd.Index(index) if index is not None else None,
        columns=[sig.column for sig in signatures],
    )
