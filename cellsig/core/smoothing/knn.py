"""Nearest-neighbor smoothing of per-observation values.

Each observation's value is replaced by the weighted mean of its ``k``
nearest neighbors in an embedding (e.g. PCA coordinates). Sparse or noisy
per-cell scores become more robust while local structure is kept.

Neighbors are exact Euclidean neighbors; equal distances are ordered by
ascending observation index so results never depend on tree traversal
order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from ...errors import ConfigurationError, InputError
from .config import DEFAULT_SMOOTH_SUFFIX, WEIGHTING_SCHEMES

logger = logging.getLogger(__name__)


@dataclass
class SmoothingGraph:
    """kNN graph for one smoothing call.

    Attributes
    ----------
    indices : np.ndarray
        (n_obs, k) neighbor positions, nearest first.
    distances : np.ndarray
        (n_obs, k) Euclidean distances matching ``indices``.
    weights : np.ndarray
        (n_obs, k) neighbor weights; each row sums to 1.
    """

    indices: np.ndarray
    distances: np.ndarray
    weights: np.ndarray

    @property
    def n_obs(self) -> int:
        return self.indices.shape[0]

    @property
    def k(self) -> int:
        return self.indices.shape[1]


def _check_embedding(embedding: Optional[np.ndarray], n_obs: Optional[int] = None) -> np.ndarray:
    if embedding is None:
        raise InputError("An embedding is required for kNN smoothing")
    coords = np.asarray(embedding, dtype=np.float64)
    if coords.ndim == 1:
        coords = coords[:, None]
    if coords.ndim != 2:
        raise InputError(f"Embedding must be 2-D, got shape {coords.shape}")
    if n_obs is not None and coords.shape[0] != n_obs:
        raise InputError(
            f"Embedding has {coords.shape[0]} rows but the table has {n_obs} observations"
        )
    if not np.all(np.isfinite(coords)):
        raise InputError("Embedding contains non-finite coordinates")
    return coords


def _nearest_others(coords: np.ndarray, m: int):
    """Exact m nearest neighbors of every point, excluding the point itself.

    Ties are ordered by ascending index, including ties at the m-th
    position, which are resolved against every equidistant candidate.
    """
    n = coords.shape[0]
    tree = cKDTree(coords)
    q = min(n, m + 2)
    dist, idx = tree.query(coords, k=q)
    dist = np.asarray(dist, dtype=np.float64).reshape(n, q)
    idx = np.asarray(idx, dtype=np.intp).reshape(n, q)

    # Push self to the end of each row
    is_self = idx == np.arange(n)[:, None]
    dist = np.where(is_self, np.inf, dist)
    idx = np.where(is_self, n, idx)
    order = np.lexsort((idx, dist), axis=1)
    dist = np.take_along_axis(dist, order, axis=1)
    idx = np.take_along_axis(idx, order, axis=1)

    out_idx = idx[:, :m].copy()
    out_dist = dist[:, :m].copy()
    if q == n:
        return out_idx, out_dist

    # Rows where the tie at the m-th distance may continue past the query
    boundary = dist[:, m - 1]
    open_rows = np.flatnonzero(dist[:, m] <= boundary)
    for i in open_rows:
        cand = np.asarray(
            tree.query_ball_point(coords[i], r=boundary[i] * (1 + 1e-9) + 1e-12), dtype=np.intp
        )
        cand = cand[cand != i]
        cand_dist = np.linalg.norm(coords[cand] - coords[i], axis=1)
        sel = np.lexsort((cand, cand_dist))[:m]
        out_idx[i] = cand[sel]
        out_dist[i] = cand_dist[sel]

    if open_rows.size:
        logger.debug("Resolved distance ties at the k-th neighbor for %d observations", open_rows.size)
    return out_idx, out_dist


def build_knn_graph(
    embedding: np.ndarray,
    k: int,
    weighting: str = "uniform",
    include_self: bool = False,
) -> SmoothingGraph:
    """Build the kNN smoothing graph for an embedding.

    Parameters
    ----------
    embedding : np.ndarray
        (n_obs, n_dims) coordinates.
    k : int
        Neighbors per observation (including self when ``include_self``).
    weighting : str
        "uniform" or "distance".
    include_self : bool
        Make each observation its own first neighbor.

    Returns
    -------
    SmoothingGraph
        Neighbor indices, distances and normalized weights.
    """
    if weighting not in WEIGHTING_SCHEMES:
        raise ConfigurationError(
            f"Unknown weighting '{weighting}'. Choose from: {', '.join(WEIGHTING_SCHEMES)}"
        )
    if k < 0:
        raise ConfigurationError(f"k must be non-negative, got {k}")

    coords = _check_embedding(embedding)
    n = coords.shape[0]
    available = n if include_self else n - 1
    if k > available:
        raise InputError(
            f"k={k} exceeds the {available} neighbors available for {n} observations"
        )

    m = k - 1 if include_self else k
    if m > 0:
        indices, distances = _nearest_others(coords, m)
    else:
        indices = np.empty((n, 0), dtype=np.intp)
        distances = np.empty((n, 0), dtype=np.float64)

    if include_self and k > 0:
        indices = np.hstack([np.arange(n, dtype=np.intp)[:, None], indices])
        distances = np.hstack([np.zeros((n, 1)), distances])

    if k == 0:
        weights = np.empty((n, 0), dtype=np.float64)
    elif weighting == "uniform":
        weights = np.full((n, k), 1.0 / k)
    else:
        raw = 1.0 / (1.0 + distances)
        weights = raw / raw.sum(axis=1, keepdims=True)

    return SmoothingGraph(indices=indices, distances=distances, weights=weights)


def smooth_values(values: np.ndarray, graph: SmoothingGraph) -> np.ndarray:
    """Weighted neighbor average of each column of ``values``."""
    values = np.asarray(values, dtype=np.float64)
    if values.shape[0] != graph.n_obs:
        raise InputError(
            f"Values have {values.shape[0]} rows but the graph has {graph.n_obs} observations"
        )
    if graph.k == 0:
        return values.copy()
    out = np.empty_like(values)
    for j in range(values.shape[1]):
        out[:, j] = np.sum(graph.weights * values[graph.indices, j], axis=1)
    return out


def smooth_scores(
    table: pd.DataFrame,
    embedding: np.ndarray,
    k: int = 10,
    weighting: str = "uniform",
    include_self: bool = False,
    suffix: str = DEFAULT_SMOOTH_SUFFIX,
    columns: Optional[Sequence[str]] = None,
    graph: Optional[SmoothingGraph] = None,
) -> pd.DataFrame:
    """Smooth per-observation columns over a kNN graph.

    Parameters
    ----------
    table : pd.DataFrame
        Observations x columns; not modified.
    embedding : np.ndarray
        (n_obs, n_dims) coordinates, rows aligned with ``table``.
    k : int
        Neighbors per observation; 0 returns the values unchanged.
    weighting : str
        "uniform" or "distance".
    include_self : bool
        Count each observation among its own neighbors.
    suffix : str
        Appended to each output column name.
    columns : Sequence[str], optional
        Columns to smooth; defaults to every numeric column.
    graph : SmoothingGraph, optional
        Prebuilt graph; when given, ``embedding``, ``k``, ``weighting``
        and ``include_self`` are not used to build one.

    Returns
    -------
    pd.DataFrame
        Smoothed columns named ``<column><suffix>``, same index as ``table``.
    """
    if columns is None:
        columns = table.select_dtypes(include=[np.number]).columns.tolist()
    else:
        columns = list(columns)
        missing = [c for c in columns if c not in table.columns]
        if missing:
            raise InputError(f"Columns not found in table: {missing}")
        non_numeric = [c for c in columns if not pd.api.types.is_numeric_dtype(table[c])]
        if non_numeric:
            raise InputError(f"Columns are not numeric: {non_numeric}")
    if not columns:
        raise InputError("No numeric columns to smooth")

    if graph is None:
        _check_embedding(embedding, n_obs=len(table))
        graph = build_knn_graph(
            embedding, k=k, weighting=weighting, include_self=include_self
        )
    elif graph.n_obs != len(table):
        raise InputError(
            f"Graph has {graph.n_obs} observations but the table has {len(table)}"
        )

    logger.info(
        "Smoothing %d column(s) over %d observations (k=%d, weighting=%s)",
        len(columns),
        graph.n_obs,
        graph.k,
        weighting,
    )
    smoothed = smooth_values(table[columns].to_numpy(dtype=np.float64), graph)
    return pd.DataFrame(
        smoothed,
        index=table.index.copy(),
        columns=[f"{c}{suffix}" for c in columns],
    )
