"""kNN smoothing of per-observation score tables.

Example Usage
-------------
>>> from cellsig.core.smoothing import smooth_scores
>>> smoothed = smooth_scores(result.scores, adata.obsm["X_pca"], k=10)
"""

from .config import DEFAULT_SMOOTH_SUFFIX, WEIGHTING_SCHEMES, SmoothingConfig
from .knn import SmoothingGraph, build_knn_graph, smooth_scores, smooth_values

__all__ = [
    "SmoothingConfig",
    "WEIGHTING_SCHEMES",
    "DEFAULT_SMOOTH_SUFFIX",
    "SmoothingGraph",
    "build_knn_graph",
    "smooth_values",
    "smooth_scores",
]
