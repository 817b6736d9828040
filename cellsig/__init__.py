"""cellsig: rank-based gene signature scoring for single-cell data.

This package provides tools for:
- Scoring cells against gene signatures with a normalized Mann-Whitney U
  statistic computed from per-cell ranks
- Chunked, parallel scoring of large sparse matrices
- Reusable rank caches for repeated scoring
- kNN smoothing of scores over a cell embedding

Example usage:
    >>> from cellsig import ScoringConfig, score_signatures
    >>> result = score_signatures(matrix, {"Tcell": ["CD3E", "CD3D", "CD2"]})
    >>> result.scores.head()
    >>>
    >>> # AnnData in, AnnData out
    >>> from cellsig.io import score_adata, smooth_adata
    >>> score_adata(adata, signatures, ScoringConfig(n_workers=4))
    >>> smooth_adata(adata)
"""

__version__ = "0.1.0"

from .core.scoring import (
    ArrayFeatureMatrix,
    FeatureMatrix,
    RankCache,
    ScoringConfig,
    ScoringEngine,
    ScoringResult,
    Signature,
    parse_signatures,
    score_signatures,
)
from .core.smoothing import SmoothingConfig, smooth_scores
from .errors import (
    CellsigError,
    ConfigurationError,
    EmptySignatureWarning,
    InputError,
    ParallelWorkerError,
    ScoreRangeError,
    ScoringCancelled,
    SignatureError,
)

__all__ = [
    "__version__",
    "ScoringConfig",
    "ScoringEngine",
    "ScoringResult",
    "score_signatures",
    "FeatureMatrix",
    "ArrayFeatureMatrix",
    "Signature",
    "parse_signatures",
    "RankCache",
    "SmoothingConfig",
    "smooth_scores",
    "CellsigError",
    "ConfigurationError",
    "SignatureError",
    "InputError",
    "EmptySignatureWarning",
    "ParallelWorkerError",
    "ScoreRangeError",
    "ScoringCancelled",
]
