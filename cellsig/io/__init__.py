"""I/O utilities for cellsig.

Provides run logging, signature file loading and AnnData integration.
"""

from .anndata import (
    RANK_CACHE_KEY,
    AnnDataSource,
    add_scores_to_adata,
    score_adata,
    smooth_adata,
)
from .logging import get_logger, log_json, log_yaml, timestamped_path
from .signatures import load_signatures

__all__ = [
    # Logging
    "get_logger",
    "timestamped_path",
    "log_json",
    "log_yaml",
    # Signatures
    "load_signatures",
    # AnnData
    "AnnDataSource",
    "RANK_CACHE_KEY",
    "add_scores_to_adata",
    "score_adata",
    "smooth_adata",
]
