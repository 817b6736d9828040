"""Rank-based signature scoring (normalized Mann-Whitney U).

Per observation, features are ranked by value; each signature is scored by
how close its features sit to the top of that ranking.

Pipeline
--------
- ranking: per-chunk ranks under a bounded horizon (``max_rank``)
- ustat: ranks -> normalized U statistic per signature
- parallel: chunk plan, worker pool, ordered merge
- cache: reusable rank matrices
- engine: validation and orchestration

Example Usage
-------------
>>> from cellsig.core.scoring import ScoringConfig, score_signatures
>>> result = score_signatures(
...     matrix,
...     {"Tcell": ["CD3E", "CD3D", "CD2"], "NK": ["NKG7+", "KLRF1+", "CD3E-"]},
...     config=ScoringConfig(max_rank=1500, chunk_size=500, n_workers=4),
... )
>>> result.scores.head()
"""

from .cache import RankCache
from .config import DEFAULT_NAME_SUFFIX, TIES_METHODS, ScoringConfig
from .engine import ScoringEngine, ScoringResult, coerce_signatures, score_signatures
from .matrix import ArrayFeatureMatrix, FeatureMatrix, as_feature_matrix
from .parallel import ChunkPlan, ChunkResult, ChunkScheduler, ChunkWorkItem, process_chunk
from .ranking import RankMatrix, effective_max_rank, rank_chunk, rank_values
from .signatures import (
    Polarity,
    ResolvedSignature,
    Signature,
    parse_signature,
    parse_signatures,
    resolve_signatures,
    split_polarity,
    validate_signatures,
)
from .ustat import clip_unit, combine_scores, score_chunk, u_statistic

__all__ = [
    # Config
    "ScoringConfig",
    "TIES_METHODS",
    "DEFAULT_NAME_SUFFIX",
    # Matrix sources
    "FeatureMatrix",
    "ArrayFeatureMatrix",
    "as_feature_matrix",
    # Signatures
    "Polarity",
    "Signature",
    "ResolvedSignature",
    "split_polarity",
    "parse_signature",
    "parse_signatures",
    "validate_signatures",
    "resolve_signatures",
    # Ranking
    "RankMatrix",
    "effective_max_rank",
    "rank_values",
    "rank_chunk",
    # U statistic
    "u_statistic",
    "combine_scores",
    "clip_unit",
    "score_chunk",
    # Cache
    "RankCache",
    # Scheduling
    "ChunkPlan",
    "ChunkWorkItem",
    "ChunkResult",
    "ChunkScheduler",
    "process_chunk",
    # Engine
    "ScoringEngine",
    "ScoringResult",
    "coerce_signatures",
    "score_signatures",
]
