"""Scoring engine: validation, signature resolution and chunked execution.

Everything that can invalidate a run (options, signature lengths, cache
compatibility) is checked before the first chunk is dispatched.
"""

from __future__ import annotations

import gc
import logging
import threading
import time
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from ...errors import ConfigurationError, EmptySignatureWarning, SignatureError
from .cache import RankCache
from .config import ScoringConfig
from .matrix import FeatureMatrix, as_feature_matrix
from .parallel import ChunkScheduler
from .ranking import effective_max_rank
from .signatures import (
    ResolvedSignature,
    Signature,
    parse_signatures,
    resolve_signatures,
    validate_signatures,
)

SignatureInput = Union[Sequence[Signature], Mapping[str, Sequence[str]]]


@dataclass
class ScoringResult:
    """Result from a scoring run.

    Attributes
    ----------
    scores : pd.DataFrame
        Observations x score columns, in source column order.
    effective_max_rank : int
        Ranking horizon after clamping to the feature count.
    empty_signatures : List[str]
        Signatures with no feature present in the matrix (scored 0).
    missing_features : Dict[str, List[str]]
        Per signature, the features that were dropped as absent.
    rank_cache : RankCache, optional
        Cache holding the ranks, when ranks were stored or reused.
    elapsed_seconds : float
        Wall time of the run.
    """

    scores: pd.DataFrame
    effective_max_rank: int
    empty_signatures: List[str] = field(default_factory=list)
    missing_features: Dict[str, List[str]] = field(default_factory=dict)
    rank_cache: Optional[RankCache] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for run records."""
        return {
            "n_observations": int(self.scores.shape[0]),
            "n_signatures": int(self.scores.shape[1]),
            "score_columns": list(self.scores.columns),
            "effective_max_rank": self.effective_max_rank,
            "empty_signatures": list(self.empty_signatures),
            "missing_features": {k: list(v) for k, v in self.missing_features.items()},
            "rank_cache": self.rank_cache.metadata() if self.rank_cache is not None else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


def coerce_signatures(signatures: SignatureInput) -> List[Signature]:
    """Accept Signature objects or a ``{name: [feature+/-, ...]}`` mapping."""
    if isinstance(signatures, Mapping):
        return parse_signatures(signatures)
    result = list(signatures)
    bad = [s for s in result if not isinstance(s, Signature)]
    if bad:
        raise SignatureError(
            f"Expected Signature objects, got {type(bad[0]).__name__}"
        )
    return result


class ScoringEngine:
    """Rank-based signature scoring over a feature matrix.

    Parameters
    ----------
    config : ScoringConfig, optional
        Scoring configuration. If None, uses defaults.
    logger : logging.Logger, optional
        Logger instance. If None, creates default logger.

    Example
    -------
    >>> engine = ScoringEngine(ScoringConfig(max_rank=1000, n_workers=4))
    >>> result = engine.score(matrix, {"Tcell": ["CD3E", "CD2", "CD19-"]})
    >>> result.scores.head()
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ScoringConfig()
        self.config.validate()
        self.logger = logger or logging.getLogger(__name__)

    def prepare(
        self,
        source: FeatureMatrix,
        signatures: Sequence[Signature],
    ) -> Tuple[int, List[ResolvedSignature]]:
        """Validate signatures and resolve them against ``source``.

        Returns
        -------
        Tuple[int, List[ResolvedSignature]]
            Effective max_rank and resolved signatures.
        """
        max_rank = effective_max_rank(self.config.max_rank, source.n_features)
        if max_rank < self.config.max_rank:
            self.logger.info(
                "max_rank=%d exceeds the %d available features; using %d",
                self.config.max_rank,
                source.n_features,
                max_rank,
            )
        validate_signatures(signatures, max_rank)
        columns = [self.config.column_name(s.name) for s in signatures]
        resolved = resolve_signatures(signatures, source, columns, logger=self.logger)
        return max_rank, resolved

    def _check_cache(
        self,
        rank_cache: RankCache,
        source: FeatureMatrix,
        max_rank: int,
    ) -> None:
        if not rank_cache.compatible_with(
            max_rank, self.config.ties_method, source.feature_names
        ):
            raise ConfigurationError(
                "Rank cache was built with different settings "
                f"(max_rank={rank_cache.max_rank}, ties_method={rank_cache.ties_method}, "
                f"{len(rank_cache.feature_names)} features); rebuild it for "
                f"max_rank={max_rank}, ties_method={self.config.ties_method}"
            )
        cached_obs = rank_cache.observation_names
        if cached_obs is not None and cached_obs != source.observation_names:
            raise ConfigurationError(
                "Rank cache was built for different observations; rebuild it"
            )

    def _notify_empty(self, resolved: Sequence[ResolvedSignature]) -> List[str]:
        empty = [sig.name for sig in resolved if sig.is_empty]
        if empty:
            message = (
                f"{len(empty)} signature(s) have no features present in the "
                f"matrix and score 0 everywhere: {', '.join(empty)}"
            )
            self.logger.warning("%s", message)
            warnings.warn(message, EmptySignatureWarning, stacklevel=3)
        return empty

    def score(
        self,
        source: Union[FeatureMatrix, pd.DataFrame],
        signatures: SignatureInput,
        rank_cache: Optional[RankCache] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScoringResult:
        """Score every observation against every signature.

        Parameters
        ----------
        source : FeatureMatrix or pd.DataFrame
            Features x observations values.
        signatures : Sequence[Signature] or Mapping
            Typed signatures, or ``{name: [feature, ...]}`` with optional
            ``+``/``-`` polarity suffixes.
        rank_cache : RankCache, optional
            Precomputed ranks to reuse. Must match max_rank, ties_method
            and the source features.
        cancel_event : threading.Event, optional
            Cooperative cancellation, checked between chunks.

        Returns
        -------
        ScoringResult
            Score table and run metadata.
        """
        start_time = time.time()
        source = as_feature_matrix(source)
        signatures = coerce_signatures(signatures)
        max_rank, resolved = self.prepare(source, signatures)

        if rank_cache is not None:
            self._check_cache(rank_cache, source, max_rank)
        elif self.config.store_ranks:
            rank_cache = RankCache(
                max_rank,
                self.config.ties_method,
                source.feature_names,
                source.observation_names,
            )

        empty = self._notify_empty(resolved)

        scheduler = ChunkScheduler(
            n_workers=self.config.n_workers,
            backend=self.config.backend,
            reclaim=gc.collect if self.config.force_reclaim else None,
            logger=self.logger,
        )
        scores = scheduler.run(
            source,
            resolved,
            max_rank=max_rank,
            chunk_size=self.config.chunk_size,
            ties_method=self.config.ties_method,
            w_neg=self.config.w_neg,
            rank_cache=rank_cache,
            store_ranks=self.config.store_ranks,
            cancel_event=cancel_event,
        )

        return ScoringResult(
            scores=scores,
            effective_max_rank=max_rank,
            empty_signatures=empty,
            missing_features={
                sig.name: list(sig.missing) for sig in resolved if sig.missing
            },
            rank_cache=rank_cache,
            elapsed_seconds=time.time() - start_time,
        )


def score_signatures(
    source: Union[FeatureMatrix, pd.DataFrame],
    signatures: SignatureInput,
    config: Optional[ScoringConfig] = None,
    rank_cache: Optional[RankCache] = None,
    cancel_event: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
    **overrides: Any,
) -> ScoringResult:
    """Functional form of :meth:`ScoringEngine.score`.

    Keyword overrides (``max_rank=...``, ``chunk_size=...``) are applied on
    top of ``config``.
    """
    if overrides:
        base = (config or ScoringConfig()).to_dict()
        base.update(overrides)
        config = ScoringConfig.from_dict(base)
    engine = ScoringEngine(config, logger=logger)
    return engine.score(
        source, signatures, rank_cache=rank_cache, cancel_event=cancel_event
    )
