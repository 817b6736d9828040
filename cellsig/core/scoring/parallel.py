"""Chunked, optionally parallel ranking and scoring.

Observations are split into contiguous chunks. Each chunk is an
independent unit of work:
1. Slice the chunk's columns from the source (sparse stays sparse)
2. Rank the chunk, or reuse ranks from a RankCache
3. Score the chunk against every signature
4. Concatenate chunk tables in plan order

Workers share no mutable state; the merge after the last chunk is the only
synchronization point, so the result does not depend on chunk size, worker
count or completion order.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd
from joblib import Parallel, delayed

from ...errors import ConfigurationError, ParallelWorkerError, ScoringCancelled
from .cache import RankCache
from .matrix import FeatureMatrix, MatrixLike
from .ranking import RankMatrix, rank_chunk
from .signatures import ResolvedSignature
from .ustat import score_chunk


@dataclass(frozen=True)
class ChunkPlan:
    """Ordered partition of ``range(n_observations)`` into contiguous chunks."""

    n_observations: int
    chunk_size: int

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ConfigurationError(
                f"chunk_size must be a positive integer, got {self.chunk_size}"
            )
        if self.n_observations < 0:
            raise ConfigurationError("n_observations must be non-negative")

    @property
    def ranges(self) -> List[Tuple[int, int]]:
        return [
            (start, min(start + self.chunk_size, self.n_observations))
            for start in range(0, self.n_observations, self.chunk_size)
        ]

    def __len__(self) -> int:
        return -(-self.n_observations // self.chunk_size)

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        return iter(self.ranges)


@dataclass
class ChunkWorkItem:
    """Data for one chunk.

    Exactly one of ``values`` (raw slice to rank) and ``ranks`` (cached)
    is set.
    """

    index: int
    start: int
    stop: int
    observation_names: List[str]
    values: Optional[MatrixLike] = None
    ranks: Optional[RankMatrix] = None

    @property
    def n_obs(self) -> int:
        return self.stop - self.start


@dataclass
class ChunkResult:
    """Result from one chunk."""

    index: int
    start: int
    stop: int
    scores: pd.DataFrame
    ranks: Optional[RankMatrix] = None
    reused_ranks: bool = False
    timing_seconds: float = 0.0


def process_chunk(
    item: ChunkWorkItem,
    signatures: Sequence[ResolvedSignature],
    max_rank: int,
    ties_method: str,
    w_neg: float,
    n_features: int,
    keep_ranks: bool = False,
) -> ChunkResult:
    """Rank (unless cached) and score one chunk.

    This function is designed to be called in parallel. Any failure is
    re-raised as ParallelWorkerError carrying the chunk index.
    """
    start_time = time.time()
    try:
        reused = item.ranks is not None
        if reused:
            ranks = item.ranks
        else:
            ranks = rank_chunk(
                item.values, max_rank, ties_method=ties_method, n_features=n_features
            )
        scores = score_chunk(
            ranks, signatures, w_neg=w_neg, index=item.observation_names
        )
    except Exception as exc:
        raise ParallelWorkerError(item.index, exc, (item.start, item.stop)) from exc

    return ChunkResult(
        index=item.index,
        start=item.start,
        stop=item.stop,
        scores=scores,
        ranks=ranks if keep_ranks and not reused else None,
        reused_ranks=reused,
        timing_seconds=time.time() - start_time,
    )


class ChunkScheduler:
    """Drive ranking and scoring over a chunk plan.

    Parameters
    ----------
    n_workers : int
        Worker pool size. 1 runs every chunk in-process, in order.
    backend : str
        joblib backend for ``n_workers > 1`` (loky, threading, multiprocessing).
    reclaim : Callable, optional
        Called after each completed chunk, e.g. ``gc.collect``.
    logger : logging.Logger, optional
        Logger for progress tracking.
    """

    def __init__(
        self,
        n_workers: int = 1,
        backend: str = "loky",
        reclaim: Optional[Callable[[], object]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {n_workers}")
        self.n_workers = n_workers
        self.backend = backend
        self.reclaim = reclaim
        self.logger = logger or logging.getLogger(__name__)

    def _work_items(
        self,
        source: FeatureMatrix,
        plan: ChunkPlan,
        rank_cache: Optional[RankCache],
    ) -> Iterator[ChunkWorkItem]:
        # Lazy, so only dispatched chunks hold their slice in memory
        obs_names = source.observation_names
        for index, (start, stop) in enumerate(plan):
            cached = rank_cache.get(start, stop) if rank_cache is not None else None
            yield ChunkWorkItem(
                index=index,
                start=start,
                stop=stop,
                observation_names=obs_names[start:stop],
                values=None if cached is not None else source.column_slice(start, stop),
                ranks=cached,
            )

    def _results(
        self,
        items: Iterator[ChunkWorkItem],
        signatures: Sequence[ResolvedSignature],
        kwargs: Dict[str, object],
    ) -> Iterator[ChunkResult]:
        if self.n_workers == 1:
            for item in items:
                yield process_chunk(item, signatures, **kwargs)
            return

        results = Parallel(
            n_jobs=self.n_workers,
            backend=self.backend,
            return_as="generator",
            verbose=0,
        )(delayed(process_chunk)(item, signatures, **kwargs) for item in items)
        try:
            yield from results
        finally:
            results.close()

    def run(
        self,
        source: FeatureMatrix,
        signatures: Sequence[ResolvedSignature],
        max_rank: int,
        chunk_size: int,
        ties_method: str = "average",
        w_neg: float = 1.0,
        rank_cache: Optional[RankCache] = None,
        store_ranks: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> pd.DataFrame:
        """Score every observation of ``source``.

        Parameters
        ----------
        source : FeatureMatrix
            Features x observations source.
        signatures : Sequence[ResolvedSignature]
            Signatures resolved against ``source``.
        max_rank : int
            Effective ranking horizon.
        chunk_size : int
            Observations per chunk.
        ties_method : str
            Tie resolution method.
        w_neg : float
            Negative feature weight.
        rank_cache : RankCache, optional
            Ranks to reuse; with ``store_ranks`` newly computed blocks are
            added to it.
        store_ranks : bool
            Keep newly computed rank blocks in ``rank_cache``.
        cancel_event : threading.Event, optional
            Checked between chunks; when set, scoring stops with
            ScoringCancelled.

        Returns
        -------
        pd.DataFrame
            Observations x signature columns, in source column order.

        Raises
        ------
        ParallelWorkerError
            On the first chunk failure. No partial table is returned.
        ScoringCancelled
            When ``cancel_event`` is set before all chunks completed.
        """
        if store_ranks and rank_cache is None:
            raise ConfigurationError("store_ranks requires a RankCache")

        plan = ChunkPlan(source.n_observations, chunk_size)
        n_chunks = len(plan)
        self.logger.info(
            "Scoring %d observations x %d signatures in %d chunks "
            "(chunk_size=%d, n_workers=%d)",
            source.n_observations,
            len(signatures),
            n_chunks,
            chunk_size,
            self.n_workers,
        )

        kwargs = {
            "max_rank": max_rank,
            "ties_method": ties_method,
            "w_neg": w_neg,
            "n_features": source.n_features,
            "keep_ranks": store_ranks,
        }
        if cancel_event is not None and cancel_event.is_set():
            raise ScoringCancelled(0, n_chunks)

        items = self._work_items(source, plan, rank_cache)
        frames: Dict[int, pd.DataFrame] = {}
        # Committed to the cache only once every chunk has succeeded
        new_blocks: Dict[Tuple[int, int], RankMatrix] = {}
        n_reused = 0
        start_time = time.time()

        results = self._results(items, signatures, kwargs)
        try:
            for result in results:
                frames[result.index] = result.scores
                if result.ranks is not None:
                    new_blocks[(result.start, result.stop)] = result.ranks
                n_reused += int(result.reused_ranks)
                self.logger.debug(
                    "Chunk %d/%d [%d, %d) done in %.2f sec%s",
                    result.index + 1,
                    n_chunks,
                    result.start,
                    result.stop,
                    result.timing_seconds,
                    " (cached ranks)" if result.reused_ranks else "",
                )
                if self.reclaim is not None:
                    self.reclaim()
                if cancel_event is not None and cancel_event.is_set() and len(frames) < n_chunks:
                    raise ScoringCancelled(len(frames), n_chunks)
        except (ParallelWorkerError, ScoringCancelled):
            raise
        except Exception as exc:
            failed = min(set(range(n_chunks)) - set(frames), default=n_chunks)
            raise ParallelWorkerError(failed, exc) from exc
        finally:
            results.close()

        for (start, stop), ranks in new_blocks.items():
            rank_cache.put(start, stop, ranks)

        self.logger.info(
            "Scored %d chunks in %.2f sec (%d from cached ranks)",
            n_chunks,
            time.time() - start_time,
            n_reused,
        )

        if not frames:
            columns = [sig.column for sig in signatures]
            return pd.DataFrame(
                columns=columns,
                index=pd.Index(source.observation_names[:0]),
                dtype=float,
            )
        return pd.concat([frames[i] for i in range(n_chunks)], axis=0)
