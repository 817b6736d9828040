"""Persisted rank matrices for repeated scoring without re-ranking.

The cache is keyed by observation range ``(start, stop)``. It is only valid
for the matrix and ranking settings it was built from; nothing is
invalidated automatically, the caller discards or rebuilds it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import sparse

from ...errors import ConfigurationError
from .ranking import RankMatrix

logger = logging.getLogger(__name__)

ChunkKey = Tuple[int, int]


class RankCache:
    """In-memory store of per-chunk rank blocks.

    Parameters
    ----------
    max_rank : int
        Effective ranking horizon of every stored block.
    ties_method : str
        Tie method the ranks were computed with.
    feature_names : Sequence[str]
        Row identifiers of the ranked matrix.
    observation_names : Sequence[str], optional
        Column identifiers of the ranked matrix, used when exporting.
    """

    def __init__(
        self,
        max_rank: int,
        ties_method: str,
        feature_names: Sequence[str],
        observation_names: Optional[Sequence[str]] = None,
    ):
        self.max_rank = int(max_rank)
        self.ties_method = ties_method
        self.feature_names = list(feature_names)
        self.observation_names = (
            list(observation_names) if observation_names is not None else None
        )
        self._blocks: Dict[ChunkKey, RankMatrix] = {}

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, key: ChunkKey) -> bool:
        return self.covers(*key)

    def __iter__(self) -> Iterator[ChunkKey]:
        return iter(sorted(self._blocks))

    @property
    def n_observations(self) -> int:
        """Total observations across stored blocks (overlaps counted twice)."""
        return sum(stop - start for start, stop in self._blocks)

    @property
    def nbytes(self) -> int:
        """Approximate memory held by the stored rank blocks."""
        total = 0
        for block in self._blocks.values():
            r = block.ranks
            total += r.data.nbytes + r.indices.nbytes + r.indptr.nbytes
        return total

    def put(self, start: int, stop: int, ranks: RankMatrix) -> None:
        """Store the rank block for observations ``[start, stop)``."""
        if ranks.shape != (len(self.feature_names), stop - start):
            raise ConfigurationError(
                f"Rank block shape {ranks.shape} does not match range "
                f"[{start}, {stop}) over {len(self.feature_names)} features"
            )
        if ranks.max_rank != self.max_rank:
            raise ConfigurationError(
                f"Rank block max_rank={ranks.max_rank} differs from cache "
                f"max_rank={self.max_rank}"
            )
        self._blocks[(int(start), int(stop))] = ranks

    def _covering_pieces(
        self, start: int, stop: int
    ) -> Optional[List[Tuple[ChunkKey, int, int]]]:
        # Stored blocks and the absolute column range taken from each, or None on a gap
        keys = sorted(k for k in self._blocks if k[1] > start and k[0] < stop)
        reached = start
        pieces: List[Tuple[ChunkKey, int, int]] = []
        for key in keys:
            if key[0] > reached:
                return None
            if key[1] <= reached:
                continue
            upto = min(key[1], stop)
            pieces.append((key, reached, upto))
            reached = upto
            if reached >= stop:
                return pieces
        return None

    def covers(self, start: int, stop: int) -> bool:
        """True when stored blocks span every observation in ``[start, stop)``."""
        if (start, stop) in self._blocks:
            return True
        return self._covering_pieces(start, stop) is not None

    def get(self, start: int, stop: int) -> Optional[RankMatrix]:
        """Rank block for ``[start, stop)``, assembled from stored blocks if needed."""
        exact = self._blocks.get((start, stop))
        if exact is not None:
            return exact

        pieces = self._covering_pieces(start, stop)
        if pieces is None:
            return None
        parts = [
            self._blocks[key].ranks[:, lo - key[0]:hi - key[0]]
            for key, lo, hi in pieces
        ]
        merged = parts[0] if len(parts) == 1 else sparse.hstack(parts, format="csc")
        return RankMatrix(ranks=sparse.csc_matrix(merged), max_rank=self.max_rank)

    def compatible_with(
        self,
        max_rank: int,
        ties_method: str,
        feature_names: Sequence[str],
    ) -> bool:
        """Whether the cache was built with the given ranking settings."""
        return (
            self.max_rank == int(max_rank)
            and self.ties_method == ties_method
            and self.feature_names == list(feature_names)
        )

    def clear(self) -> None:
        self._blocks.clear()

    def to_sparse(self) -> sparse.csc_matrix:
        """All stored ranks as one (features, observations) matrix.

        Requires the stored blocks to tile ``[0, n)`` without gaps.
        Implicit zeros mean the sentinel ``max_rank + 1``.
        """
        if not self._blocks:
            return sparse.csc_matrix((len(self.feature_names), 0), dtype=np.float32)
        stop = max(k[1] for k in self._blocks)
        full = self.get(0, stop)
        if full is None:
            raise ConfigurationError(
                "Rank cache has gaps; cannot export a contiguous rank matrix"
            )
        return full.ranks

    def metadata(self) -> Dict[str, Any]:
        return {
            "max_rank": self.max_rank,
            "ties_method": self.ties_method,
            "n_blocks": len(self._blocks),
            "n_observations": self.n_observations,
        }

    @classmethod
    def from_sparse(
        cls,
        ranks: sparse.spmatrix,
        max_rank: int,
        ties_method: str,
        feature_names: Sequence[str],
        observation_names: Optional[Sequence[str]] = None,
    ) -> "RankCache":
        """Wrap a full (features, observations) rank matrix as a single block."""
        cache = cls(max_rank, ties_method, feature_names, observation_names)
        ranks = sparse.csc_matrix(ranks)
        cache.put(0, ranks.shape[1], RankMatrix(ranks=ranks, max_rank=int(max_rank)))
        return cache

    def save(self, path: Union[str, Path]) -> Path:
        """Write the cache as an ``.h5ad`` file (observations x features)."""
        import anndata as ad
        import pandas as pd

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        ranks = self.to_sparse()
        n_obs = ranks.shape[1]
        obs_names = self.observation_names or [str(i) for i in range(n_obs)]
        adata = ad.AnnData(
            X=sparse.csr_matrix(ranks.T),
            obs=pd.DataFrame(index=pd.Index(obs_names[:n_obs], dtype=str)),
            var=pd.DataFrame(index=pd.Index(self.feature_names, dtype=str)),
        )
        adata.uns["rank_cache"] = {
            "max_rank": self.max_rank,
            "ties_method": self.ties_method,
        }
        adata.write_h5ad(path)
        logger.info("Saved rank cache (%d observations) to %s", n_obs, path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RankCache":
        """Read a cache written by :meth:`save`."""
        import anndata as ad

        adata = ad.read_h5ad(path)
        meta = adata.uns.get("rank_cache")
        if meta is None:
            raise ConfigurationError(f"{path} does not contain a rank cache")
        return cls.from_sparse(
            sparse.csc_matrix(adata.X).T,
            max_rank=int(meta["max_rank"]),
            ties_method=str(meta["ties_method"]),
            feature_names=adata.var_names.astype(str).tolist(),
            observation_names=adata.obs_names.astype(str).tolist(),
        )
