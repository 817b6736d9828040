"""Exception types for cellsig.

Configuration, signature and input problems are raised eagerly, before any
chunk is dispatched. Worker failures are wrapped so the caller can see which
chunk failed.
"""

from __future__ import annotations

from typing import Optional, Tuple


class CellsigError(Exception):
    """Base class for all cellsig errors."""


class ConfigurationError(CellsigError, ValueError):
    """Invalid option value, missing data layer, or incompatible cache."""


class SignatureError(CellsigError, ValueError):
    """A signature definition cannot be scored under the current settings."""


class InputError(CellsigError, ValueError):
    """Shape or identifier mismatch in the data handed to the engine."""


class ScoreRangeError(CellsigError, ValueError):
    """A computed score left [0, 1] by more than rounding drift."""


class EmptySignatureWarning(UserWarning):
    """One or more signatures have no features present in the matrix.

    Such signatures score 0 for every observation. Emitted once per
    scoring invocation, listing every affected signature.
    """


class ParallelWorkerError(CellsigError):
    """A chunk failed during scoring; the whole invocation is aborted.

    Attributes
    ----------
    chunk_index : int
        Position of the failing chunk in the chunk plan.
    chunk_range : Tuple[int, int], optional
        Observation range ``[start, stop)`` of the failing chunk.
    cause : BaseException
        The original exception raised inside the worker.
    """

    def __init__(
        self,
        chunk_index: int,
        cause: BaseException,
        chunk_range: Optional[Tuple[int, int]] = None,
    ):
        super().__init__(chunk_index, cause, chunk_range)
        self.chunk_index = chunk_index
        self.cause = cause
        self.chunk_range = chunk_range

    def __str__(self) -> str:
        where = f"chunk {self.chunk_index}"
        if self.chunk_range is not None:
            where += f" (observations {self.chunk_range[0]}-{self.chunk_range[1]})"
        return f"Scoring failed in {where}: {type(self.cause).__name__}: {self.cause}"


class ScoringCancelled(CellsigError):
    """Scoring was cancelled between chunks; no partial result is returned."""

    def __init__(self, completed_chunks: int, total_chunks: int):
        super().__init__(completed_chunks, total_chunks)
        self.completed_chunks = completed_chunks
        self.total_chunks = total_chunks

    def __str__(self) -> str:
        return (
            f"Scoring cancelled after {self.completed_chunks}/{self.total_chunks} chunks"
        )
