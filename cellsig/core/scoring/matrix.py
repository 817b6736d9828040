"""Feature-by-observation matrix sources.

The scoring engine only needs column-range slicing and feature lookup.
Container-specific adapters (see ``cellsig.io.anndata``) implement
:class:`FeatureMatrix`; the engine never inspects the container type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse

from ...errors import InputError

MatrixLike = Union[np.ndarray, sparse.spmatrix]


def _check_unique(names: Sequence[str], kind: str) -> None:
    index = pd.Index(names)
    if not index.is_unique:
        dupes = index[index.duplicated()].unique().tolist()[:5]
        raise InputError(f"{kind} identifiers must be unique; duplicated: {dupes}")


class FeatureMatrix(ABC):
    """Read-only features x observations source."""

    @property
    @abstractmethod
    def feature_names(self) -> List[str]:
        """Row identifiers."""

    @property
    @abstractmethod
    def observation_names(self) -> List[str]:
        """Column identifiers."""

    @abstractmethod
    def column_slice(self, start: int, stop: int) -> MatrixLike:
        """Return columns ``[start, stop)`` as a (features, stop - start) block.

        Sparse sources must return a sparse block; only the caller decides
        when to densify.
        """

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.feature_names), len(self.observation_names)

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    @property
    def n_observations(self) -> int:
        return len(self.observation_names)

    def feature_index(self, name: str) -> Optional[int]:
        """Row position of a feature, or None when absent."""
        lookup = getattr(self, "_feature_lookup", None)
        if lookup is None:
            lookup = {f: i for i, f in enumerate(self.feature_names)}
            self._feature_lookup = lookup
        return lookup.get(name)


class ArrayFeatureMatrix(FeatureMatrix):
    """FeatureMatrix over an in-memory numpy array or scipy sparse matrix.

    Parameters
    ----------
    matrix : np.ndarray or scipy.sparse matrix
        Values with features as rows and observations as columns.
    feature_names : Sequence[str]
        One identifier per row.
    observation_names : Sequence[str]
        One identifier per column.
    """

    def __init__(
        self,
        matrix: MatrixLike,
        feature_names: Sequence[str],
        observation_names: Sequence[str],
    ):
        if sparse.issparse(matrix):
            # CSC makes column-range slicing cheap
            matrix = sparse.csc_matrix(matrix)
        else:
            matrix = np.asarray(matrix)
            if matrix.ndim != 2:
                raise InputError(f"Expected a 2-D matrix, got {matrix.ndim} dimensions")

        n_rows, n_cols = matrix.shape
        if len(feature_names) != n_rows:
            raise InputError(
                f"Got {len(feature_names)} feature names for {n_rows} matrix rows"
            )
        if len(observation_names) != n_cols:
            raise InputError(
                f"Got {len(observation_names)} observation names for {n_cols} matrix columns"
            )

        self._features = [str(f) for f in feature_names]
        self._observations = [str(o) for o in observation_names]
        _check_unique(self._features, "Feature")
        _check_unique(self._observations, "Observation")
        self._matrix = matrix

    @property
    def feature_names(self) -> List[str]:
        return self._features

    @property
    def observation_names(self) -> List[str]:
        return self._observations

    def column_slice(self, start: int, stop: int) -> MatrixLike:
        return self._matrix[:, start:stop]

    @classmethod
    def from_dataframe(cls, frame: pd.DataFrame) -> "ArrayFeatureMatrix":
        """Build from a DataFrame with features as index and observations as columns."""
        return cls(
            frame.to_numpy(),
            feature_names=frame.index.astype(str).tolist(),
            observation_names=frame.columns.astype(str).tolist(),
        )


def as_feature_matrix(
    data: Union[FeatureMatrix, pd.DataFrame],
) -> FeatureMatrix:
    """Coerce supported inputs to a FeatureMatrix."""
    if isinstance(data, FeatureMatrix):
        return data
    if isinstance(data, pd.DataFrame):
        return ArrayFeatureMatrix.from_dataframe(data)
    raise InputError(
        f"Unsupported matrix input {type(data).__name__}; pass a FeatureMatrix "
        "or a features x observations DataFrame"
    )
