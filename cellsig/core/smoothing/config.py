"""Configuration for kNN smoothing of per-observation tables."""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ...errors import ConfigurationError

WEIGHTING_SCHEMES = ("uniform", "distance")
DEFAULT_SMOOTH_SUFFIX = "_kNN"


@dataclass
class SmoothingConfig:
    """Configuration for nearest-neighbor smoothing.

    Attributes
    ----------
    k : int
        Neighbors per observation. 0 disables smoothing.
    weighting : str
        "uniform" (equal weights) or "distance" (1 / (1 + d), normalized).
    include_self : bool
        Count each observation as one of its own k neighbors.
    suffix : str
        Appended to every smoothed column name.
    embedding_key : str
        Key of the embedding in ``adata.obsm`` for AnnData inputs.
    columns : List[str], optional
        Columns to smooth. None smooths every numeric column.
    """

    k: int = 10
    weighting: str = "uniform"
    include_self: bool = False
    suffix: str = DEFAULT_SMOOTH_SUFFIX
    embedding_key: str = "X_pca"
    columns: Optional[List[str]] = None

    def validate(self) -> None:
        if isinstance(self.k, bool) or not isinstance(self.k, int) or self.k < 0:
            raise ConfigurationError(f"k must be a non-negative integer, got {self.k!r}")
        if self.weighting not in WEIGHTING_SCHEMES:
            raise ConfigurationError(
                f"Unknown weighting '{self.weighting}'. "
                f"Choose from: {', '.join(WEIGHTING_SCHEMES)}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SmoothingConfig":
        """Create SmoothingConfig from dictionary."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown smoothing options: {', '.join(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SmoothingConfig":
        """Load configuration from YAML file (optional ``smoothing:`` section)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "scoring" in data or "smoothing" in data:
            data = data.get("smoothing") or {}

        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "SmoothingConfig":
        """Create default configuration."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
