"""Configuration for signature scoring.

All scoring parameters can be set in code or loaded from a YAML file with
an optional top-level ``scoring:`` section.
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ...errors import ConfigurationError

TIES_METHODS = ("average", "min", "max", "first", "last", "dense")
DEFAULT_NAME_SUFFIX = "_UCell"


@dataclass
class ScoringConfig:
    """Configuration for rank-based signature scoring.

    Attributes
    ----------
    max_rank : int
        Ranking horizon. Features ranked beyond it are treated as not
        expressed. Clamped to the number of features at run time.
    chunk_size : int
        Number of observations ranked and scored per unit of work.
    n_workers : int
        Worker pool size (1 = sequential, in-process).
    backend : str
        joblib backend used when ``n_workers > 1``.
    w_neg : float
        Weight of negative signature features, in [0, 1].
    ties_method : str
        Tie resolution: average, min, max, first, last, dense.
    name_suffix : str, optional
        Appended to each signature name in the score table. None or ""
        keeps the bare name.
    store_ranks : bool
        Keep per-chunk rank matrices in a RankCache for later reuse.
    force_reclaim : bool
        Run the garbage collector after every chunk.
    """

    max_rank: int = 1500
    chunk_size: int = 100
    n_workers: int = 1
    backend: str = "loky"
    w_neg: float = 1.0
    ties_method: str = "average"
    name_suffix: Optional[str] = DEFAULT_NAME_SUFFIX
    store_ranks: bool = False
    force_reclaim: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range values."""
        for attr in ("max_rank", "chunk_size", "n_workers"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"{attr} must be a positive integer, got {value!r}"
                )
        if not 0.0 <= float(self.w_neg) <= 1.0:
            raise ConfigurationError(f"w_neg must be within [0, 1], got {self.w_neg!r}")
        if self.ties_method not in TIES_METHODS:
            raise ConfigurationError(
                f"Unknown ties_method '{self.ties_method}'. "
                f"Choose from: {', '.join(TIES_METHODS)}"
            )

    def column_name(self, signature_name: str) -> str:
        """Score column name for a signature."""
        if not self.name_suffix:
            return signature_name
        return f"{signature_name}{self.name_suffix}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoringConfig":
        """Create ScoringConfig from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown scoring options: {', '.join(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ScoringConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Shared files carry scoring: and smoothing: sections
        if "scoring" in data or "smoothing" in data:
            data = data.get("scoring") or {}

        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "ScoringConfig":
        """Create default configuration."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
