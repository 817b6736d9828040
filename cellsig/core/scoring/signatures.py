"""Signature definitions and resolution against a feature matrix.

A signature is a named, ordered set of features, each with a polarity.
Feature identifiers may carry a trailing ``+`` (positive, the default) or
``-`` (negative) marker, e.g. ``["CD3E+", "CD8A", "CD4-"]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ...errors import SignatureError
from .matrix import FeatureMatrix


class Polarity(str, Enum):
    POSITIVE = "+"
    NEGATIVE = "-"


@dataclass(frozen=True)
class Signature:
    """A named feature set with per-feature polarity.

    Attributes:
        name: Unique signature name (score column stem)
        features: Ordered ``(feature, polarity)`` pairs, no duplicate features
    """
    name: str
    features: Tuple[Tuple[str, Polarity], ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise SignatureError("Signature name must be a non-empty string")
        if not self.features:
            raise SignatureError(f"Signature '{self.name}' has no features")
        seen = set()
        for feature, _ in self.features:
            if feature in seen:
                raise SignatureError(
                    f"Signature '{self.name}' lists feature '{feature}' more than once"
                )
            seen.add(feature)

    @property
    def positive(self) -> Tuple[str, ...]:
        return tuple(f for f, p in self.features if p is Polarity.POSITIVE)

    @property
    def negative(self) -> Tuple[str, ...]:
        return tuple(f for f, p in self.features if p is Polarity.NEGATIVE)

    @property
    def n_features(self) -> int:
        return len(self.features)


@dataclass(frozen=True)
class ResolvedSignature:
    """A signature mapped onto row indices of a specific feature matrix.

    Attributes:
        name: Signature name
        column: Output score column name
        positive_idx: Row indices of present positive features
        negative_idx: Row indices of present negative features
        missing: Features not found in the matrix
    """
    name: str
    column: str
    positive_idx: np.ndarray
    negative_idx: np.ndarray
    missing: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.positive_idx.size == 0 and self.negative_idx.size == 0


def split_polarity(item: str) -> Tuple[str, Polarity]:
    """Split a trailing polarity marker off a feature identifier.

    >>> split_polarity("CD4-")
    ('CD4', <Polarity.NEGATIVE: '-'>)
    """
    token = str(item).strip()
    if token.endswith("-") and len(token) > 1:
        return token[:-1].strip(), Polarity.NEGATIVE
    if token.endswith("+") and len(token) > 1:
        return token[:-1].strip(), Polarity.POSITIVE
    if token in ("", "+", "-"):
        raise SignatureError(f"Invalid feature identifier {item!r}")
    return token, Polarity.POSITIVE


def parse_signature(name: str, items: Iterable[str]) -> Signature:
    """Build a Signature from polarity-suffixed identifiers.

    Repeated identifiers are collapsed to their first occurrence; a feature
    listed with both polarities is rejected.
    """
    features: List[Tuple[str, Polarity]] = []
    seen: Dict[str, Polarity] = {}
    for item in items:
        feature, polarity = split_polarity(item)
        if feature in seen:
            if seen[feature] is not polarity:
                raise SignatureError(
                    f"Signature '{name}' lists '{feature}' as both positive and negative"
                )
            continue
        seen[feature] = polarity
        features.append((feature, polarity))
    return Signature(name=str(name), features=tuple(features))


def parse_signatures(definitions: Mapping[str, Sequence[str]]) -> List[Signature]:
    """Parse a ``{name: [feature, ...]}`` mapping into Signatures."""
    if not definitions:
        raise SignatureError("No signatures provided")
    return [parse_signature(name, items) for name, items in definitions.items()]


def validate_signatures(signatures: Sequence[Signature], max_rank: int) -> None:
    """Check names are unique and no signature exceeds the ranking horizon.

    Raises
    ------
    SignatureError
        On duplicate names, or when a signature has more distinct features
        than ``max_rank``.
    """
    if not signatures:
        raise SignatureError("No signatures provided")

    names = [s.name for s in signatures]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise SignatureError(f"Duplicate signature names: {', '.join(dupes)}")

    too_long = [s for s in signatures if s.n_features > max_rank]
    if too_long:
        detail = ", ".join(f"{s.name} ({s.n_features})" for s in too_long)
        raise SignatureError(
            f"Signatures longer than max_rank={max_rank}: {detail}. "
            "Increase max_rank or shorten the signatures."
        )


def resolve_signatures(
    signatures: Sequence[Signature],
    source: FeatureMatrix,
    column_names: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> List[ResolvedSignature]:
    """Map signature features onto row indices of ``source``.

    Features absent from the matrix are dropped and reported at DEBUG level.
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if column_names is None:
        column_names = [s.name for s in signatures]

    resolved: List[ResolvedSignature] = []
    for signature, column in zip(signatures, column_names):
        positive: List[int] = []
        negative: List[int] = []
        missing: List[str] = []
        for feature, polarity in signature.features:
            idx = source.feature_index(feature)
            if idx is None:
                missing.append(feature)
            elif polarity is Polarity.POSITIVE:
                positive.append(idx)
            else:
                negative.append(idx)

        if missing:
            logger.debug(
                "Signature '%s': missing %d/%d features: %s",
                signature.name,
                len(missing),
                signature.n_features,
                missing,
            )

        resolved.append(
            ResolvedSignature(
                name=signature.name,
                column=column,
                positive_idx=np.asarray(positive, dtype=np.intp),
                negative_idx=np.asarray(negative, dtype=np.intp),
                missing=tuple(missing),
            )
        )
    return resolved
