"""Load signature definitions from YAML or JSON files.

Files map signature names to feature lists; a trailing ``+`` or ``-``
sets a feature's polarity::

    Tcell: [CD3E, CD3D, CD2]
    NK: [NKG7+, KLRF1+, CD3E-]

Keys starting with ``_`` are treated as metadata and skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ..core.scoring.signatures import Signature, parse_signatures
from ..errors import SignatureError

PathLike = Union[str, Path]


def _read_mapping(path: Path) -> Any:
    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_signatures(
    source: Union[PathLike, Mapping[str, Any]],
    logger: Optional[logging.Logger] = None,
) -> List[Signature]:
    """Load signatures from a file or an already parsed mapping.

    Parameters
    ----------
    source : PathLike or Mapping
        ``.yaml``/``.yml``/``.json`` file, or ``{name: [features]}``.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    List[Signature]
        Signatures in file order.

    Raises
    ------
    FileNotFoundError
        If ``source`` is a path that does not exist.
    SignatureError
        If the content is not a name -> feature list mapping.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Signature file not found: {path}")
        data = _read_mapping(path)
        origin = str(path)
    else:
        data = source
        origin = "mapping"

    if not isinstance(data, Mapping):
        raise SignatureError(
            f"Signatures in {origin} must be a mapping of name -> feature list"
        )

    definitions: Dict[str, List[str]] = {}
    for name, features in data.items():
        if str(name).startswith("_"):
            continue
        if isinstance(features, str) or not isinstance(features, (list, tuple)):
            raise SignatureError(
                f"Signature '{name}' in {origin} must be a list of features"
            )
        definitions[str(name)] = [str(f) for f in features]

    signatures = parse_signatures(definitions)
    logger.info("Loaded %d signatures from %s", len(signatures), origin)
    return signatures
