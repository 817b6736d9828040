"""Run logs and run records for cellsig.

``cellsig score --log-file`` mirrors the ``cellsig`` logger into a text
file. Missing features and per-chunk timings go in at DEBUG; horizon
clamping and rank cache reuse at INFO. ``--record`` appends the scoring settings
and the ``ScoringResult`` summary as a YAML document, one per run.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Tuple, Union

import yaml

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def timestamped_path(path: PathLike, default_suffix: str = ".log") -> Path:
    """Stamp a run log path with the time the run started.

    Repeated ``cellsig score --log-file run.log`` calls land in
    ``run_20251209_080530.log`` and so on, never in the same file. A
    path without a suffix gets ``default_suffix``.
    """
    path = Path(path)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return path.parent / f"{path.stem}_{stamp}{path.suffix or default_suffix}"


def get_logger(
    name: str,
    log_path: PathLike,
    level: int = logging.INFO,
    timestamped: bool = True,
) -> Tuple[logging.Logger, Path]:
    """Mirror a cellsig logger into a run log file.

    Only file handlers already on the logger are replaced. The logger
    still propagates, so the console output set up by the CLI keeps
    running alongside the file.

    Parameters
    ----------
    name : str
        Logger to mirror, normally ``"cellsig"`` so engine, rank cache
        and smoothing messages all reach the file.
    log_path : PathLike
        Requested log file; parent directories are created.
    level : int
        Level set on the logger (the CLI passes DEBUG).
    timestamped : bool
        Stamp the file name with the run start time. If False, an
        existing file at ``log_path`` is replaced.

    Returns
    -------
    Tuple[logging.Logger, Path]
        The logger and the file actually written to.
    """
    if timestamped:
        actual = timestamped_path(log_path)
    else:
        actual = Path(log_path)
        actual.unlink(missing_ok=True)
    actual.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
    handler = logging.FileHandler(actual, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
    return logger, actual


def _destination(path: PathLike) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_json(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append a run record as one JSON line; non-JSON values are stringified."""
    with _destination(log_path).open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str))
        handle.write("\n")


def log_yaml(
    log_path: PathLike,
    record: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Append a run record as a YAML document ending in ``---``.

    The CLI writes the effective ``ScoringConfig`` and the
    ``ScoringResult`` summary this way, so a record file can be read
    back with ``yaml.safe_load_all``.

    Parameters
    ----------
    log_path : PathLike
        File to append to. Ignored when ``logger`` is given.
    record : dict
        Plain data (str, numbers, lists, dicts), e.g. ``ScoringResult.to_dict()``.
    logger : logging.Logger, optional
        Emit the document at INFO level instead of writing a file.
    """
    text = yaml.safe_dump(record, sort_keys=False).rstrip("\n")
    message = f"{text}\n---"
    if logger is not None:
        logger.info("%s", message)
        return
    with _destination(log_path).open("a", encoding="utf-8") as handle:
        handle.write(message)
        handle.write("\n")
