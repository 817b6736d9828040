"""Command-line interface for cellsig.

Example Usage
-------------
    cellsig --help
    cellsig score -i data.h5ad -s signatures.yaml -o scored.h5ad
    cellsig smooth -i scored.h5ad -o smoothed.h5ad --k 15
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
