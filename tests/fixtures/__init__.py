"""Test fixtures for cellsig.

Provides mock data generators and test utilities.
"""

from .mock_matrix import (
    create_mock_adata,
    create_mock_frame,
    create_mock_matrix,
    create_mock_signatures,
)

__all__ = [
    "create_mock_adata",
    "create_mock_frame",
    "create_mock_matrix",
    "create_mock_signatures",
]
