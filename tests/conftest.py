"""Pytest configuration and shared fixtures for cellsig tests."""

import sys
from pathlib import Path

import pytest
import numpy as np
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.fixtures import (
    create_mock_adata,
    create_mock_frame,
    create_mock_matrix,
    create_mock_signatures,
)


# ============================================================================
# Matrix Fixtures
# ============================================================================


@pytest.fixture
def scenario_frame() -> pd.DataFrame:
    """Five genes x one cell with distinct values (ranks g1..g5 = 1..5)."""
    return pd.DataFrame(
        {"c1": [10.0, 9.0, 8.0, 7.0, 6.0]},
        index=["g1", "g2", "g3", "g4", "g5"],
    )


@pytest.fixture
def mock_frame() -> pd.DataFrame:
    """50 genes x 40 cells with planted signal in Gene_0..Gene_4."""
    return create_mock_frame()


@pytest.fixture
def sparse_matrix():
    """Sparse (CSC) genes x cells matrix with names."""
    return create_mock_matrix(n_genes=50, n_cells=40, as_sparse=True)


@pytest.fixture
def mock_signatures() -> dict:
    """Signature mapping over the mock genes."""
    return create_mock_signatures()


# ============================================================================
# AnnData Fixtures
# ============================================================================


@pytest.fixture
def mock_adata():
    """Sparse AnnData with 60 cells, 30 genes and X_pca."""
    return create_mock_adata()


@pytest.fixture
def dense_adata():
    """Dense AnnData for layer and collision tests."""
    return create_mock_adata(n_cells=30, n_genes=20, as_sparse=False)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_config_file(tmp_path) -> Path:
    """Shared scoring + smoothing configuration file."""
    import yaml

    config = {
        "scoring": {
            "max_rank": 25,
            "chunk_size": 7,
            "w_neg": 0.5,
            "ties_method": "min",
        },
        "smoothing": {
            "k": 4,
            "weighting": "distance",
        },
    }

    path = tmp_path / "cellsig.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path


@pytest.fixture
def signature_file(tmp_path) -> Path:
    """YAML signature file over the mock genes."""
    import yaml

    path = tmp_path / "signatures.yaml"
    with open(path, "w") as f:
        yaml.dump(create_mock_signatures(n_genes=30), f)
    return path
