"""Unit tests for ScoringConfig."""

import pytest
import yaml

from cellsig.core.scoring import ScoringConfig
from cellsig.errors import ConfigurationError


class TestScoringConfig:
    """Tests for ScoringConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = ScoringConfig.default()
        assert config.max_rank == 1500
        assert config.chunk_size == 100
        assert config.n_workers == 1
        assert config.backend == "loky"
        assert config.w_neg == 1.0
        assert config.ties_method == "average"
        assert config.name_suffix == "_UCell"
        assert config.store_ranks is False
        assert config.force_reclaim is False

    def test_column_name(self):
        assert ScoringConfig().column_name("Tcell") == "Tcell_UCell"
        assert ScoringConfig(name_suffix="").column_name("Tcell") == "Tcell"
        assert ScoringConfig(name_suffix=None).column_name("Tcell") == "Tcell"

    @pytest.mark.parametrize(
        "options",
        [
            {"max_rank": 0},
            {"chunk_size": -3},
            {"n_workers": 0},
            {"w_neg": -0.1},
            {"w_neg": 1.01},
            {"ties_method": "random"},
            {"max_rank": True},
        ],
    )
    def test_invalid_values(self, options):
        with pytest.raises(ConfigurationError):
            ScoringConfig.from_dict(options)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="maxRank"):
            ScoringConfig.from_dict({"maxRank": 10})

    def test_from_yaml_section(self, sample_config_file):
        config = ScoringConfig.from_yaml(sample_config_file)
        assert config.max_rank == 25
        assert config.chunk_size == 7
        assert config.w_neg == 0.5
        assert config.ties_method == "min"

    def test_from_yaml_flat(self, tmp_path):
        path = tmp_path / "flat.yaml"
        path.write_text("max_rank: 200\nn_workers: 2\n")
        config = ScoringConfig.from_yaml(path)
        assert config.max_rank == 200
        assert config.n_workers == 2

    def test_yaml_round_trip(self, tmp_path):
        config = ScoringConfig(max_rank=300, w_neg=0.25, name_suffix=None)
        path = tmp_path / "round.yaml"
        with open(path, "w") as f:
            yaml.safe_dump({"scoring": config.to_dict()}, f)
        assert ScoringConfig.from_yaml(path) == config
