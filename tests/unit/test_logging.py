"""Unit tests for run logging utilities."""

import json
import logging

import yaml

from cellsig.io import get_logger, log_json, log_yaml, timestamped_path


class TestGetLogger:
    """Tests for get_logger."""

    def test_timestamped_file(self, tmp_path):
        logger, path = get_logger("cellsig.test.stamped", tmp_path / "logs" / "score.log")
        logger.info("hello %s", "world")
        for handler in logger.handlers:
            handler.flush()

        assert path.parent == tmp_path / "logs"
        assert path.name.startswith("score_") and path.suffix == ".log"
        assert "hello world" in path.read_text()

    def test_overwrite_mode(self, tmp_path):
        target = tmp_path / "run.log"
        target.write_text("old contents\n")
        logger, path = get_logger("cellsig.test.plain", target, timestamped=False)
        logger.warning("fresh")
        for handler in logger.handlers:
            handler.flush()

        assert path == target
        text = target.read_text()
        assert "old contents" not in text
        assert "WARNING" in text

    def test_handlers_not_duplicated(self, tmp_path):
        get_logger("cellsig.test.dupe", tmp_path / "a.log")
        logger, _ = get_logger("cellsig.test.dupe", tmp_path / "b.log")
        files = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert len(files) == 1


class TestRunRecords:
    """Tests for log_json / log_yaml."""

    def test_json_lines(self, tmp_path):
        path = tmp_path / "records.jsonl"
        log_json(path, {"a": 1})
        log_json(path, {"b": 2})
        lines = path.read_text().splitlines()
        assert [json.loads(line) for line in lines] == [{"a": 1}, {"b": 2}]

    def test_yaml_documents(self, tmp_path):
        path = tmp_path / "records.yaml"
        log_yaml(path, {"max_rank": 1500})
        log_yaml(path, {"max_rank": 200})
        docs = [d for d in yaml.safe_load_all(path.read_text()) if d]
        assert docs == [{"max_rank": 1500}, {"max_rank": 200}]

    def test_yaml_to_logger(self, tmp_path, caplog):
        with caplog.at_level(logging.INFO):
            log_yaml(tmp_path / "unused.yaml", {"k": 10}, logger=logging.getLogger("cellsig.test"))
        assert "k: 10" in caplog.text
        assert not (tmp_path / "unused.yaml").exists()


def test_timestamped_path_default_suffix(tmp_path):
    path = timestamped_path(tmp_path / "score")
    assert path.suffix == ".log"
    assert path.stem.startswith("score_")
