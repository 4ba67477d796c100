from pathlib import Path

import pytest
from pydantic import ValidationError

from eurowatch.config import Config


def test_defaults():
    config = Config.default()

    assert config.fetch.min_content_length == 100
    assert config.parsing.min_speech_length == 40
    assert config.topics.snippet_offsets == [0, 40, 80, 120]
    assert config.topics.threshold == 0.08
    assert config.classifier.mode == "speech"
    assert config.export.fields[0] == "id"


def test_yaml_round_trip_leaves_out_api_key(tmp_path):
    config = Config()
    config.classifier.api_key = "sk-test-secret"
    config.fetch.concurrency = 4
    config.export.output_dir = Path("exports")
    path = tmp_path / "config.yaml"

    config.to_yaml(path)
    loaded = Config.from_yaml(path)

    assert "sk-test-secret" not in path.read_text()
    assert loaded.classifier.api_key is None
    assert loaded.fetch.concurrency == 4
    assert loaded.export.output_dir == Path("exports")


def test_partial_and_empty_yaml(tmp_path):
    partial = tmp_path / "partial.yaml"
    partial.write_text("topics:\n  threshold: 0.2\nunused_section:\n  key: 1\n")
    empty = tmp_path / "empty.yaml"
    empty.write_text("")

    assert Config.from_yaml(partial).topics.threshold == 0.2
    assert Config.from_yaml(partial).topics.snippet_length == 160
    assert Config.from_yaml(empty).database.url == Config().database.url


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EUROWATCH_FETCH__CONCURRENCY", "5")
    monkeypatch.setenv("EUROWATCH_CLASSIFIER__MODEL", "gpt-4o-mini")

    config = Config()

    assert config.fetch.concurrency == 5
    assert config.classifier.model == "gpt-4o-mini"


def test_invalid_mode_is_rejected():
    with pytest.raises(ValidationError):
        Config(classifier={"mode": "paragraph"})
