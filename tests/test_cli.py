import pytest
from typer.testing import CliRunner

from eurowatch.cli import app
from eurowatch.processors.analytics import AnalyticsCache
from eurowatch.utils.hashing import compute_hash

runner = CliRunner()


@pytest.fixture
def config_file(config, tmp_path):
    path = tmp_path / "eurowatch.yaml"
    config.to_yaml(path)
    return path


def test_init_config_refuses_to_overwrite(tmp_path):
    path = tmp_path / "config" / "default.yaml"

    assert runner.invoke(app, ["init-config", str(path)]).exit_code == 0
    assert path.exists()
    assert runner.invoke(app, ["init-config", str(path)]).exit_code == 1
    assert runner.invoke(app, ["init-config", str(path), "--force"]).exit_code == 0


def test_validate_config(config_file, tmp_path):
    result = runner.invoke(app, ["validate-config", str(config_file)])

    assert result.exit_code == 0
    assert "Configuration is valid" in result.output

    broken = tmp_path / "broken.yaml"
    broken.write_text("fetch:\n  concurrency: many\n")
    assert runner.invoke(app, ["validate-config", str(broken)]).exit_code == 1
    assert runner.invoke(app, ["validate-config", str(tmp_path / "missing.yaml")]).exit_code == 1


def test_run_warm_cache_only(config_file, storage):
    result = runner.invoke(app, ["run", "--warm-cache", "-c", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Stages: analytics" in result.output
    assert AnalyticsCache(storage).load()


def test_run_dry_run_writes_nothing(config_file, storage):
    result = runner.invoke(app, ["run", "--warm-cache", "--dry-run", "-c", str(config_file)])

    assert result.exit_code == 0, result.output
    assert not AnalyticsCache(storage).load()


@pytest.mark.parametrize(
    "args",
    [
        ["--date", "17/01/2024"],
        ["--start-date", "2024-02-30"],
        ["--classify", "--mode", "paragraph"],
    ],
)
def test_run_rejects_bad_arguments(config_file, args):
    result = runner.invoke(app, ["run", "-c", str(config_file), *args])

    assert result.exit_code == 1


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["run", "-c", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1


def test_classify_without_api_key_fails(config_file, storage, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    content = "x" * 200
    storage.upsert_sitting("2024-01-17", content, compute_hash(content))
    storage.replace_speeches(
        storage.sitting_for_date("2024-01-17").id, [{"speech_order": 1, "speech_content": content}]
    )

    result = runner.invoke(app, ["run", "--classify", "-c", str(config_file)])

    assert result.exit_code == 1


def test_status(config_file, storage):
    content = "x" * 200
    storage.upsert_sitting("2024-01-17", content, compute_hash(content))

    result = runner.invoke(app, ["status", "-c", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Sittings" in result.output
    assert "Analytics cache has not been built" in result.output


def test_export_csv(config_file, storage, tmp_path):
    content = "x" * 200
    storage.upsert_sitting("2024-01-17", content, compute_hash(content))
    storage.replace_speeches(
        storage.sitting_for_date("2024-01-17").id,
        [{"speech_order": 1, "speech_content": "Mr President, thank you.", "speaker_name": "Silva Maria"}],
    )
    output = tmp_path / "speeches.csv"

    result = runner.invoke(
        app, ["export", "-c", str(config_file), "--output", str(output), "--fields", "date,speaker_name"]
    )

    assert result.exit_code == 0, result.output
    assert output.read_text(encoding="utf-8-sig").splitlines() == ["date,speaker_name", "2024-01-17,Silva Maria"]


def test_export_rejects_unknown_fields_and_formats(config_file, config):
    assert runner.invoke(app, ["export", "-c", str(config_file), "--fields", "id,bogus"]).exit_code == 1
    assert runner.invoke(app, ["export", "-c", str(config_file), "--format", "xml"]).exit_code == 1
    assert not (config.export.output_dir / "speeches.csv").exists()


def test_info():
    result = runner.invoke(app, ["info"])

    assert result.exit_code == 0
    assert "analytics_cache" in result.output
