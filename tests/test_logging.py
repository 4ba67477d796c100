import logging

from eurowatch.utils.logging import get_logger, setup_logging


def test_log_file_receives_stage_records(tmp_path):
    path = tmp_path / "logs" / "run.log"

    setup_logging("INFO", path)
    get_logger("fetch").info("Stored sitting 2024-01-17")
    get_logger("fetch").debug("not at this level")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = path.read_text(encoding="utf-8")
    assert "INFO     eurowatch.fetch: Stored sitting 2024-01-17" in text
    assert "not at this level" not in text

    setup_logging()


def test_noisy_libraries_are_quieted():
    setup_logging("DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert get_logger().level == logging.DEBUG
    assert get_logger("classify").name == "eurowatch.classify"

    setup_logging()
