"""Entry point wiring: logging setup order and config loading."""
from __future__ import annotations

import logging
import sys

import pytest

from agentpty import cli


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def _run_main(monkeypatch, argv):
    async def fake_doctor(manager):
        return 0

    monkeypatch.setattr(cli, "_doctor", fake_doctor)
    monkeypatch.setattr(sys, "argv", ["agentpty", *argv])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


def test_config_loading_is_logged_to_the_log_file(tmp_path, monkeypatch, root_logger):
    monkeypatch.setenv("AGENTPTY_LOG_LEVEL", "INFO")
    config = tmp_path / "agentpty.yaml"
    config.write_text("manager:\n  log_level: DEBUG\n")
    log_file = tmp_path / "logs" / "agentpty.log"

    code = _run_main(
        monkeypatch, ["--log-file", str(log_file), "-c", str(config), "doctor"],
    )

    assert code == 0
    for handler in root_logger.handlers:
        handler.flush()
    text = log_file.read_text()
    assert "load_yaml_config: loading config from" in text
    assert "Parsed YAML config agentpty.yaml" in text
    # Re-levelled from the YAML value after loading
    assert root_logger.level == logging.DEBUG


def test_stderr_logging_stays_at_warning(monkeypatch, root_logger):
    monkeypatch.setenv("AGENTPTY_LOG_LEVEL", "DEBUG")

    assert _run_main(monkeypatch, ["doctor"]) == 0
    assert root_logger.level == logging.WARNING


def test_bad_config_exits_with_usage_error(tmp_path, monkeypatch, root_logger, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("modes:\n  vim: {}\n")

    assert _run_main(monkeypatch, ["-c", str(config), "doctor"]) == 2
    assert "unknown mode" in capsys.readouterr().err
