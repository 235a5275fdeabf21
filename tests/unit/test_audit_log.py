"""Tests for the per-run log file and secret redaction."""
import re

from loguru import logger

from dockship.audit_log import redact, register_secret, setup_logging, shutdown_logging


class TestSetupLogging:
    def test_log_file_created_immediately(self, tmp_path):
        log_path = setup_logging(tmp_path / "logs")
        assert log_path.exists()
        assert re.fullmatch(r"deploy_\d{8}_\d{6}\.log", log_path.name)

    def test_lines_are_timestamped(self, tmp_path):
        log_path = setup_logging(tmp_path)
        logger.info("Repository ready: widget")
        shutdown_logging()

        line = log_path.read_text().strip()
        assert re.fullmatch(r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] Repository ready: widget", line)

    def test_debug_always_goes_to_file(self, tmp_path):
        log_path = setup_logging(tmp_path, verbose=False)
        logger.debug("remote output")
        shutdown_logging()
        assert "remote output" in log_path.read_text()


class TestRedaction:
    def test_registered_secret_masked_in_file(self, tmp_path):
        log_path = setup_logging(tmp_path)
        register_secret("ghp_topsecret")
        logger.error("clone of https://ghp_topsecret@github.com/acme/widget.git failed")
        shutdown_logging()

        text = log_path.read_text()
        assert "ghp_topsecret" not in text
        assert "https://****@github.com" in text

    def test_redact_helper(self):
        register_secret("abc")
        register_secret("abcdef")
        assert redact("token abcdef and abc") == "token **** and ****"

    def test_empty_secret_ignored(self):
        register_secret("")
        assert redact("nothing to hide") == "nothing to hide"
