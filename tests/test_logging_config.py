"""Tests for the centralized logging setup and secret masking."""

import logging
import logging.handlers

import pytest

from utils import logging_config
from utils.logging_config import SecretMaskingFilter, get_logger, setup_logging


def make_record(msg, *args):
    return logging.LogRecord("disputeportals.test", logging.INFO, __file__, 1, msg, args, None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestSecretMaskingFilter:
    def test_mapping_args_are_masked(self):
        record = make_record("config %(api_key)s for %(merchant_id)s",
                             {"api_key": "vk_live_1", "merchant_id": "M-1"})

        assert SecretMaskingFilter().filter(record) is True
        assert record.getMessage() == "config ***REDACTED*** for M-1"

    def test_positional_dict_args_are_masked(self):
        record = make_record("payload %s from %s", {"webhookSecret": "whsec", "id": 7}, "VERIFI")

        SecretMaskingFilter().filter(record)

        assert record.args[0] == {"webhookSecret": "***REDACTED***", "id": 7}
        assert record.args[1] == "VERIFI"

    def test_plain_messages_untouched(self):
        record = make_record("✅ [ETHOCA] Alert accepted")

        SecretMaskingFilter().filter(record)

        assert record.getMessage() == "✅ [ETHOCA] Alert accepted"


class TestSetupLogging:
    def test_console_fallback_when_outputs_disabled(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("LOG_TO_FILE", "false")
        monkeypatch.setenv("LOG_TO_CONSOLE", "false")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        logger = setup_logging()

        root = logging.getLogger()
        assert logger.name == "disputeportals"
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert type(root.handlers[0]) is logging.StreamHandler
        assert any(isinstance(f, SecretMaskingFilter) for f in root.handlers[0].filters)

    def test_rotating_file_handler(self, monkeypatch, tmp_path, restore_root_logger):
        log_file = tmp_path / "nested" / "portals.log"
        monkeypatch.setenv("LOG_TO_FILE", "true")
        monkeypatch.setenv("LOG_TO_CONSOLE", "false")
        monkeypatch.setenv("LOG_FILE_PATH", str(log_file))
        monkeypatch.setenv("LOG_FILE_BACKUP_COUNT", "2")

        setup_logging()

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.backupCount == 2
        assert log_file.parent.is_dir()

    def test_library_loggers_quietened(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("LOG_TO_FILE", "false")
        monkeypatch.setenv("LOG_LIBRARY_LEVEL", "error")

        setup_logging()

        assert logging.getLogger("urllib3").level == logging.ERROR
        assert logging.getLogger("botocore").level == logging.ERROR


def test_get_logger_namespace():
    assert get_logger("adapters.verifi").name == "disputeportals.adapters.verifi"


def test_console_print_levels(capsys):
    logging_config.console_print("ready", "success")
    logging_config.console_print("hello", "debug")

    assert capsys.readouterr().out.splitlines() == ["SUCCESS: ready", "INFO: hello"]
