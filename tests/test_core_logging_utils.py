import json
import logging

from backup.logs import BackupLogger
from core.logging_utils import (
    JsonLogFormatter,
    configure_console_logging,
    is_secret_key,
    redact_secret,
)


def _record(**extra):
    record = logging.LogRecord("dbkeeper.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_redact_secret_keeps_nothing():
    assert redact_secret("correct-horse-battery") == "***"
    assert redact_secret("pw") == "***"
    assert redact_secret("") == ""
    assert redact_secret(None) == ""


def test_is_secret_key():
    assert is_secret_key("DBPassword")
    assert is_secret_key("client_secret")
    assert not is_secret_key("path")


def test_formatter_adds_context_and_redacts_secret_extras():
    formatter = JsonLogFormatter({"db": "media"})

    payload = json.loads(formatter.format(_record(password="s3cret-value", table="music")))

    assert payload["message"] == "hello world"
    assert payload["db"] == "media"
    assert "host" in payload and "pid" in payload
    assert payload["password"] == "***"
    assert payload["table"] == "music"


def test_backup_log_masks_whole_password(tmp_path):
    logger = BackupLogger(tmp_path)

    logger.info("conf_written", DBPassword="s3cret-value")

    entry = json.loads(logger.path.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["DBPassword"] == "***"
    assert "s3c" not in logger.path.read_text(encoding="utf-8")


def test_console_logging_attaches_one_handler():
    name = "dbkeeper.test_console"
    configure_console_logging(name)
    configure_console_logging(name, level=logging.DEBUG)

    logger = logging.getLogger(name)
    consoles = [handler for handler in logger.handlers if getattr(handler, "_dbkeeper_console", False)]
    assert len(consoles) == 1
    assert logger.level == logging.DEBUG
