# tests/test_logging_mods.py
import importlib
import logging
import logging as std_logging

from config import settings

import utils.logging as logging_utils


def test_setup_logging_file_error(monkeypatch, caplog):
    caplog.set_level(logging.ERROR)
    root_logger = std_logging.getLogger()

    class Handlers(list):
        def clear(self):
            pass

    root_logger.handlers = Handlers([caplog.handler])

    logging_utils.structlog.configure(
        logger_factory=logging_utils.structlog.stdlib.LoggerFactory()
    )
    importlib.reload(logging_utils)

    def raise_handler(*_a, **_k):
        raise OSError("fail")

    monkeypatch.setattr(std_logging.handlers, "RotatingFileHandler", raise_handler)
    monkeypatch.setattr(settings, "LOG_FILE", "temp.log")

    logging_utils.setup_logging()

    assert any(
        "Error setting up file logger" in record.message for record in caplog.records
    )


def test_setup_logging_quiets_http_loggers(monkeypatch):
    monkeypatch.setattr(settings, "LOG_FILE", None)
    monkeypatch.setattr(settings, "ENABLE_RICH_PROGRESS", False)
    logging_utils.setup_logging("DEBUG")
    assert std_logging.getLogger().level == logging.DEBUG
    assert std_logging.getLogger("httpx").level == logging.WARNING
    assert any(
        isinstance(h, std_logging.StreamHandler) for h in std_logging.getLogger().handlers
    )
