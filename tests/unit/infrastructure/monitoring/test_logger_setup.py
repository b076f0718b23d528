import logging

import pytest

from slotgate.infrastructure.monitoring.logger_setup import resolve_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize("raw, expected", [
    (None, logging.INFO),
    ("debug", logging.DEBUG),
    ("WARNING", logging.WARNING),
    (logging.ERROR, logging.ERROR),
    ("chatty", logging.INFO),
])
def test_resolve_level(raw, expected):
    assert resolve_level(raw) == expected


def test_setup_logging_writes_to_file_and_quiets_http_libraries(restore_root_logger, tmp_path):
    log_file = tmp_path / "slotgate.log"

    setup_logging(log_level="debug", log_format="%(levelname)s %(message)s", log_file=str(log_file))
    logging.getLogger("slotgate.test").debug("scheduled call id=1")

    assert restore_root_logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert "DEBUG scheduled call id=1" in log_file.read_text(encoding="utf-8")
