import logging
from logging.handlers import RotatingFileHandler

import pytest

from backend.pestalert.logging_setup import LOG_FILE, setup_logger


@pytest.fixture
def fresh_name(request):
    name = f"pestalert-test.{request.node.name}"
    yield name
    log = logging.getLogger(name)
    for handler in list(log.handlers):
        handler.close()
        log.removeHandler(handler)


class TestSetupLogger:
    def test_writes_rotating_file(self, tmp_path, fresh_name):
        log = setup_logger(fresh_name, log_dir=str(tmp_path / "logs"), level="debug")
        assert log.level == logging.DEBUG
        file_handlers = [h for h in log.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        log.info("sweep done")
        file_handlers[0].flush()
        content = (tmp_path / "logs" / LOG_FILE).read_text(encoding="utf-8")
        assert "[INFO]" in content
        assert f"{fresh_name} - sweep done" in content

    def test_second_call_adds_no_handlers(self, tmp_path, fresh_name):
        first = setup_logger(fresh_name, log_dir=str(tmp_path), level="INFO")
        count = len(first.handlers)
        second = setup_logger(fresh_name, log_dir=str(tmp_path), level="WARNING")
        assert second is first
        assert len(second.handlers) == count
        assert second.level == logging.WARNING

    def test_empty_log_dir_disables_file(self, fresh_name):
        log = setup_logger(fresh_name, log_dir="", level="INFO")
        assert not any(isinstance(h, RotatingFileHandler) for h in log.handlers)
        assert len(log.handlers) == 1
