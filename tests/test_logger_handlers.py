import logging
import sys

from image_transcoder import logger as it_logger


def test_setup_logger_idempotent_handlers():
    """Calling setup_logger() repeatedly should leave exactly one stderr StreamHandler."""
    base = it_logger.setup_logger(level=logging.DEBUG)
    _ = it_logger.setup_logger(level=logging.DEBUG)

    handlers = [
        h
        for h in base.handlers
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
    ]

    assert len(handlers) == 1
    assert base.propagate is False


def test_env_level_override(monkeypatch):
    monkeypatch.setenv("IMAGE_TRANSCODER_LOG_LEVEL", "debug")
    base = it_logger.setup_logger(level=logging.ERROR)
    assert base.level == logging.DEBUG
    monkeypatch.setenv("IMAGE_TRANSCODER_LOG_LEVEL", "nonsense")
    base = it_logger.setup_logger(level=logging.ERROR)
    assert base.level == logging.ERROR
    monkeypatch.delenv("IMAGE_TRANSCODER_LOG_LEVEL")
    it_logger.setup_logger()


def test_category_filter(monkeypatch):
    monkeypatch.setenv("IMAGE_TRANSCODER_LOG_CATS", "engine, external")
    base = it_logger.setup_logger()
    handler = next(h for h in base.handlers if getattr(h, "stream", None) is sys.stderr)

    def _record(name: str) -> logging.LogRecord:
        return logging.LogRecord(name, logging.WARNING, __file__, 1, "msg", None, None)

    assert handler.filter(_record("image_transcoder.engine"))
    assert handler.filter(_record("image_transcoder.external"))
    assert not handler.filter(_record("image_transcoder.decoder"))

    monkeypatch.delenv("IMAGE_TRANSCODER_LOG_CATS")
    base = it_logger.setup_logger()
    assert handler.filter(_record("image_transcoder.decoder"))


def test_get_logger_returns_child():
    child = it_logger.get_logger("candidates")
    assert child.name == "image_transcoder.candidates"
    assert it_logger.get_logger().name == "image_transcoder"
