import logging
import os
import sys

LEVEL_ENV = "IMAGE_TRANSCODER_LOG_LEVEL"
CATS_ENV = "IMAGE_TRANSCODER_LOG_CATS"

_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
_DATEFMT = "%H:%M:%S"


class _CategoryFilter(logging.Filter):
    """Pass records whose last logger-name component is an allowed category."""

    def __init__(self, allowed: set[str]):
        super().__init__()
        self.allowed = allowed

    def filter(self, record: logging.LogRecord) -> bool:
        # record.name like: image_transcoder.engine, image_transcoder.external
        return (record.name or "").rsplit(".", 1)[-1] in self.allowed


def _resolve_level(default: int) -> int:
    env_level = (os.getenv(LEVEL_ENV) or "").strip().lower()
    return _LEVEL_MAP.get(env_level, default) if env_level else default


def _stderr_handler(logger: logging.Logger) -> logging.StreamHandler:
    for h in logger.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            return h
    handler = logging.StreamHandler(stream=sys.stderr)
    logger.addHandler(handler)
    return handler


def setup_logger(level: int = logging.WARNING, name: str = "image_transcoder") -> logging.Logger:
    """Create or update the project logger.

    - Re-reads IMAGE_TRANSCODER_LOG_LEVEL/IMAGE_TRANSCODER_LOG_CATS on every
      call, so options parsed after import still take effect.
    - Keeps exactly one stderr StreamHandler and refreshes its formatter and
      category filter. The engine is a library and never writes log files.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    handler = _stderr_handler(logger)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handler.filters.clear()
    cats = {c.strip() for c in (os.getenv(CATS_ENV) or "").split(",") if c.strip()}
    if cats:
        handler.addFilter(_CategoryFilter(cats))

    # Do not propagate beyond the project logger
    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = setup_logger()
    return base if not name else base.getChild(name)
