"""Logging configuration using loguru: colored console or structured JSON."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from omegaconf import DictConfig

SECURITY_LEVEL = "SECURITY"
SECURITY_LEVEL_NO = 35


def _register_security_level() -> None:
    """Add the ``SECURITY`` level (between WARNING and ERROR) once per process."""
    try:
        logger.level(SECURITY_LEVEL)
    except ValueError:
        logger.level(SECURITY_LEVEL, no=SECURITY_LEVEL_NO, color="<magenta><bold>", icon="!")


# Registered at import so tamper attempts can be logged before setup_logging runs.
_register_security_level()
logger.configure(extra={"correlation_id": "-"})


# ---------------------------------------------------------------------------
# Intercept stdlib logging → loguru
# ---------------------------------------------------------------------------

class _InterceptHandler(logging.Handler):
    """Route standard-library log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        # Find the caller frame so loguru reports the correct source location.
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


# ---------------------------------------------------------------------------
# Pretty (dev) format
# ---------------------------------------------------------------------------

_PRETTY_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<yellow>{extra[correlation_id]}</yellow> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(cfg: DictConfig) -> None:
    """Configure loguru based on the Hydra logging config section.

    Parameters
    ----------
    cfg:
        The ``logging`` sub-config with keys ``level``, ``colored``, ``format``.
        ``format`` is ``"pretty"`` (colored console) or ``"structured"``
        (JSON lines, one object per record, ``extra`` included).
    """
    logger.remove()
    _register_security_level()

    level: str = getattr(cfg, "level", "INFO").upper()
    use_json: bool = getattr(cfg, "format", "pretty") == "structured"
    colorize: bool = getattr(cfg, "colored", True)

    if use_json:
        logger.add(sys.stderr, level=level, serialize=True, colorize=False)
    else:
        logger.add(sys.stderr, level=level, format=_PRETTY_FORMAT, colorize=colorize)

    # Libraries using `logging` (uvicorn, urllib3) also go through loguru
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=level, json_mode=use_json)
