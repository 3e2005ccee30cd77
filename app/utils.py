"""
Shared helpers.
"""
import logging

from app.core import config


_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    Usage:
        from app.utils import get_logger

        log = get_logger(__name__)
        log.info("Team %s created", team.id)
    """
    _configure_root()
    return logging.getLogger(name)
