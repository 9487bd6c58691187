"""Shared pytest configuration."""

import logging

import pytest


@pytest.fixture(autouse=True)
def reset_pytrim_logging():
    """Undo handlers installed by cli.configure_logging."""
    yield
    logger = logging.getLogger("pytrim")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.setLevel(logging.NOTSET)
