"""
Pytest configuration for the auto-updater tests.
"""

import logging

import pytest

from autoupdater.logging import ROOT_LOGGER_NAME


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


@pytest.fixture(autouse=True)
def isolated_logging():
    """Let records reach caplog and drop handlers installed by setup_logging."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.propagate = True
    yield
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
