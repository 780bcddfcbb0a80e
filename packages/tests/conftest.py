"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import Iterator

import pytest

# The chronoplay plugin is registered via a ``pytest11`` entry point
# for external consumers.  Our own suite disables it (``-p no:chronoplay``)
# and loads it here instead, so the import happens after ``pytest-cov``
# starts tracing.
pytest_plugins = ["chronoplay.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (replay flows end to end)"
    )


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level.

    Tests that call ``configure_logging()`` (directly or via the CLI)
    must not leak handlers into later tests.
    """
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers = original_handlers
    root.setLevel(original_level)
