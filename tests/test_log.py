"""
Tests for logging setup.
"""

import structlog

from agent_orchestrator.log import configure_logging


def test_configure_logging():
    try:
        configure_logging("debug", colors=False)
        config = structlog.get_config()

        assert config["wrapper_class"] is structlog.stdlib.BoundLogger
        assert isinstance(config["processors"][-1], structlog.dev.ConsoleRenderer)
    finally:
        structlog.reset_defaults()
