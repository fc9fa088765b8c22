import sys

import pytest
import structlog


@pytest.fixture(autouse=True)
def _logs_to_stderr():
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.JSONRenderer()],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
    yield
    structlog.reset_defaults()
