"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    # Set environment variable to ensure minimal logging during tests
    os.environ['HASHPOOL_LOG_LEVEL'] = 'WARNING'

    # Also configure root logger to be quiet
    logging.getLogger().setLevel(logging.WARNING)

    # Pool lifecycle and per-record hash failures are expected noise here
    for logger_name in ['hashpool.pool.worker_pool', 'hashpool.dedup.cluster']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
