"""Pytest configuration for unit testing"""
# Standard
import logging
# Installed
import pytest
# Local
from cdk_aws_backup.helpers import get_backup_client

pytest_plugins = [
    "tests.plugins.common_fixtures",
    "tests.plugins.aws_moto_fixtures",
    "tests.plugins.data_path_fixtures",
]


@pytest.fixture
def cleanup_loggers():
    """Ensures that root logging handlers are removed after a test"""
    yield
    root = logging.getLogger()
    root.handlers = []


@pytest.fixture(autouse=True)
def _clear_backup_client_cache():
    """The backup client is cached per process. Clear it so each test sees its own environment and mocks."""
    get_backup_client.cache_clear()
    yield
    get_backup_client.cache_clear()
