"""
Keystone — Test Configuration (conftest.py)
=============================================

What:  Shared pytest fixtures for the test suite.
How:   Environment variables are pinned before any keystone import so the
       module-level application in keystone.main builds from test values.

Fixtures:
    clean_env:       monkeypatch with every configuration variable removed
    make_config:     build a ConfigRegistry from keyword environment values
    make_client:     HTTPX AsyncClient bound to a fresh application
    log_dir:         temporary directory for rotating log files
"""

import os
import tempfile
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

os.environ["TEST"] = "true"
os.environ["APP_ENV"] = "test"
os.environ["LOGGER_DIR"] = tempfile.mkdtemp(prefix="keystone_test_logs_")

CONFIG_VARS = (
    "APP_NAME",
    "APP_PORT",
    "APP_BASE_URL",
    "GLOBAL_PREFIX",
    "APP_LOCALE",
    "LOGGER_LEVEL",
    "LOGGER_MAX_FILES",
    "LOGGER_DIR",
    "SWAGGER_ENABLE",
    "SWAGGER_PATH",
    "SWAGGER_SERVER_URL",
    "APP_ENV",
    "TEST",
    "APP_INSTANCE",
    "IS_PRIMARY_PROCESS",
)


@pytest.fixture
def clean_env(monkeypatch):
    """monkeypatch with all configuration variables unset."""
    for key in CONFIG_VARS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def make_config(clean_env):
    """
    Build a registry from the given variables, ignoring any .env file.

    Usage:
        config = make_config(APP_PORT="8080", SWAGGER_ENABLE="true")
    """
    from keystone.config import load_config

    def factory(**env):
        for key, value in env.items():
            clean_env.setenv(key, value)
        return load_config(env_files=())

    return factory


@pytest.fixture
def make_client(make_config):
    """
    Async HTTP client factory for a freshly created application.

    Usage:
        async with make_client(SWAGGER_ENABLE="true") as client:
            response = await client.get("/api-docs-json")
    """
    from keystone.main import create_app

    @asynccontextmanager
    async def factory(**env):
        app = create_app(make_config(**env))
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            client.app = app
            yield client

    return factory


@pytest.fixture
def log_dir(tmp_path):
    directory = tmp_path / "logs"
    directory.mkdir()
    return directory
