"""Shared fixtures."""

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def xdg_dirs(tmp_path, monkeypatch):
    """Point config and data directories at a temporary location."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def db_path(tmp_path):
    from listenlens.core.database import init_database

    path = tmp_path / "listenlens.db"
    init_database(path)
    return path
