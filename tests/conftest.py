"""Shared fixtures for coman scenario tests."""

import json

import pytest
from click.testing import CliRunner

from coman import core
from coman.executor import RequestResult
from coman.manager import CollectionManager
from coman.store import CollectionStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def global_coman_dir(tmp_path, monkeypatch):
    """Override the global ~/.coman directory and run inside tmp_path."""
    fake_global = tmp_path / "fake_home" / ".coman"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.chdir(tmp_path)
    return fake_global


@pytest.fixture(autouse=True)
def store_path(tmp_path, monkeypatch):
    """Point COMAN_JSON at a collections file inside tmp_path."""
    path = tmp_path / "coman.json"
    monkeypatch.setenv(core.STORE_ENV_VAR, str(path))
    return path


@pytest.fixture
def manager(store_path):
    return CollectionManager(CollectionStore(store_path))


def write_store(path, collections):
    """Write raw collection records the way the store lays them out."""
    path.write_text(json.dumps(collections, indent=2))


def make_request_result(
    status_code=200,
    body="",
    headers=None,
    elapsed_ms=42.0,
    error=None,
    url="",
):
    """Factory for mock RequestResult objects."""
    r = RequestResult()
    r.status_code = status_code
    r.headers = headers or {}
    r.body = json.dumps(body) if isinstance(body, dict | list) else str(body or "")
    r.elapsed_ms = elapsed_ms
    r.error = error
    r.url = url
    return r
