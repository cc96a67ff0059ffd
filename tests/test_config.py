import pytest
from pydantic import ValidationError

from mmt_forms.config import AppConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("MMT_STORAGE_BACKEND", raising=False)
    config = AppConfig(_env_file=None)
    assert config.storage_backend == "json"
    assert config.signature_location == "Porrentruy"
    assert config.flatten_forms is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MMT_STORAGE_BACKEND", "http")
    monkeypatch.setenv("MMT_STORAGE_URL", "https://example.org/mmt_db.json")
    monkeypatch.setenv("mmt_flatten_forms", "false")
    config = AppConfig(_env_file=None)
    assert config.storage_backend == "http"
    assert config.storage_url == "https://example.org/mmt_db.json"
    assert config.flatten_forms is False


def test_unknown_backend_rejected(monkeypatch):
    monkeypatch.setenv("MMT_STORAGE_BACKEND", "firebase")
    with pytest.raises(ValidationError):
        AppConfig(_env_file=None)
