import pytest

from switchyard.config.settings import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Keep host SWITCHYARD_* variables and the settings cache out of tests."""
    import os
    for key in list(os.environ):
        if key.startswith("SWITCHYARD_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)
