import os

import pytest

from chefherd.config import Settings
from chefherd.exceptions import ValidationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CHEFHERD_"):
            monkeypatch.delenv(name)


def test_defaults():
    settings = Settings.from_env()
    assert settings == Settings()
    assert settings.client_name == "chefherd"
    assert settings.timeout == 30.0
    assert not settings.testing


def test_from_env(monkeypatch):
    monkeypatch.setenv("CHEFHERD_SERVER_URL", "https://chef.example.com/organizations/ops")
    monkeypatch.setenv("CHEFHERD_CLIENT_NAME", "deployer")
    monkeypatch.setenv("CHEFHERD_TOKEN", "secret")
    monkeypatch.setenv("CHEFHERD_TIMEOUT", "5")
    monkeypatch.setenv("CHEFHERD_ENV", "test")
    monkeypatch.setenv("CHEFHERD_ATOMIC_CREATE", "yes")
    monkeypatch.setenv("UNRELATED", "ignored")

    settings = Settings.from_env()

    assert settings.server_url == "https://chef.example.com/organizations/ops"
    assert settings.client_name == "deployer"
    assert settings.token == "secret"
    assert settings.timeout == 5.0
    assert settings.testing
    assert settings.atomic_create


def test_keyword_arguments_override_env(monkeypatch):
    monkeypatch.setenv("CHEFHERD_CLIENT_NAME", "deployer")
    assert Settings(client_name="alice").client_name == "alice"


@pytest.mark.parametrize("name, value", [
    ("CHEFHERD_TIMEOUT", "soon"),
    ("CHEFHERD_ATOMIC_CREATE", "maybe"),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError) as excinfo:
        Settings.from_env()
    assert name.lower()[len("chefherd_"):] in str(excinfo.value)
