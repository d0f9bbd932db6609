import pytest
from pydantic import ValidationError

from untis_api.core.config import (AppSettings, UntisConfig, load_config,
                                   load_settings)
from untis_api.core.errors import ConfigurationError

ENV_VARS = (
    "UNTIS_SCHOOL", "UNTIS_USERNAME", "UNTIS_PASSWORD", "UNTIS_SERVER", "UNTIS_RESOURCE_ID",
    "UNTIS_TRANSPORT", "UNTIS_TIMEOUT", "UNTIS_SAVE_DEBUG_PAYLOADS", "UNTIS_DEBUG_DIR", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_load_config_from_environment(clean_env):
    clean_env.setenv("UNTIS_SCHOOL", "demo-school")
    clean_env.setenv("UNTIS_USERNAME", "student")
    clean_env.setenv("UNTIS_PASSWORD", "secret")
    clean_env.setenv("UNTIS_SERVER", " demo.webuntis.com ")
    clean_env.setenv("UNTIS_RESOURCE_ID", "1234")

    config = load_config(load_env_file=False)

    assert config.school == "demo-school"
    assert config.server == "demo.webuntis.com"
    assert config.resource_id == "1234"


def test_load_config_lists_missing_variables(clean_env):
    clean_env.setenv("UNTIS_SCHOOL", "demo-school")

    with pytest.raises(ConfigurationError) as excinfo:
        load_config(load_env_file=False)

    message = str(excinfo.value)
    assert "UNTIS_USERNAME" in message
    assert "UNTIS_PASSWORD" in message
    assert "UNTIS_SERVER" in message
    assert "UNTIS_SCHOOL" not in message


def test_load_config_rejects_blank_values(clean_env):
    for name, value in (("UNTIS_SCHOOL", "   "), ("UNTIS_USERNAME", "u"), ("UNTIS_PASSWORD", "p"), ("UNTIS_SERVER", "s")):
        clean_env.setenv(name, value)

    with pytest.raises(ConfigurationError, match="Invalid WebUntis configuration"):
        load_config(load_env_file=False)


def test_password_is_hidden_from_repr(untis_config):
    assert "secret" not in repr(untis_config)


def test_config_is_immutable(untis_config):
    with pytest.raises(ValidationError):
        untis_config.server = "other.webuntis.com"


def test_config_accepts_camel_case_resource_id():
    config = UntisConfig.model_validate(
        {"school": "s", "username": "u", "password": "p", "server": "h", "resourceId": 55}
    )
    assert config.resource_id == "55"


def test_fingerprint_tracks_auth_fields_only(untis_config):
    same = untis_config.model_copy(update={"resource_id": "other"})
    new_password = untis_config.model_copy(update={"password": "changed"})
    new_server = untis_config.model_copy(update={"server": "other.webuntis.com"})

    assert untis_config.fingerprint() == same.fingerprint()
    assert untis_config.fingerprint() != new_password.fingerprint()
    assert untis_config.fingerprint() != new_server.fingerprint()
    assert len(untis_config.fingerprint()) == 64


def test_load_settings_defaults(clean_env):
    settings = load_settings(load_env_file=False)

    assert settings == AppSettings()
    assert settings.transport == "auto"
    assert settings.save_debug_payloads is False


def test_load_settings_from_environment(clean_env):
    clean_env.setenv("UNTIS_TRANSPORT", "HTTPX")
    clean_env.setenv("UNTIS_TIMEOUT", "12.5")
    clean_env.setenv("UNTIS_SAVE_DEBUG_PAYLOADS", "yes")
    clean_env.setenv("UNTIS_DEBUG_DIR", "/tmp/untis")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = load_settings(load_env_file=False)

    assert settings.transport == "httpx"
    assert settings.timeout == 12.5
    assert settings.save_debug_payloads is True
    assert settings.debug_dir == "/tmp/untis"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name, value", [("UNTIS_TRANSPORT", "sockets"), ("UNTIS_TIMEOUT", "soon"), ("LOG_LEVEL", "VERBOSE")]
)
def test_load_settings_rejects_invalid_values(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ConfigurationError, match="Invalid application settings"):
        load_settings(load_env_file=False)
