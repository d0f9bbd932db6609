# untis_api/core/config.py
import hashlib
import json
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_DEBUG_DIR, DEFAULT_TIMEOUT
from .errors import ConfigurationError

log = logging.getLogger(__name__)

# Fields that identify an upstream login; the resource id is not part of it
FINGERPRINT_FIELDS = ("school", "username", "password", "server")

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class UntisConfig(BaseModel):
    """Credentials and addressing for one WebUntis account."""

    school: str
    username: str
    password: str = Field(..., repr=False)
    server: str
    resource_id: Optional[str] = Field(None, alias="resourceId")

    @field_validator("school", "username", "server")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("resource_id", mode="before")
    @classmethod
    def normalize_resource_id(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    class Config:
        populate_by_name = True
        frozen = True

    def fingerprint(self) -> str:
        """Stable hash of the auth-relevant fields, used as the session cache key."""
        payload = json.dumps(
            {name: getattr(self, name) for name in FINGERPRINT_FIELDS},
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AppSettings(BaseModel):
    """Process-level settings for the HTTP service and transport."""

    transport: str = "auto"
    timeout: float = DEFAULT_TIMEOUT
    save_debug_payloads: bool = False
    debug_dir: str = DEFAULT_DEBUG_DIR
    log_level: str = "INFO"

    @field_validator("transport")
    @classmethod
    def validate_transport(cls, v: str) -> str:
        v = v.lower()
        if v not in ("auto", "httpx", "fetch"):
            raise ValueError("transport must be one of 'auto', 'httpx', 'fetch'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return v

    class Config:
        frozen = True


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config(load_env_file: bool = True) -> UntisConfig:
    """
    Builds an UntisConfig from UNTIS_* environment variables (and a .env file).

    Raises:
        ConfigurationError: If a required variable is missing or invalid.
    """
    if load_env_file:
        load_dotenv()

    required = {
        "school": "UNTIS_SCHOOL",
        "username": "UNTIS_USERNAME",
        "password": "UNTIS_PASSWORD",
        "server": "UNTIS_SERVER",
    }
    values = {}
    missing = []
    for field_name, env_name in required.items():
        value = os.getenv(env_name)
        if not value:
            missing.append(env_name)
        values[field_name] = value
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    values["resource_id"] = os.getenv("UNTIS_RESOURCE_ID")
    try:
        config = UntisConfig(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid WebUntis configuration: {e}") from e

    log.info(f"Loaded WebUntis configuration for school '{config.school}' on {config.server}")
    return config


def load_settings(load_env_file: bool = True) -> AppSettings:
    """Builds AppSettings from the environment; every value has a default."""
    if load_env_file:
        load_dotenv()
    try:
        return AppSettings(
            transport=os.getenv("UNTIS_TRANSPORT", "auto"),
            timeout=float(os.getenv("UNTIS_TIMEOUT", DEFAULT_TIMEOUT)),
            save_debug_payloads=_env_flag("UNTIS_SAVE_DEBUG_PAYLOADS"),
            debug_dir=os.getenv("UNTIS_DEBUG_DIR", DEFAULT_DEBUG_DIR),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid application settings: {e}") from e
