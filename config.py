import logging
import os
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from models import Policy

VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
DEFAULT_ACTION = "homepage"
DEFAULT_MIN_SCORE = 0.5
DEFAULT_TIMEOUT = 8.0


class ConfigurationError(RuntimeError):
    pass


class Settings(BaseModel):
    secret_key: str = ""
    site_key: str = ""
    action: str = DEFAULT_ACTION
    min_score: float = Field(default=DEFAULT_MIN_SCORE, ge=0.0, le=1.0)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    verify_url: str = VERIFY_URL
    allowed_origins: List[str] = ["*"]
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level


def _origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings(require_site_key: bool = False, env_file: Optional[str] = None) -> Settings:
    """
    Read settings from the environment (and a .env file if present).
    Raises ConfigurationError when a required key is missing or a value
    does not parse, so a misconfigured app never starts serving.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    try:
        settings = Settings(
            secret_key=os.getenv("RECAPTCHA_SECRET", ""),
            site_key=os.getenv("RECAPTCHA_SITE_KEY", ""),
            action=os.getenv("RECAPTCHA_ACTION", DEFAULT_ACTION),
            min_score=os.getenv("RECAPTCHA_MIN_SCORE", str(DEFAULT_MIN_SCORE)),
            timeout=os.getenv("RECAPTCHA_TIMEOUT", str(DEFAULT_TIMEOUT)),
            verify_url=os.getenv("RECAPTCHA_VERIFY_URL", VERIFY_URL),
            allowed_origins=_origins(os.getenv("ALLOWED_ORIGINS", "*")),
            host=os.getenv("HOST", "127.0.0.1"),
            port=os.getenv("PORT", "8000"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid reCAPTCHA configuration: {e}") from e
    check_settings(settings, require_site_key=require_site_key)
    return settings


def check_settings(settings: Settings, require_site_key: bool = False) -> None:
    if not settings.secret_key:
        raise ConfigurationError("Google reCAPTCHA secret key must be specified!")
    if require_site_key and not settings.site_key:
        raise ConfigurationError("Google reCAPTCHA site key must be specified!")


def build_policy(settings: Settings, hostname: str, action: Optional[str] = None,
                 min_score: Optional[float] = None) -> Policy:
    return {
        "expected_action": action or settings.action,
        "min_score": settings.min_score if min_score is None else min_score,
        "expected_hostname": hostname,
    }
