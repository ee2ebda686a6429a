import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import load_dotenv

from vidsum.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPT_API_BASE_URL = "https://api.supadata.ai/v1"
DEFAULT_LOCAL_CONFIG = "config.local.json"


@dataclass(frozen=True)
class Settings:
    transcript_api_key: str | None = None
    transcript_api_base_url: str = DEFAULT_TRANSCRIPT_API_BASE_URL
    transcript_lang: str = "en"

    llm_provider: str = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    openai_api_key: str | None = None
    openai_model: str | None = None
    openai_base_url: str | None = None

    basic_auth_user: str | None = None
    basic_auth_pass: str | None = None

    max_transcript_chars: int = 180_000
    job_poll_interval_seconds: float = 1.0
    job_max_polls: int = 90
    transcript_retry_attempts: int = 3
    transcript_retry_delay_seconds: float = 2.0
    http_timeout_seconds: float = 30.0

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000

    @property
    def basic_auth_enabled(self) -> bool:
        return bool(self.basic_auth_user and self.basic_auth_pass)


def read_local_config(path: str) -> dict:
    """Reads the optional JSON file of fallback settings; a broken file is ignored."""
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable local config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring local config {path}: expected a JSON object")
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None}


def _number(raw: str | None, default, cast, name: str):
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}")


def settings_from_mapping(values: Mapping[str, str]) -> Settings:
    def get(name, default=None):
        value = values.get(name)
        return value if value else default

    defaults = Settings()
    return Settings(
        transcript_api_key=get("TRANSCRIPT_API_KEY") or get("SUPADATA_API_KEY"),
        transcript_api_base_url=get(
            "TRANSCRIPT_API_BASE_URL", defaults.transcript_api_base_url
        ).rstrip("/"),
        transcript_lang=get("TRANSCRIPT_LANG", defaults.transcript_lang),
        llm_provider=get("LLM_PROVIDER", defaults.llm_provider).lower(),
        gemini_api_key=get("GEMINI_API_KEY"),
        gemini_model=get("GEMINI_MODEL", defaults.gemini_model),
        openai_api_key=get("OPENAI_API_KEY"),
        openai_model=get("OPENAI_MODEL"),
        openai_base_url=get("OPENAI_BASE_URL"),
        basic_auth_user=get("BASIC_AUTH_USER"),
        basic_auth_pass=get("BASIC_AUTH_PASS"),
        max_transcript_chars=_number(
            get("MAX_TRANSCRIPT_CHARS"),
            defaults.max_transcript_chars,
            int,
            "MAX_TRANSCRIPT_CHARS",
        ),
        job_poll_interval_seconds=_number(
            get("JOB_POLL_INTERVAL_SECONDS"),
            defaults.job_poll_interval_seconds,
            float,
            "JOB_POLL_INTERVAL_SECONDS",
        ),
        job_max_polls=_number(
            get("JOB_MAX_POLLS"), defaults.job_max_polls, int, "JOB_MAX_POLLS"
        ),
        transcript_retry_attempts=_number(
            get("TRANSCRIPT_RETRY_ATTEMPTS"),
            defaults.transcript_retry_attempts,
            int,
            "TRANSCRIPT_RETRY_ATTEMPTS",
        ),
        transcript_retry_delay_seconds=_number(
            get("TRANSCRIPT_RETRY_DELAY_SECONDS"),
            defaults.transcript_retry_delay_seconds,
            float,
            "TRANSCRIPT_RETRY_DELAY_SECONDS",
        ),
        http_timeout_seconds=_number(
            get("HTTP_TIMEOUT_SECONDS"),
            defaults.http_timeout_seconds,
            float,
            "HTTP_TIMEOUT_SECONDS",
        ),
        log_level=get("LOG_LEVEL", defaults.log_level).upper(),
        host=get("HOST", defaults.host),
        port=_number(get("PORT"), defaults.port, int, "PORT"),
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Builds settings from the environment, falling back to the local JSON config.

    Environment variables always win over values from the local config file.
    When no explicit mapping is given, a ``.env`` file is loaded first.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    local_path = environ.get("VIDSUM_LOCAL_CONFIG", DEFAULT_LOCAL_CONFIG)
    merged = dict(read_local_config(local_path))
    merged.update({k: v for k, v in environ.items() if v})
    return settings_from_mapping(merged)
