"""
Runtime configuration.

Settings are read once from the environment (optionally seeded from a .env
file) and passed down explicitly to the services and the HTTP app.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_ANTHROPIC_MODEL = "claude-3-7-sonnet-20250219"
DEFAULT_ANTHROPIC_FAST_MODEL = "claude-3-haiku-20240307"
DEFAULT_GEMINI_TEXT_MODEL = "gemini-1.5-flash"


def _get(key: str, default: str = "") -> str:
    return (os.environ.get(key) or default).strip()


def _flag(key: str) -> bool:
    return _get(key).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    gemini_api_key: str = ""
    anthropic_api_key: str = ""

    supabase_url: str = ""
    supabase_service_key: str = ""

    sfmc_client_id: str = ""
    sfmc_client_secret: str = ""
    sfmc_account_id: str = ""
    sfmc_auth_url: str = ""

    litmus_api_key: str = ""
    email_on_acid_api_key: str = ""

    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_text_model: str = DEFAULT_GEMINI_TEXT_MODEL
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_fast_model: str = DEFAULT_ANTHROPIC_FAST_MODEL

    log_verbosity: int = 1
    log_json: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        level = _get("EMAILGEN_LOG_LEVEL", "info").lower()
        verbosity = {"warning": 0, "info": 1, "debug": 2}.get(level, 1)

        return cls(
            gemini_api_key=_get("GEMINI_API_KEY"),
            anthropic_api_key=_get("ANTHROPIC_API_KEY"),
            supabase_url=_get("SUPABASE_URL") or _get("NEXT_PUBLIC_SUPABASE_URL"),
            supabase_service_key=_get("SUPABASE_SERVICE_ROLE_KEY"),
            sfmc_client_id=_get("SFMC_CLIENT_ID"),
            sfmc_client_secret=_get("SFMC_CLIENT_SECRET"),
            sfmc_account_id=_get("SFMC_ACCOUNT_ID"),
            sfmc_auth_url=_get("SFMC_AUTH_URL"),
            litmus_api_key=_get("LITMUS_API_KEY"),
            email_on_acid_api_key=_get("EMAIL_ON_ACID_API_KEY"),
            gemini_model=_get("EMAILGEN_GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            anthropic_model=_get("EMAILGEN_ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
            log_verbosity=verbosity,
            log_json=_flag("EMAILGEN_LOG_JSON"),
        )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @property
    def sfmc_configured(self) -> bool:
        return all(
            (self.sfmc_client_id, self.sfmc_client_secret, self.sfmc_account_id, self.sfmc_auth_url)
        )
