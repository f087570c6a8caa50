"""
Ranking Core Settings

Centralized tunables for the ranking core.
All values are loaded from environment variables, with defaults that
reproduce the stock behaviour (K=32, ratings start at 1200, pools of 20).
"""
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable, falling back on junk."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_optional_int_env(key: str) -> Optional[int]:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable, falling back on junk."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_str_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


class Settings:
    """
    Settings for the ranking core.

    To add a new setting:
    1. Add it here as a class attribute
    2. Load it from an environment variable
    3. Read it through the `settings` instance
    """

    # Storage
    DATABASE_URL: str = get_str_env('DATABASE_URL', 'sqlite+aiosqlite:///./curator.db')

    # Rating engine (unset K-factor means the engine's built-in constant)
    ELO_K_FACTOR: Optional[int] = get_optional_int_env('ELO_K_FACTOR')

    # Tournaments
    TOURNAMENT_POOL_SIZE: int = get_int_env('TOURNAMENT_POOL_SIZE', 20)
    DISCOVERY_ROUND_CHANCE: float = get_float_env('DISCOVERY_ROUND_CHANCE', 0.2)
    DESCRIPTION_MAX_LENGTH: int = get_int_env('DESCRIPTION_MAX_LENGTH', 300)
    TOURNAMENT_SESSION_TTL_SECONDS: int = get_int_env('TOURNAMENT_SESSION_TTL_SECONDS', 3600)

    # Discovery service
    DISCOVERY_ENABLED: bool = get_bool_env('DISCOVERY_ENABLED', True)
    DISCOVERY_BASE_URL: Optional[str] = get_str_env('DISCOVERY_BASE_URL')
    DISCOVERY_TOKEN_URL: Optional[str] = get_str_env('DISCOVERY_TOKEN_URL')
    DISCOVERY_CLIENT_ID: Optional[str] = get_str_env('DISCOVERY_CLIENT_ID')
    DISCOVERY_CLIENT_SECRET: Optional[str] = get_str_env('DISCOVERY_CLIENT_SECRET')
    DISCOVERY_TIMEOUT_SECONDS: float = get_float_env('DISCOVERY_TIMEOUT_SECONDS', 10.0)
    TOKEN_REFRESH_MARGIN_SECONDS: int = get_int_env('TOKEN_REFRESH_MARGIN_SECONDS', 300)

    # HTTP
    ALLOWED_ORIGINS: Optional[str] = get_str_env('ALLOWED_ORIGINS')

    @classmethod
    def discovery_configured(cls) -> bool:
        return cls.DISCOVERY_ENABLED and bool(cls.DISCOVERY_BASE_URL)

    @classmethod
    def cors_origins(cls) -> list:
        """Local dev origins plus the comma-separated ALLOWED_ORIGINS."""
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
        if cls.ALLOWED_ORIGINS:
            origins.extend(o.strip() for o in cls.ALLOWED_ORIGINS.split(",") if o.strip())
        return origins

    @classmethod
    def as_dict(cls) -> dict:
        """Get all settings as a dictionary, secrets masked."""
        values = {
            key: value
            for key, value in cls.__dict__.items()
            if key.isupper()
        }
        if values.get('DISCOVERY_CLIENT_SECRET'):
            values['DISCOVERY_CLIENT_SECRET'] = '***'
        return values


# Singleton instance for easy importing
settings = Settings()
