# asset_agent/core/config.py
import os
from pathlib import Path
from typing import Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings


# Project root: fty_asset_agent/
BASE_DIR = Path(__file__).resolve().parent.parent.parent


_loaded_env_file: Optional[str] = None
_env_load_warning: Optional[str] = None


def load_environment() -> None:
    """
    Load environment variables from an .env file based on APP_ENV.

    APP_ENV=dev  -> .env.dev
    APP_ENV=uat  -> .env.uat
    APP_ENV=prod -> .env.prod
    APP_ENV=test -> .env.test

    If file is missing, it just relies on system env vars.
    """
    app_env = os.getenv("APP_ENV", "dev").lower()

    global _loaded_env_file, _env_load_warning

    env_map = {
        "dev": ".env.dev",
        "uat": ".env.uat",
        "prod": ".env.prod",
        "test": ".env.test",
    }

    env_file_name = env_map.get(app_env, ".env.dev")
    env_path = BASE_DIR / env_file_name

    if env_path.exists():
        load_dotenv(env_path)
        _loaded_env_file = str(env_path)
        _env_load_warning = None
    else:
        _loaded_env_file = None
        _env_load_warning = f"Env file {env_path} not found. Using system environment variables only."


class Settings(BaseSettings):
    # Environment: dev, uat, or prod
    ENVIRONMENT: Literal["dev", "uat", "prod"] = "dev"

    # Logging configuration
    LOG_LEVEL: str = "DEBUG"  # Will be overridden based on ENVIRONMENT
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_FILE: Optional[str] = None  # e.g. "logs/asset-agent.log"
    VERBOSE: bool = False

    # Message bus
    MLM_ENDPOINT: str = "ipc://@/malamute"
    MAILBOX_TIMEOUT_SECONDS: float = 5.0

    # Well-known agent names
    ASSET_AGENT_NAME: str = "asset-agent"
    AUTOUPDATE_AGENT_NAME: str = "asset-autoupdate"
    INVENTORY_AGENT_NAME: str = "asset-inventory"
    LICENSING_AGENT_NAME: str = "etn-licensing"
    ACTIVATION_AGENT_NAME: str = "etn-licensing-credits"

    # Timers (seconds)
    BIOS_ASSETS_REPEAT: int = 3600
    AUTOUPDATE_INTERVAL_SECONDS: int = 300

    # Licensing limitation query issued when the agent starts
    LICENSING_QUERY_ON_START: bool = True
    LICENSING_QUERY_TIMEOUT_SECONDS: float = 30.0

    # Activation oracle (disabled: every asset is activable)
    ACTIVATION_ENABLED: bool = True

    # Write path limits
    ASSET_NAME_MAX_LENGTH: int = 50
    MAX_POWER_SOURCES: int = 0  # 0 = unlimited

    # Inventory ext-attribute cache (0 disables caching)
    INVENTORY_CACHE_MAX_ENTRIES: int = int(os.getenv("INVENTORY_CACHE_MAX_ENTRIES", "10000"))

    # Start the actors from the FastAPI lifespan
    RUN_ACTORS_IN_API: bool = True

    class Config:
        # We already loaded the correct .env in load_environment()
        # so here we don't force any specific env_file.
        env_file = None
        case_sensitive = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Set log level based on environment
        if self.VERBOSE:
            object.__setattr__(self, "LOG_LEVEL", "DEBUG")
        elif self.ENVIRONMENT == "prod":
            object.__setattr__(self, "LOG_LEVEL", "INFO")
        else:  # dev or uat
            object.__setattr__(self, "LOG_LEVEL", "DEBUG")


# Lazy settings instance - only created on first access
_settings = None


def get_settings() -> Settings:
    """Lazy settings loader - settings are only created on first access."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Proxy that lazily loads settings on first attribute access."""

    def __getattr__(self, name):
        return getattr(get_settings(), name)

    def __repr__(self):
        return repr(get_settings())


settings = _SettingsProxy()


def get_env_load_state() -> Dict[str, Optional[str]]:
    """
    Helper for logging modules to know which env file was loaded.
    Returns dict with 'env_file' and optional 'warning'.
    """
    return {
        "env_file": _loaded_env_file,
        "warning": _env_load_warning,
    }
