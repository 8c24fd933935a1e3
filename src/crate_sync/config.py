from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    """Database configuration."""

    records_path: Path = Field(default=Path("crate.sqlite"))


class DiscogsConfig(BaseModel):
    """Discogs API configuration."""

    # Credentials (read from env vars if not provided)
    token: str | None = Field(default=None)
    username: str | None = Field(default=None)

    base_url: str = Field(default="https://api.discogs.com")
    user_agent: str = Field(default="crate-sync/0.1.0 +https://github.com/crate-sync/crate-sync")
    timeout_s: float = Field(default=30.0, ge=1.0)

    # Pacing (seconds between calls)
    page_delay_s: float = Field(default=1.0, ge=0)
    detail_delay_s: float = Field(default=1.1, ge=0)

    per_page: int = Field(default=50, ge=1, le=100)


class SyncConfig(BaseModel):
    """Sync and consolidation behaviour."""

    fetch_details: bool = Field(default=True)
    max_reported_errors: int = Field(default=10, ge=0)
    default_collection_title: str = Field(default="Discogs Collection")
    default_collection_description: str = Field(default="Synced from Discogs")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(message)s")
    redact_secrets: bool = Field(default=True)


def _truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


class Config(BaseModel):
    """
    Main configuration for crate-sync.

    Loads from TOML file with optional environment variable overrides.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    discogs: DiscogsConfig = Field(default_factory=DiscogsConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern:
        CRATE_SYNC_<SECTION>_<KEY> (e.g., CRATE_SYNC_DISCOGS_PAGE_DELAY_S)

        All values are gathered into a single dictionary first, then validated
        by Pydantic to ensure consistent type checking and coercion.
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)
        return cls.model_validate(config_dict)

    @staticmethod
    def _section(config_dict: dict[str, object], name: str) -> dict[str, object]:
        section = config_dict.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            config_dict[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        """
        Merge environment variable overrides into config dictionary.

        Returns a new dictionary with env vars applied, ready for Pydantic validation.
        """
        env_prefix = "CRATE_SYNC_"

        database = cls._section(config_dict, "database")
        if records_path := os.getenv(f"{env_prefix}DATABASE_RECORDS_PATH"):
            database["records_path"] = records_path

        discogs = cls._section(config_dict, "discogs")

        # Credentials from env
        if token := os.getenv("DISCOGS_TOKEN"):
            discogs["token"] = token
        if username := os.getenv("DISCOGS_USERNAME"):
            discogs["username"] = username

        if base_url := os.getenv(f"{env_prefix}DISCOGS_BASE_URL"):
            discogs["base_url"] = base_url
        if user_agent := os.getenv(f"{env_prefix}DISCOGS_USER_AGENT"):
            discogs["user_agent"] = user_agent
        if timeout := os.getenv(f"{env_prefix}DISCOGS_TIMEOUT_S"):
            discogs["timeout_s"] = timeout
        if page_delay := os.getenv(f"{env_prefix}DISCOGS_PAGE_DELAY_S"):
            discogs["page_delay_s"] = page_delay
        if detail_delay := os.getenv(f"{env_prefix}DISCOGS_DETAIL_DELAY_S"):
            discogs["detail_delay_s"] = detail_delay
        if per_page := os.getenv(f"{env_prefix}DISCOGS_PER_PAGE"):
            discogs["per_page"] = per_page

        sync = cls._section(config_dict, "sync")
        if fetch_details := os.getenv(f"{env_prefix}SYNC_FETCH_DETAILS"):
            sync["fetch_details"] = _truthy(fetch_details)
        if max_errors := os.getenv(f"{env_prefix}SYNC_MAX_REPORTED_ERRORS"):
            sync["max_reported_errors"] = max_errors
        if collection_title := os.getenv(f"{env_prefix}SYNC_DEFAULT_COLLECTION_TITLE"):
            sync["default_collection_title"] = collection_title

        logging_config = cls._section(config_dict, "logging")
        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format
        if redact := os.getenv(f"{env_prefix}LOGGING_REDACT_SECRETS"):
            logging_config["redact_secrets"] = _truthy(redact)

        return config_dict


## Tests


def test_config_defaults():
    config = Config()
    assert config.database.records_path == Path("crate.sqlite")
    assert config.discogs.page_delay_s == 1.0
    assert config.discogs.detail_delay_s == 1.1
    assert config.discogs.per_page == 50
    assert config.sync.max_reported_errors == 10
    assert config.sync.fetch_details is True


def test_config_from_dict():
    config = Config.model_validate(
        {
            "discogs": {"per_page": 100, "page_delay_s": 0},
            "sync": {"fetch_details": False},
        }
    )
    assert config.discogs.per_page == 100
    assert config.discogs.page_delay_s == 0
    assert config.sync.fetch_details is False


def test_config_env_overrides(monkeypatch):  # pyright: ignore[reportMissingParameterType,reportUnknownParameterType]
    monkeypatch.setenv("CRATE_SYNC_DISCOGS_PAGE_DELAY_S", "2.5")  # pyright: ignore[reportUnknownMemberType]
    monkeypatch.setenv("CRATE_SYNC_SYNC_FETCH_DETAILS", "no")  # pyright: ignore[reportUnknownMemberType]
    monkeypatch.setenv("DISCOGS_TOKEN", "abc123")  # pyright: ignore[reportUnknownMemberType]

    config = Config.load()
    assert config.discogs.page_delay_s == 2.5
    assert config.sync.fetch_details is False
    assert config.discogs.token == "abc123"


def test_config_load_nonexistent_file():
    config = Config.load(Path("/nonexistent/config.toml"))
    assert config.discogs.per_page == 50
