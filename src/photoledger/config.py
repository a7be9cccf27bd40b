"""Configuration management for the Photo Ledger pipeline."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Hierarchy master
    master_path: Optional[str] = None
    master_division_keys: list[str] = ["直接工事費"]

    # Classification
    alias_preset: Optional[str] = None
    max_workers: int = 4

    # Normalization
    max_set_size: int = 3

    # Layout
    photos_per_page: int = 3
    font_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="PHOTOLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
