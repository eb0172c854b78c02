"""
Family Calendar Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from famcal/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Messenger: "signal" | "telegram"
    MESSENGER_PROVIDER: str = "signal"

    # Signal (signal-cli REST API)
    SIGNAL_API_URL: str = "http://localhost:8080"
    SIGNAL_PHONE_NUMBER: str = ""
    SIGNAL_POLL_INTERVAL: float = 1.0

    # Telegram (only needed when MESSENGER_PROVIDER=telegram)
    TELEGRAM_BOT_TOKEN: str = ""

    # LLM provider: anthropic, openai, gemini, cohere
    LLM_PROVIDER: str = "anthropic"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Google Calendar (service account shared with the family calendar)
    GOOGLE_SERVICE_ACCOUNT_FILE: str = "service-account.json"
    GOOGLE_CALENDAR_ID: str = "primary"
    TIMEZONE: str = "Europe/Berlin"

    # SQLite: conversation state and processed-message ledger
    DATABASE_PATH: str = "data/famcal.db"

    # Whitelist
    FAMILY_MEMBERS_PATH: str = "family-members.json"

    # Conversation tuning
    SESSION_TTL_MINUTES: int = 30
    PROCESSED_MESSAGE_RETENTION_DAYS: int = 7
    MAX_HISTORY_MESSAGES: int = 5

    LOG_LEVEL: str = "INFO"

    @field_validator("MESSENGER_PROVIDER", "LLM_PROVIDER", mode="before")
    @classmethod
    def lower_provider(cls, v: str) -> str:
        return str(v).strip().lower()

    @field_validator("SIGNAL_PHONE_NUMBER")
    @classmethod
    def check_phone(cls, v: str) -> str:
        if v and not _E164.match(v):
            raise ValueError("SIGNAL_PHONE_NUMBER must be E.164 format (e.g. +4915112345678)")
        return v

    @field_validator(
        "SESSION_TTL_MINUTES",
        "PROCESSED_MESSAGE_RETENTION_DAYS",
        "MAX_HISTORY_MESSAGES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("SIGNAL_POLL_INTERVAL", mode="before")
    @classmethod
    def parse_float(cls, v: str | float) -> float:
        return float(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"


def _fail(message: str) -> None:
    print(f"ERROR: {message}", file=sys.stderr)
    sys.exit(1)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    llm_api_key = os.getenv("LLM_API_KEY", "")
    messenger = os.getenv("MESSENGER_PROVIDER", "signal").strip().lower()

    if not llm_api_key or llm_api_key.startswith("your-"):
        _fail("LLM_API_KEY is missing or not set in .env")

    if messenger == "signal" and not os.getenv("SIGNAL_PHONE_NUMBER", ""):
        _fail("SIGNAL_PHONE_NUMBER is missing or not set in .env")

    if messenger == "telegram":
        token = os.getenv("TELEGRAM_BOT_TOKEN", "")
        if not token or token.startswith("your-"):
            _fail("TELEGRAM_BOT_TOKEN is missing or not set in .env")

    return Settings(
        MESSENGER_PROVIDER=messenger,
        SIGNAL_API_URL=os.getenv("SIGNAL_API_URL", "http://localhost:8080"),
        SIGNAL_PHONE_NUMBER=os.getenv("SIGNAL_PHONE_NUMBER", ""),
        SIGNAL_POLL_INTERVAL=os.getenv("SIGNAL_POLL_INTERVAL", "1.0"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "anthropic"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        GOOGLE_SERVICE_ACCOUNT_FILE=os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "service-account.json"),
        GOOGLE_CALENDAR_ID=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/Berlin"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/famcal.db"),
        FAMILY_MEMBERS_PATH=os.getenv("FAMILY_MEMBERS_PATH", "family-members.json"),
        SESSION_TTL_MINUTES=os.getenv("SESSION_TTL_MINUTES", "30"),
        PROCESSED_MESSAGE_RETENTION_DAYS=os.getenv("PROCESSED_MESSAGE_RETENTION_DAYS", "7"),
        MAX_HISTORY_MESSAGES=os.getenv("MAX_HISTORY_MESSAGES", "5"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from famcal.config import settings
settings = _load_settings()
