"""
Family Calendar Assistant — Family whitelist.

Only registered family members may talk to the bot. Members are loaded
once at startup from a JSON file and are read-only at runtime:

    {"members": [{"phone": "+4915112345678", "name": "Anna",
                  "uuid": "…", "aliases": ["tg:123456789"]}]}

``uuid`` is the optional Signal account UUID; ``aliases`` are extra
sender identifiers (e.g. Telegram ``tg:<user id>``) that map to the same
member.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


class FamilyMember(BaseModel):
    phone: str
    name: str = Field(min_length=1, max_length=50)
    uuid: str | None = None
    aliases: list[str] = Field(default_factory=list)

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        # Accept "+49 151 1234-5678" style input, store E.164.
        cleaned = re.sub(r"[\s\-()/]", "", str(v))
        if cleaned.startswith("00"):
            cleaned = "+" + cleaned[2:]
        if not _E164.match(cleaned):
            raise ValueError(f"Invalid phone number: {v}")
        return cleaned

    @field_validator("uuid")
    @classmethod
    def check_uuid(cls, v: str | None) -> str | None:
        if v is not None:
            uuid.UUID(v)
        return v


class FamilyConfig(BaseModel):
    members: list[FamilyMember] = Field(min_length=1)


def load_family_config(path: str | None = None) -> FamilyConfig:
    """Load and validate the family member file.

    Raises FileNotFoundError with a pointer to the example file when it
    is missing; pydantic's ValidationError when it is invalid.
    """
    if path is None:
        from famcal.config import settings
        path = settings.FAMILY_MEMBERS_PATH

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Family configuration file not found at: {config_path}\n"
            "Please create it based on family-members.example.json"
        )

    data = json.loads(config_path.read_text(encoding="utf-8"))
    config = FamilyConfig.model_validate(data)
    logger.info("Loaded %d family member(s) from %s", len(config.members), config_path)
    return config


class FamilyWhitelist:
    """O(1) lookup of family members by phone, Signal UUID or alias."""

    def __init__(self, config: FamilyConfig) -> None:
        self._names: dict[str, str] = {}
        for member in config.members:
            self._names[member.phone] = member.name
            if member.uuid:
                self._names[member.uuid] = member.name
            for alias in member.aliases:
                self._names[alias] = member.name

        self.member_count = len(config.members)

    def is_allowed(self, identifier: str | None) -> bool:
        return bool(identifier) and identifier in self._names

    def display_name(self, identifier: str | None) -> str | None:
        if not identifier:
            return None
        return self._names.get(identifier)
