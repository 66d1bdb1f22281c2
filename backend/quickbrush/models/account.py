"""Account and generation-mode data models."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerationStrategy(str, Enum):
    """Generation pathway chosen for a single request."""

    server_pooled = "server_pooled"
    server_brokered_byok = "server_brokered_byok"
    local_direct_byok = "local_direct_byok"
    unconfigured = "unconfigured"


class LinkedAccount(BaseModel):
    """Wizzlethorpe Labs account info returned by the link flow."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    tier_name: str = Field(default="Free", alias="tierName")
    tier_cents: int = Field(default=0, ge=0, alias="tierCents")


class AccountState(BaseModel):
    """Read-only snapshot of the account/credential configuration.

    tier_level is in cents: 0 free, 300 Apprentice, 500 Alchemist, 1000 Archmage.
    """

    model_config = ConfigDict(frozen=True)

    linked: bool = False
    tier_level: int = Field(default=0, ge=0)
    local_api_key: Optional[str] = None
    server_mode_preferred: bool = True

    @property
    def has_local_key(self) -> bool:
        return bool(self.local_api_key and self.local_api_key.strip())
