"""Account-linking and cocktail content data models."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from quickbrush.models.account import LinkedAccount


class LinkState(str, Enum):
    pending = "pending"
    completed = "completed"
    expired = "expired"


class LinkSession(BaseModel):
    """A started account-link flow. The user opens link_url in a browser."""

    link_code: str
    link_url: str


class LinkStatus(BaseModel):
    status: LinkState
    token: Optional[str] = None
    user: Optional[LinkedAccount] = None


class CocktailInclude(str, Enum):
    """Sections of Bixby's Cocktails content the broker can export."""

    cocktails = "cocktails"
    ingredients = "ingredients"
    liquors = "liquors"
    tables = "tables"
    all = "all"


class CocktailContent(BaseModel):
    """Host-formatted cocktail documents. Entries are passed through as-is."""

    model_config = ConfigDict(extra="allow")

    cocktails: list[dict[str, Any]] = Field(default_factory=list)
    ingredients: list[dict[str, Any]] = Field(default_factory=list)
    liquors: list[dict[str, Any]] = Field(default_factory=list)
    tables: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.cocktails or self.ingredients or self.liquors or self.tables)
