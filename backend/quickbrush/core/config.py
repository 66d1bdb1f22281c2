"""Configuration management using pydantic-settings."""
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quickbrush.models.account import AccountState, LinkedAccount

DEFAULT_API_URL = "https://wizzlethorpe.com"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI (BYOK) settings
    openai_api_key: str = ""
    openai_base_url: str = DEFAULT_OPENAI_URL
    describe_model: str = "gpt-4o"
    image_model: str = "gpt-image-1-mini"

    # Wizzlethorpe Labs account (written by the host after account linking)
    api_base_url: str = DEFAULT_API_URL
    wizzlethorpe_token: str = ""
    wizzlethorpe_account: Optional[LinkedAccount] = None
    use_server_mode: bool = True

    # Transport
    http_timeout: float = 180.0

    # Application settings
    app_name: str = "quickbrush"

    # Server settings
    backend_host: str = "localhost"
    backend_port: int = 8000
    frontend_origin: str = "http://localhost:30000"

    @field_validator("api_base_url", "openai_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("api_base_url", mode="after")
    @classmethod
    def _blank_api_url_uses_default(cls, value: str) -> str:
        return value or DEFAULT_API_URL

    def account_state(self) -> AccountState:
        """Return the read-only account snapshot used to resolve a strategy."""
        account = self.wizzlethorpe_account
        return AccountState(
            linked=bool(self.wizzlethorpe_token),
            tier_level=account.tier_cents if account is not None else 0,
            local_api_key=self.openai_api_key.strip() or None,
            server_mode_preferred=self.use_server_mode,
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
