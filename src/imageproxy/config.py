"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from imageproxy.services.host_matcher import AllowList


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosts exempt from proxying, one per line (supports *.domain wildcards)
    whitelisted_hosts: str = ""

    # Proxy endpoint that rewritten image URLs point at
    proxy_base_url: str = "http://localhost:8000"
    proxy_route: str = "/imageproxy/image"
    proxy_param: str = "u"

    # Rewrite images in new ticket messages before they are stored
    proxify_new_messages: bool = True

    # Admin API
    admin_token: str | None = None
    dev_skip_auth: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./imageproxy.db"

    # Debug mode
    debug: bool = False

    @property
    def allow_list(self) -> AllowList:
        """Return the parsed host allow-list."""
        return AllowList.parse(self.whitelisted_hosts)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
