"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Request queue
    # ======================
    queue_url: str = Field(
        default="http://127.0.0.1:9545", description="Base URL of the signing request queue"
    )
    queue_api_prefix: str = Field(default="/api", description="Path prefix of the queue API")
    session_token: Optional[str] = Field(
        default=None, description="Session token sent as X-Session-Token"
    )
    http_timeout: float = Field(default=10.0, description="Queue HTTP timeout in seconds")

    # ======================
    # Reconciliation
    # ======================
    poll_interval: float = Field(default=1.0, description="Seconds between reconciliation ticks")
    receipt_poll_interval: float = Field(
        default=2.0, description="Seconds between transaction receipt lookups"
    )
    receipt_timeout: float = Field(
        default=300.0, description="Give up waiting for a receipt after this many seconds"
    )

    # ======================
    # Wallet providers
    # ======================
    rpc_urls: str = Field(
        default="", description="Comma-separated JSON-RPC wallet endpoints to announce"
    )
    dry_run: bool = Field(default=False, description="Announce a simulated wallet provider")

    # ======================
    # Control API
    # ======================
    api_host: str = Field(default="127.0.0.1", description="Control API host")
    api_port: int = Field(default=9546, description="Control API port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    @property
    def rpc_url_list(self) -> list[str]:
        """Parse RPC wallet endpoints into a list."""
        if not self.rpc_urls:
            return []
        return [url.strip() for url in self.rpc_urls.split(",") if url.strip()]

    @property
    def queue_base(self) -> str:
        """Queue base URL including the API prefix."""
        return self.queue_url.rstrip("/") + "/" + self.queue_api_prefix.strip("/")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "queue": {
                "url": self.queue_url,
                "prefix": self.queue_api_prefix,
                "session_token": "***" if self.session_token else "(not set)",
                "timeout": self.http_timeout,
            },
            "poll_interval": self.poll_interval,
            "receipt": {
                "poll_interval": self.receipt_poll_interval,
                "timeout": self.receipt_timeout,
            },
            "rpc_wallets": self.rpc_url_list,
            "api": {"host": self.api_host, "port": self.api_port},
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
