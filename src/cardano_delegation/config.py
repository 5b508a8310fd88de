"""
Configuration

Centralized settings for the delegation engine.
Environment-specific settings load from the .env file at the project root.
"""

import logging
from pathlib import Path

from blockfrost import ApiUrls
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cardano_delegation.enums import NetworkType, ProviderName


# Project root (two levels up from src/cardano_delegation/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

BLOCKFROST_URLS = {
    NetworkType.MAINNET: ApiUrls.mainnet.value,
    NetworkType.TESTNET: ApiUrls.preview.value,
    NetworkType.PREPROD: ApiUrls.preprod.value,
    NetworkType.PREVIEW: ApiUrls.preview.value,
}

KOIOS_URLS = {
    NetworkType.MAINNET: "https://api.koios.rest/api/v1",
    NetworkType.TESTNET: "https://preview.koios.rest/api/v1",
    NetworkType.PREPROD: "https://preprod.koios.rest/api/v1",
    NetworkType.PREVIEW: "https://preview.koios.rest/api/v1",
}


class Settings(BaseSettings):
    """
    Settings for the delegation engine

    Every field has a working default so the engine runs offline against
    fakes; provider credentials come from the environment.
    """

    # ============================================================================
    # Network
    # ============================================================================

    network: NetworkType = NetworkType.TESTNET

    # ============================================================================
    # Data providers
    # ============================================================================

    blockfrost_project_id: str | None = None
    blockfrost_base_url: str | None = None  # Derived from network when unset
    koios_base_url: str | None = None  # Derived from network when unset
    koios_api_token: str | None = None
    provider_order: list[ProviderName] = Field(default_factory=lambda: [ProviderName.KOIOS, ProviderName.BLOCKFROST])
    request_timeout: float = 30.0

    # ============================================================================
    # Rate limiting / retries
    # ============================================================================

    rate_limit_requests: int = 30
    rate_limit_window: float = 60.0
    broadcast_rate_limit: int = 5
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0

    # ============================================================================
    # Fees
    # ============================================================================

    fallback_fee: int = 500_000  # Used when protocol parameters are unavailable

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"), env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def is_mainnet(self) -> bool:
        """Check if configured for mainnet"""
        return self.network.is_mainnet

    @property
    def blockfrost_url(self) -> str:
        return self.blockfrost_base_url or BLOCKFROST_URLS[self.network]

    @property
    def koios_url(self) -> str:
        return self.koios_base_url or KOIOS_URLS[self.network]


def configure_logging(level: str | None = None) -> None:
    """Configure root logging from settings"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Global settings instance
# ============================================================================

settings = Settings()
