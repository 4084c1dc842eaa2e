# strikegrid/config/settings.py

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator


class ConfigError(RuntimeError):
    """Raised when required startup configuration is missing."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Credentials ---
    private_key: Optional[str] = None
    executor_address: Optional[str] = None

    # --- Engine ---
    networks: str = Field(default="ETHEREUM,BASE,ARBITRUM,POLYGON")
    trigger: str = Field(default="stream")  # stream | interval
    port: int = Field(default=8080)
    cycle_interval: float = Field(default=12.0)
    scan_interval: float = Field(default=5.0)
    reconnect_delay: float = Field(default=5.0)
    restart_base_delay: float = Field(default=2.0)
    restart_max_delay: float = Field(default=20.0)
    startup_ping: bool = Field(default=False)

    # --- Signals ---
    signal_sources: Optional[str] = None
    signal_timeout: float = Field(default=4.0)
    sentiment_threshold: float = Field(default=0.1)
    default_ticker: str = Field(default="WETH")
    base_asset: str = Field(default="ETH")

    # --- Trust ---
    trust_file: str = Field(default="trust_scores.json")

    # --- Sizing / execution ---
    min_reserve_wei: int = Field(default=10**15)  # 0.001 ETH
    ping_min_balance_wei: int = Field(default=10**14)  # 0.0001 ETH
    gas_limit: int = Field(default=1_500_000)
    gas_buffer_pct: int = Field(default=120)
    receipt_timeout: float = Field(default=120.0)

    @model_validator(mode="after")
    def normalize(self):
        """Normalize free-form values read from the environment."""
        self.trigger = self.trigger.strip().lower()
        if self.trigger not in ("stream", "interval"):
            raise ValueError(f"unknown trigger {self.trigger!r}")
        self.default_ticker = self.default_ticker.strip().upper()
        return self

    def network_names(self) -> list[str]:
        return [n.strip().upper() for n in self.networks.split(",") if n.strip()]

    def require_credentials(self) -> None:
        if not self.private_key:
            raise ConfigError("PRIVATE_KEY is not configured")
        if not self.executor_address:
            raise ConfigError("EXECUTOR_ADDRESS is not configured")


# Global settings instance
settings = Settings()
