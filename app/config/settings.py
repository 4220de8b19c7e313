from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.payment_defaults import resolve_chain_asset_defaults, resolve_upstream_api_base
from app.version import SERVICE_NAME, __version__


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GATEWAY_", case_sensitive=False, frozen=True)

    host: str = "127.0.0.1"
    port: int = 3402
    log_level: str = "INFO"
    service_name: str = SERVICE_NAME

    # Payment authority
    payment_mode: str = Field(default="credit", description="credit or stub")
    payment_service_url: str = "https://api.claw.credit"
    payment_api_token: str = ""
    payment_timeout_s: float = 120.0
    payment_agent: str | None = None
    payment_agent_id: str | None = None

    # Chain / asset / upstream selection
    chain: str = "BASE"
    asset: str | None = None
    upstream_api_base: str | None = None

    # Pricing
    default_amount_usd: float = 0.1
    min_amount_micros: int = 10_000

    # Debug capture
    capture_enabled: bool = False
    capture_file: Path = Path("/tmp/metered-inference-gateway/.run/capture.jsonl")

    @property
    def payment_mode_normalized(self) -> str:
        return self.payment_mode.strip().lower()

    @property
    def resolved_chain(self) -> str:
        return resolve_chain_asset_defaults(self.chain, self.asset)[0]

    @property
    def resolved_asset(self) -> str:
        return resolve_chain_asset_defaults(self.chain, self.asset)[1]

    @property
    def resolved_upstream_api_base(self) -> str:
        return resolve_upstream_api_base(self.chain, self.upstream_api_base)

    @property
    def resolved_payment_service_url(self) -> str:
        return self.payment_service_url.strip().rstrip("/")

    @property
    def user_agent(self) -> str:
        return f"{self.service_name}/{__version__}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
