"""
trustoracle.config — Typed settings, validated once at start-up.

All values come from environment variables (or a local .env file). The
variable names follow the deployment conventions of the oracle, e.g.
X402_MODE, X402_STUB_ENFORCE, TRUST_SCORE_ADDRESS, INDEXER_POLL_INTERVAL_MS.
Invalid values fail validation instead of silently falling back to defaults.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trustoracle.risk import ScoringConfig


GatewayModeName = Literal["real", "stub", "auto"]


class Settings(BaseSettings):
    """Process-wide configuration for the oracle API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ─── Server ───────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: PositiveInt = 3000
    log_level: str = "INFO"
    allowed_origins: str = ""
    rate_limit: str = "120/minute"
    rate_limit_enabled: bool = True

    # ─── x402 payment gateway ─────────────────────────────────────
    x402_mode: GatewayModeName = "auto"
    x402_stub_enforce: bool = False
    x402_allow_demo_query: bool = True
    x402_network: str = "base"
    x402_score_price_usdc: str = "0.001"
    x402_report_price_usdc: str = "0.005"
    x402_facilitator_url: str = "https://x402.org/facilitator"

    # Pay-to candidates, highest priority first
    x402_pay_to: Optional[str] = None
    x402_receiver_address: Optional[str] = None
    deployer_address: Optional[str] = None
    updater_address: Optional[str] = None

    cdp_api_key_id: str = Field(
        "", validation_alias=AliasChoices("cdp_api_key_id", "cdp_api_key_name"),
    )
    cdp_api_key_secret: str = Field(
        "", validation_alias=AliasChoices("cdp_api_key_secret", "cdp_api_key_private"),
    )
    cdp_client_api_key: str = ""
    x402_paywall_app_name: str = ""
    x402_paywall_app_logo: str = ""
    x402_paywall_session_token_endpoint: str = ""

    # ─── Scoring ──────────────────────────────────────────────────
    confidence_threshold_feedback_count: int = Field(50, ge=0)
    negative_flag_threshold_bps: int = Field(1000, ge=0, le=10_000)
    low_trust_score_threshold: int = Field(500, ge=0)
    indexer_poll_interval_ms: PositiveInt = 900_000

    # ─── Ledger ───────────────────────────────────────────────────
    trust_score_address: str = ""
    api_rpc_url: str = Field(
        "http://127.0.0.1:8545",
        validation_alias=AliasChoices(
            "api_rpc_url", "base_sepolia_rpc_url", "base_mainnet_rpc_url",
        ),
    )
    ledger_timeout_seconds: float = Field(10.0, gt=0)

    # ─── Discovery document ───────────────────────────────────────
    service_name: str = "Robomoustachio"
    service_description: str = (
        "ERC-8004 Trust Oracle. Verify any agent's trust score before transacting."
    )
    public_base_url: str = ""
    service_image_url: str = ""
    agent_id: Optional[int] = Field(None, ge=0)
    agent_registry: str = ""

    @field_validator("x402_mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def pay_to_candidates(self) -> list[Optional[str]]:
        return [
            self.x402_pay_to,
            self.x402_receiver_address,
            self.deployer_address,
            self.updater_address,
        ]

    @property
    def origins(self) -> list[str]:
        """ALLOWED_ORIGINS as a list; empty means allow all."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    def scoring_config(self) -> ScoringConfig:
        return ScoringConfig(
            confidence_threshold_feedback_count=self.confidence_threshold_feedback_count,
            negative_flag_threshold_bps=self.negative_flag_threshold_bps,
            low_trust_score_threshold=self.low_trust_score_threshold,
        )


def load_settings(**overrides) -> Settings:
    """Load settings from the environment; keyword overrides win."""
    return Settings(**overrides)
