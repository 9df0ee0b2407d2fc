"""Tests for trustoracle.config — typed settings from the environment."""

import pytest
from pydantic import ValidationError

from trustoracle.config import Settings, load_settings
from trustoracle.risk import ScoringConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("X402_MODE", "X402_STUB_ENFORCE", "X402_PAY_TO", "TRUST_SCORE_ADDRESS",
                 "API_RPC_URL", "BASE_SEPOLIA_RPC_URL", "BASE_MAINNET_RPC_URL",
                 "CDP_API_KEY_ID", "CDP_API_KEY_NAME", "CDP_API_KEY_SECRET",
                 "CDP_API_KEY_PRIVATE", "NEGATIVE_FLAG_THRESHOLD_BPS", "LOG_LEVEL",
                 "ALLOWED_ORIGINS", "PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings(_env_file=None)
    assert settings.x402_mode == "auto"
    assert settings.x402_stub_enforce is False
    assert settings.x402_allow_demo_query is True
    assert settings.port == 3000
    assert settings.confidence_threshold_feedback_count == 50
    assert settings.negative_flag_threshold_bps == 1000
    assert settings.indexer_poll_interval_ms == 900_000
    assert settings.api_rpc_url == "http://127.0.0.1:8545"


def test_mode_from_env_is_normalized(clean_env):
    clean_env.setenv("X402_MODE", " STUB ")
    assert Settings(_env_file=None).x402_mode == "stub"


def test_unknown_mode_rejected(clean_env):
    clean_env.setenv("X402_MODE", "maybe")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("yes", True),
                                          ("false", False), ("0", False)])
def test_boolean_env(clean_env, raw, expected):
    clean_env.setenv("X402_STUB_ENFORCE", raw)
    assert Settings(_env_file=None).x402_stub_enforce is expected


def test_flag_threshold_range(clean_env):
    clean_env.setenv("NEGATIVE_FLAG_THRESHOLD_BPS", "20000")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_invalid_log_level(clean_env):
    clean_env.setenv("LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_legacy_env_names(clean_env):
    clean_env.setenv("CDP_API_KEY_NAME", "key-id")
    clean_env.setenv("CDP_API_KEY_PRIVATE", "secret")
    clean_env.setenv("BASE_SEPOLIA_RPC_URL", "https://sepolia.base.org")
    settings = Settings(_env_file=None)
    assert settings.cdp_api_key_id == "key-id"
    assert settings.cdp_api_key_secret == "secret"
    assert settings.api_rpc_url == "https://sepolia.base.org"


def test_pay_to_candidates_order(clean_env):
    settings = Settings(_env_file=None, x402_pay_to="a", deployer_address="c")
    assert settings.pay_to_candidates == ["a", None, "c", None]


def test_origins(clean_env):
    assert Settings(_env_file=None).origins == []
    settings = Settings(_env_file=None, allowed_origins="https://a.io, https://b.io,")
    assert settings.origins == ["https://a.io", "https://b.io"]


def test_scoring_config(clean_env):
    settings = Settings(_env_file=None, confidence_threshold_feedback_count=10,
                        negative_flag_threshold_bps=2500)
    assert settings.scoring_config() == ScoringConfig(
        confidence_threshold_feedback_count=10,
        negative_flag_threshold_bps=2500,
        low_trust_score_threshold=500,
    )


def test_load_settings_overrides(clean_env):
    clean_env.setenv("PORT", "8080")
    settings = load_settings(_env_file=None, x402_mode="real")
    assert settings.port == 8080
    assert settings.x402_mode == "real"
