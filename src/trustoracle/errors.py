"""
trustoracle.errors — Exception types shared across the oracle.

Start-up errors (ConfigError, FacilitatorConfigError) are fatal when they
escape create_app(). Ledger errors are request-scoped and always handled by
the API layer.
"""

from typing import Optional


class TrustOracleError(Exception):
    """Base class for all trustoracle errors."""


class ConfigError(TrustOracleError, ValueError):
    """Malformed route table, price or setting detected at start-up."""


class FacilitatorConfigError(TrustOracleError):
    """The real x402 middleware could not be constructed."""


class MissingPayeeAddress(FacilitatorConfigError):
    """None of the pay-to candidates is a valid EVM address."""


class RecordNotFound(TrustOracleError):
    """The ledger has no entry for the requested agent."""

    def __init__(self, agent_id: int, detail: Optional[str] = None):
        self.agent_id = agent_id
        self.detail = detail or f"No ledger record for agent {agent_id}"
        super().__init__(self.detail)


class LedgerReadError(TrustOracleError):
    """The ledger read failed for a reason other than a missing record."""
