"""
trustoracle.ledger — Read agent records from the TrustScore contract.

The contract is an ERC-8004 reputation oracle exposing:

    getScore(uint256 agentId) view returns (uint256)
    getDetailedReport(uint256 agentId) view returns
        (tuple(uint256 score, uint256 totalFeedback, uint256 positiveFeedback,
               uint256 lastUpdated, bool exists))

Config via env vars:
    TRUST_SCORE_ADDRESS      — contract address (reader disabled when unset)
    API_RPC_URL              — RPC endpoint (or BASE_SEPOLIA_RPC_URL / BASE_MAINNET_RPC_URL)
    LEDGER_TIMEOUT_SECONDS   — HTTP timeout for each RPC call
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError

from trustoracle.errors import ConfigError, LedgerReadError, RecordNotFound
from trustoracle.risk import FeedbackRecord

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2**53 - 1

TRUST_SCORE_ABI = [
    {
        "type": "function",
        "name": "getScore",
        "stateMutability": "view",
        "inputs": [{"name": "agentId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "getDetailedReport",
        "stateMutability": "view",
        "inputs": [{"name": "agentId", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "score", "type": "uint256"},
                    {"name": "totalFeedback", "type": "uint256"},
                    {"name": "positiveFeedback", "type": "uint256"},
                    {"name": "lastUpdated", "type": "uint256"},
                    {"name": "exists", "type": "bool"},
                ],
            }
        ],
    },
]

_RECORD_FIELDS = ("score", "totalFeedback", "positiveFeedback", "lastUpdated", "exists")


def parse_record(raw: Any) -> FeedbackRecord:
    """Build a FeedbackRecord from a decoded tuple/list or a mapping."""
    if isinstance(raw, dict):
        values = [raw.get(name) for name in _RECORD_FIELDS]
    else:
        values = list(raw)
    if len(values) < len(_RECORD_FIELDS):
        raise LedgerReadError(f"Unexpected report shape: {raw!r}")
    try:
        score, total, positive, last_updated = (int(v) for v in values[:4])
    except (TypeError, ValueError) as exc:
        raise LedgerReadError(f"Malformed report values: {raw!r}") from exc
    return FeedbackRecord(
        score=score,
        total_feedback=total,
        positive_feedback=positive,
        last_updated=last_updated,
        exists=bool(values[4]),
    )


def as_safe_number(value: int) -> int | str:
    """Keep integers JSON-safe for JavaScript clients."""
    return value if value <= MAX_SAFE_INTEGER else str(value)


class TrustScoreReader:
    """Read-only client for the TrustScore contract."""

    def __init__(
        self,
        contract_address: str = "",
        rpc_url: str = "http://127.0.0.1:8545",
        timeout: float = 10.0,
        *,
        contract: Any = None,
        reason: Optional[str] = None,
    ):
        self.contract_address = contract_address
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.reason = reason
        self._contract = contract
        if self._contract is None and contract_address:
            self._contract = self._connect()

    @classmethod
    def from_settings(cls, settings) -> "TrustScoreReader":
        if not settings.trust_score_address:
            return cls(reason="TRUST_SCORE_ADDRESS is not configured")
        return cls(
            settings.trust_score_address,
            settings.api_rpc_url,
            settings.ledger_timeout_seconds,
        )

    def _connect(self):
        try:
            address = Web3.to_checksum_address(self.contract_address)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid TRUST_SCORE_ADDRESS: {self.contract_address!r}") from exc
        provider = Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout})
        return Web3(provider).eth.contract(address=address, abi=TRUST_SCORE_ABI)

    @property
    def enabled(self) -> bool:
        return self._contract is not None

    def _call(self, fn_name: str, agent_id: int):
        if not self.enabled:
            raise LedgerReadError(self.reason or "TrustScore contract is not configured")
        try:
            return getattr(self._contract.functions, fn_name)(agent_id).call()
        except ContractLogicError as exc:
            raise RecordNotFound(agent_id, str(exc)) from exc
        except Exception as exc:
            logger.warning(
                "Ledger read failed",
                extra={"fn": fn_name, "agent_id": str(agent_id), "error": type(exc).__name__},
            )
            raise LedgerReadError(f"{fn_name}({agent_id}) failed: {exc}") from exc

    def get_score(self, agent_id: int) -> int:
        return int(self._call("getScore", agent_id))

    def get_detailed_report(self, agent_id: int) -> FeedbackRecord:
        """Fetch and parse the agent's record.

        Raises RecordNotFound when the contract reverts or reports
        ``exists == False``; LedgerReadError for any other failure.
        """
        record = parse_record(self._call("getDetailedReport", agent_id))
        if not record.exists:
            raise RecordNotFound(agent_id)
        return record
