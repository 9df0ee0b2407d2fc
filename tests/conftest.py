"""Global test configuration: shared settings and fake ledger fixtures."""
import os
import sys
import time

import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from web3.exceptions import ContractLogicError

from trustoracle.config import Settings
from trustoracle.ledger import TrustScoreReader

CONTRACT_ADDRESS = "0x" + "11" * 20
PAYEE = "0x" + "ab" * 20


class _Call:
    def __init__(self, contract, fn_name, agent_id):
        self.contract = contract
        self.fn_name = fn_name
        self.agent_id = agent_id

    def call(self):
        self.contract.calls.append((self.fn_name, self.agent_id))
        if self.contract.error is not None:
            raise self.contract.error
        record = self.contract.records.get(self.agent_id)
        if record is None:
            raise ContractLogicError("execution reverted: agent not found")
        if self.fn_name == "getScore":
            return record[0]
        return record


class FakeContract:
    """Stands in for a web3 contract: contract.functions.<fn>(agent_id).call()."""

    def __init__(self, records=None, error=None):
        self.records = dict(records or {})
        self.error = error
        self.calls = []
        self.functions = self

    def getScore(self, agent_id):
        return _Call(self, "getScore", agent_id)

    def getDetailedReport(self, agent_id):
        return _Call(self, "getDetailedReport", agent_id)


def fresh_record(score, total, positive, exists=True, age_seconds=0):
    """Ledger tuple (score, totalFeedback, positiveFeedback, lastUpdated, exists)."""
    return (score, total, positive, int(time.time()) - age_seconds, exists)


@pytest.fixture
def make_settings():
    """Settings isolated from .env files, stub gateway, no rate limiting."""
    def _make(**overrides):
        values = {
            "x402_mode": "stub",
            "x402_stub_enforce": False,
            "rate_limit_enabled": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def make_record():
    return fresh_record


@pytest.fixture
def make_contract():
    return FakeContract


@pytest.fixture
def make_reader():
    def _make(records=None, error=None):
        return TrustScoreReader(CONTRACT_ADDRESS, contract=FakeContract(records, error))
    return _make
