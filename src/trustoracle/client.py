"""
trustoracle.client — Python SDK for the trust oracle API.

Usage:
    from trustoracle.client import TrustOracleClient

    with TrustOracleClient("http://localhost:3000") as client:
        client.health()
        client.score(42, demo=True)
        client.report(42, payment="<x402 payment header>")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import httpx

from trustoracle.errors import ConfigError
from trustoracle.pricing import USDC_DECIMALS, format_usd_price

USDC_UNIT = Decimal(10) ** USDC_DECIMALS


class TrustOracleAPIError(Exception):
    """Raised when the API returns an error."""
    def __init__(self, status: int, detail: str, body: Optional[dict] = None):
        self.status = status
        self.detail = detail
        self.body = body or {}
        super().__init__(f"[{status}] {detail}")


class PaymentRequiredError(TrustOracleAPIError):
    """402: the route needs an x402 payment (or ?demo=true)."""

    @property
    def requirement(self) -> dict:
        """First entry of an x402 ``accepts`` list, if the body has one."""
        accepts = self.body.get("accepts") or []
        return accepts[0] if accepts and isinstance(accepts[0], dict) else {}

    @property
    def price(self) -> Optional[str]:
        if self.body.get("price"):
            return self.body["price"]
        amount = self.requirement.get("maxAmountRequired")
        if amount is None:
            return None
        # x402 quotes USDC in atomic units (6 decimals)
        try:
            return format_usd_price(Decimal(str(amount)) / USDC_UNIT)
        except (InvalidOperation, ConfigError):
            return str(amount)

    @property
    def network(self) -> Optional[str]:
        return self.body.get("network") or self.requirement.get("network")


AgentId = Union[int, str]


@dataclass
class TrustOracleClient:
    """Lightweight client for the trust oracle."""

    base_url: str = "http://localhost:3000"
    timeout: float = 10.0
    payment_header: Optional[str] = None
    transport: Optional[httpx.BaseTransport] = field(default=None, repr=False)
    _http: httpx.Client = field(init=False, repr=False)

    def __post_init__(self):
        self._http = httpx.Client(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport,
        )

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- internal --

    def _request(self, method: str, path: str, **kwargs) -> dict:
        r = self._http.request(method, path, **kwargs)
        if r.status_code >= 400:
            body = None
            if r.headers.get("content-type", "").startswith("application/json"):
                body = r.json()
                detail = body.get("details") or body.get("error") or r.text
            else:
                detail = r.text
            error_cls = PaymentRequiredError if r.status_code == 402 else TrustOracleAPIError
            raise error_cls(r.status_code, detail, body)
        return r.json()

    def _paid(self, kind: str, agent_id: AgentId, demo: bool, payment: Optional[str]) -> dict:
        params = {"demo": "true"} if demo else None
        payment = payment or self.payment_header
        headers = {"X-PAYMENT": payment} if payment else None
        return self._request("GET", f"/{kind}/{agent_id}", params=params, headers=headers)

    # -- Public --

    def health(self) -> dict:
        """Liveness plus payment gateway and ledger status."""
        return self._request("GET", "/health")

    def discover(self) -> dict:
        """ERC-8004 registration document."""
        return self._request("GET", "/discover")

    # -- Paid --

    def score(self, agent_id: AgentId, *, demo: bool = False, payment: Optional[str] = None) -> dict:
        return self._paid("score", agent_id, demo, payment)

    def report(self, agent_id: AgentId, *, demo: bool = False, payment: Optional[str] = None) -> dict:
        return self._paid("report", agent_id, demo, payment)
