"""
trustoracle.access — Per-request access decision for paid routes.

resolve_access(ctx, state, demo_allowed) -> AccessDecision. Pure function, no
I/O. Precedence, first match wins:

1. real x402 middleware active -> full (the protocol layer already gated it)
2. payment proof header present -> full
3. demo allowed and ?demo=<truthy> -> demo
4. stub fallback or enforcement on -> challenge (402)
5. otherwise -> full (payment not enforceable, open default)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from trustoracle.pricing import RouteRule
from trustoracle.x402 import (
    GatewayState,
    PaymentTag,
    extract_payment_headers,
    has_payment_proof,
)

TRUTHY = frozenset({"1", "true", "yes", "on"})

FALLBACK_REASON = (
    "x402 middleware is running in stub fallback mode. Include an x402 payment "
    "header for full data, or add ?demo=true for a limited free response."
)
ENFORCED_REASON = (
    "x402 stub payment enforcement is enabled. Include an x402 payment "
    "header for full data, or add ?demo=true for a limited free response."
)


class AccessTier(str, Enum):
    FULL = "full"
    DEMO = "demo"
    CHALLENGE = "challenge"


@dataclass(frozen=True)
class RequestContext:
    """What the resolver needs from a request."""
    method: str
    path: str
    headers: Mapping[str, Any] = field(default_factory=dict)
    demo: Optional[str] = None

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        return cls(
            method=request.method,
            path=request.url.path,
            headers=extract_payment_headers(request.headers),
            demo=request.query_params.get("demo"),
        )

    @property
    def wants_demo(self) -> bool:
        return str(self.demo or "").strip().lower() in TRUTHY


@dataclass(frozen=True)
class AccessDecision:
    tier: AccessTier
    payment_status: Optional[PaymentTag] = None
    reason: Optional[str] = None
    rule: Optional[RouteRule] = None

    @property
    def is_full(self) -> bool:
        return self.tier is AccessTier.FULL

    @property
    def is_demo(self) -> bool:
        return self.tier is AccessTier.DEMO

    @property
    def is_challenge(self) -> bool:
        return self.tier is AccessTier.CHALLENGE

    def challenge_body(self, route_key: Optional[str] = None) -> dict:
        """402 body quoting the matched rule's price and network."""
        rule = self.rule
        return {
            "error": "Payment required",
            "route": route_key or (rule.key if rule else None),
            "price": rule.price if rule else None,
            "network": rule.network if rule else None,
            "details": self.reason,
        }


def resolve_access(
    ctx: RequestContext,
    state: GatewayState,
    demo_allowed: bool = True,
    enforce_override: bool = False,
) -> AccessDecision:
    rule = state.routes.match(ctx.method, ctx.path)

    if state.using_real_middleware:
        return AccessDecision(AccessTier.FULL, PaymentTag.PAID_REAL, rule=rule)

    if has_payment_proof(extract_payment_headers(ctx.headers)):
        return AccessDecision(AccessTier.FULL, PaymentTag.PAID_STUB, rule=rule)

    if demo_allowed and ctx.wants_demo:
        return AccessDecision(AccessTier.DEMO, PaymentTag.DEMO_FREE, rule=rule)

    if state.fallback_from_real or state.enforce or enforce_override:
        reason = FALLBACK_REASON if state.fallback_from_real else ENFORCED_REASON
        return AccessDecision(AccessTier.CHALLENGE, PaymentTag.UNPAID_STUB, reason=reason, rule=rule)

    return AccessDecision(AccessTier.FULL, PaymentTag.UNPAID_STUB, rule=rule)
