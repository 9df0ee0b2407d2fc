"""Tests for trustoracle.access — per-request access resolution."""

import pytest

from trustoracle.access import (
    ENFORCED_REASON,
    FALLBACK_REASON,
    AccessTier,
    RequestContext,
    resolve_access,
)
from trustoracle.pricing import RouteTable, build_route_pricing
from trustoracle.x402 import GatewayMode, GatewayState, PaymentTag, build_stub_gateway


async def _noop(request, call_next):
    return await call_next(request)


@pytest.fixture
def routes(make_settings):
    return RouteTable.compile(build_route_pricing(make_settings()))


@pytest.fixture
def real_state(routes):
    return GatewayState(
        mode=GatewayMode.REAL, using_real_middleware=True, fallback_from_real=False,
        reason="Using x402 middleware with Coinbase facilitator", enforce=False,
        routes=routes, middleware=_noop,
    )


def ctx(path="/score/42", headers=None, demo=None, method="GET"):
    return RequestContext(method=method, path=path, headers=headers or {}, demo=demo)


class TestPrecedence:
    @pytest.mark.parametrize("headers,demo", [
        ({}, None),
        ({"x-payment": "proof"}, None),
        ({}, "true"),
    ])
    def test_real_middleware_always_full(self, real_state, headers, demo):
        decision = resolve_access(ctx(headers=headers, demo=demo), real_state)
        assert decision.tier is AccessTier.FULL
        assert decision.payment_status is PaymentTag.PAID_REAL

    def test_proof_beats_demo_and_enforcement(self, routes):
        state = build_stub_gateway(routes, enforce=True)
        decision = resolve_access(ctx(headers={"X-Payment": "proof"}, demo="1"), state)
        assert decision.is_full
        assert decision.payment_status is PaymentTag.PAID_STUB

    @pytest.mark.parametrize("demo", ["1", "true", "YES", " on "])
    def test_demo_flag(self, routes, demo):
        state = build_stub_gateway(routes, fallback_reason="Fell back to stub middleware: x")
        decision = resolve_access(ctx(demo=demo), state)
        assert decision.is_demo
        assert decision.payment_status is PaymentTag.DEMO_FREE

    def test_demo_disallowed_falls_through_to_challenge(self, routes):
        state = build_stub_gateway(routes, enforce=True)
        decision = resolve_access(ctx(demo="true"), state, demo_allowed=False)
        assert decision.is_challenge

    @pytest.mark.parametrize("demo", ["0", "false", "", "maybe"])
    def test_non_truthy_demo_ignored(self, routes, demo):
        decision = resolve_access(ctx(demo=demo), build_stub_gateway(routes))
        assert decision.is_full

    def test_fallback_challenges(self, routes):
        state = build_stub_gateway(routes, fallback_reason="Fell back to stub middleware: x")
        decision = resolve_access(ctx(), state)
        assert decision.is_challenge
        assert decision.reason == FALLBACK_REASON
        assert decision.payment_status is PaymentTag.UNPAID_STUB

    def test_enforced_challenge_quotes_rule(self, routes):
        state = build_stub_gateway(routes, enforce=True)
        decision = resolve_access(ctx(path="/report/9"), state)
        rule = routes.get("GET /report/:agentId")
        assert decision.is_challenge
        assert decision.reason == ENFORCED_REASON
        assert decision.challenge_body() == {
            "error": "Payment required",
            "route": "GET /report/:agentId",
            "price": rule.price,
            "network": rule.network,
            "details": ENFORCED_REASON,
        }

    def test_enforce_override(self, routes):
        decision = resolve_access(ctx(), build_stub_gateway(routes), enforce_override=True)
        assert decision.is_challenge

    def test_open_default(self, routes):
        decision = resolve_access(ctx(), build_stub_gateway(routes))
        assert decision.is_full
        assert decision.payment_status is PaymentTag.UNPAID_STUB

    def test_idempotent(self, routes):
        state = build_stub_gateway(routes, enforce=True)
        request = ctx(demo="true")
        assert resolve_access(request, state) == resolve_access(request, state)


def test_challenge_body_explicit_route_key(routes):
    state = build_stub_gateway(routes, enforce=True)
    body = resolve_access(ctx(), state).challenge_body("GET /score/:agentId")
    assert body["route"] == "GET /score/:agentId"
    assert body["price"] == "$0.001"
