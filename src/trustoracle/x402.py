"""
trustoracle.x402 — HTTP 402 payment gateway selection.

Builds the payment enforcement middleware for the oracle's paid routes:
- real: the x402 protocol middleware (Coinbase facilitator) verifies and
  settles payments; this module only hands it the route/price table,
  the payee address and the facilitator credentials
- stub: a local, non-cryptographic approximation that only looks for a
  payment proof header and can optionally answer 402 itself
- auto: try real, fall back to stub and record why

The result is a frozen GatewayState, built once at start-up and shared by
every request.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from trustoracle.errors import ConfigError, FacilitatorConfigError, MissingPayeeAddress
from trustoracle.pricing import RouteTable

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]


class GatewayMode(str, Enum):
    """Requested / effective gateway mode."""
    REAL = "real"
    STUB = "stub"
    AUTO = "auto"


class PaymentTag(str, Enum):
    """Per-request payment status, recorded for request logging."""
    FREE = "free"
    PAID_STUB = "paid_stub"
    UNPAID_STUB = "unpaid_stub"
    DEMO_FREE = "demo_free"
    PAID_REAL = "paid_real"


# ─── Payment headers ──────────────────────────────────────────────

PROOF_HEADERS = ("x-payment", "x-payment-proof", "x402-payment", "x402-proof", "authorization")
STATUS_HEADER = "x-payment-status"

_EVM_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")


def _is_payment_header(name: str) -> bool:
    return (
        name.startswith("x-payment")
        or name.startswith("x402")
        or name in ("payment", "authorization")
    )


def extract_payment_headers(headers: Any) -> dict[str, str]:
    """Payment-related headers, lower-cased; repeated values joined with ','.

    Accepts Starlette Headers (repeated keys preserved) or any mapping whose
    values are strings or lists of strings.
    """
    collected: dict[str, list[str]] = {}
    for key, value in (headers or {}).items():
        name = str(key).lower()
        if not _is_payment_header(name):
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        present = [str(v) for v in values if v is not None]
        if present:
            collected.setdefault(name, []).extend(present)
    return {name: ",".join(values) for name, values in collected.items()}


def has_payment_proof(payment_headers: Optional[Mapping[str, str]]) -> bool:
    """True if any payment proof indicator is present."""
    if not payment_headers:
        return False
    if any(payment_headers.get(name) for name in PROOF_HEADERS):
        return True
    return str(payment_headers.get(STATUS_HEADER) or "").strip().lower() == "paid"


def tag_request(request: Request, tag: PaymentTag) -> None:
    request.state.payment_status = tag.value


def payment_tag(request: Request) -> Optional[str]:
    return getattr(request.state, "payment_status", None)


# ─── Gateway state ────────────────────────────────────────────────

@dataclass(frozen=True)
class GatewayState:
    """Outcome of gateway selection.

    ``enforce`` is the stub enforcement flag; the real middleware always
    enforces on its own.
    """
    mode: GatewayMode
    using_real_middleware: bool
    fallback_from_real: bool
    reason: str
    enforce: bool
    routes: RouteTable = field(repr=False, compare=False)
    middleware: Middleware = field(repr=False, compare=False)
    pay_to_address: Optional[str] = None

    def to_status(self) -> dict:
        return {
            "mode": self.mode.value,
            "usingRealMiddleware": self.using_real_middleware,
            "fallbackFromReal": self.fallback_from_real,
            "reason": self.reason,
        }


# ─── Stub gateway ─────────────────────────────────────────────────

def build_stub_gateway(
    routes: RouteTable,
    enforce: bool = False,
    *,
    fallback_reason: Optional[str] = None,
) -> GatewayState:
    """Local enforcement that never contacts external services."""

    async def stub_payment_middleware(request: Request, call_next: CallNext) -> Response:
        rule = routes.match(request.method, request.url.path)
        if rule is None:
            if payment_tag(request) is None:
                tag_request(request, PaymentTag.FREE)
            return await call_next(request)

        payment_headers = extract_payment_headers(request.headers)
        paid = has_payment_proof(payment_headers)
        tag_request(request, PaymentTag.PAID_STUB if paid else PaymentTag.UNPAID_STUB)
        logger.info(
            "x402 stub check",
            extra={
                "method": request.method,
                "path": request.url.path,
                "route": rule.key,
                "paid": paid,
                "payment_headers": sorted(payment_headers),
            },
        )

        if not paid and enforce:
            return JSONResponse(
                status_code=402,
                content={
                    "error": "Payment required (stub middleware)",
                    "route": rule.key,
                    "price": rule.price,
                    "network": rule.network,
                    "description": rule.description,
                },
            )
        return await call_next(request)

    return GatewayState(
        mode=GatewayMode.STUB,
        using_real_middleware=False,
        fallback_from_real=fallback_reason is not None,
        reason=fallback_reason or "Using local x402 stub middleware",
        enforce=enforce,
        routes=routes,
        middleware=stub_payment_middleware,
    )


# ─── Real gateway ─────────────────────────────────────────────────

def is_valid_evm_address(address: Any) -> bool:
    return isinstance(address, str) and bool(_EVM_ADDRESS.match(address))


def resolve_pay_to_address(candidates: Iterable[Optional[str]]) -> str:
    """First syntactically valid EVM address among the candidates."""
    for candidate in candidates:
        if is_valid_evm_address(candidate):
            return candidate
    raise MissingPayeeAddress(
        "Missing pay-to address for x402 middleware. "
        "Set X402_PAY_TO (or X402_RECEIVER_ADDRESS / DEPLOYER_ADDRESS)."
    )


def normalize_private_key(value: str) -> str:
    """Expand literal '\\n' sequences from single-line env values."""
    return value.replace("\\n", "\n") if "\\n" in value else value


def resolve_facilitator_config(settings) -> dict:
    """CDP facilitator config when API credentials are set, else the public URL."""
    key_id = (settings.cdp_api_key_id or "").strip()
    secret = normalize_private_key(settings.cdp_api_key_secret or "")
    if key_id and secret:
        try:
            from cdp.x402 import create_facilitator_config
        except ImportError as exc:
            raise FacilitatorConfigError(
                "CDP API credentials are set but cdp-sdk is not installed"
            ) from exc
        return create_facilitator_config(key_id, secret)

    url = (settings.x402_facilitator_url or "").strip()
    if not url:
        raise FacilitatorConfigError(
            "No facilitator configured. Set CDP_API_KEY_ID/CDP_API_KEY_SECRET "
            "or X402_FACILITATOR_URL."
        )
    return {"url": url}


def resolve_paywall_config(settings) -> Optional[dict]:
    paywall = {
        "cdp_client_key": settings.cdp_client_api_key,
        "app_name": settings.x402_paywall_app_name,
        "app_logo": settings.x402_paywall_app_logo,
        "session_token_endpoint": settings.x402_paywall_session_token_endpoint,
    }
    paywall = {k: v for k, v in paywall.items() if v}
    return paywall or None


def build_real_gateway(
    routes: RouteTable,
    settings,
    *,
    pay_to: Optional[str] = None,
) -> GatewayState:
    """Delegate payment checks to the x402 protocol middleware.

    Raises FacilitatorConfigError (or MissingPayeeAddress) if anything needed
    by the protocol middleware is missing or rejected.
    """
    pay_to_address = resolve_pay_to_address([pay_to, *settings.pay_to_candidates])
    facilitator_config = resolve_facilitator_config(settings)
    paywall_config = resolve_paywall_config(settings)

    try:
        import x402  # noqa: F401
    except ImportError as exc:
        raise FacilitatorConfigError("x402 package is not installed") from exc
    try:
        from x402.fastapi.middleware import require_payment
    except ImportError as exc:
        # require_payment lives in the 0.x releases only (see setup.py pin)
        raise FacilitatorConfigError(
            "incompatible x402 version: x402.fastapi.middleware.require_payment "
            "is unavailable; install x402<1"
        ) from exc

    guards = []
    for rule in routes:
        try:
            guard = require_payment(
                price=rule.price,
                pay_to_address=pay_to_address,
                path=rule.glob,
                description=rule.description,
                network=rule.network,
                facilitator_config=facilitator_config,
                paywall_config=paywall_config,
            )
        except Exception as exc:
            raise FacilitatorConfigError(
                f"x402 middleware rejected route {rule.key}: {exc}"
            ) from exc
        if not callable(guard):
            raise FacilitatorConfigError("x402 did not return a middleware function")
        guards.append((rule, guard))

    async def x402_payment_middleware(request: Request, call_next: CallNext) -> Response:
        for rule, guard in guards:
            if rule.matches(request.method, request.url.path):
                return await guard(request, call_next)
        if payment_tag(request) is None:
            tag_request(request, PaymentTag.FREE)
        return await call_next(request)

    return GatewayState(
        mode=GatewayMode.REAL,
        using_real_middleware=True,
        fallback_from_real=False,
        reason="Using x402 middleware with Coinbase facilitator",
        enforce=False,
        routes=routes,
        middleware=x402_payment_middleware,
        pay_to_address=pay_to_address,
    )


# ─── Selection ────────────────────────────────────────────────────

RealBuilder = Callable[..., GatewayState]


def select_gateway(
    mode: Any,
    routes: RouteTable,
    settings,
    *,
    pay_to: Optional[str] = None,
    real_builder: Optional[RealBuilder] = None,
) -> GatewayState:
    """Build the gateway for the requested mode.

    - real: construction failure raises FacilitatorConfigError
    - stub: always the stub gateway
    - auto: real if it can be built, otherwise the stub gateway with
      ``fallback_from_real=True`` and the failure recorded in ``reason``
    """
    try:
        mode = GatewayMode(str(getattr(mode, "value", mode) or "auto").strip().lower())
    except ValueError:
        raise ConfigError(f"Unknown x402 mode: {mode!r}") from None

    enforce = bool(settings.x402_stub_enforce)
    if mode is GatewayMode.STUB:
        state = build_stub_gateway(routes, enforce)
        logger.info("x402 gateway ready", extra=state.to_status())
        return state

    builder = real_builder or build_real_gateway
    try:
        state = builder(routes, settings, pay_to=pay_to)
    except FacilitatorConfigError as exc:
        if mode is GatewayMode.REAL:
            raise
        cause: Exception = exc
    except Exception as exc:
        if mode is GatewayMode.REAL:
            raise FacilitatorConfigError(f"x402 middleware construction failed: {exc}") from exc
        cause = exc
    else:
        logger.info("x402 gateway ready", extra=state.to_status())
        return state

    state = build_stub_gateway(
        routes,
        enforce,
        fallback_reason=f"Fell back to stub middleware: {cause}",
    )
    logger.warning("x402 real middleware unavailable", extra=state.to_status())
    return state
