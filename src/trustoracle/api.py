"""
trustoracle API — ERC-8004 Trust Oracle behind x402 payments.

Public endpoints:
  GET /health              — Liveness plus payment gateway / ledger status
  GET /discover            — ERC-8004 registration document
Paid endpoints (x402, or ?demo=true for a reduced free payload):
  GET /score/{agent_id}    — Trust score and confidence
  GET /report/{agent_id}   — Score plus risk assessment

Run with:
    uvicorn --factory trustoracle.api:create_app
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from trustoracle import __version__
from trustoracle.access import AccessDecision, RequestContext, resolve_access
from trustoracle.config import Settings, load_settings
from trustoracle.errors import LedgerReadError, RecordNotFound
from trustoracle.ledger import TrustScoreReader, as_safe_number
from trustoracle.pricing import REPORT_ROUTE, SCORE_ROUTE, RouteTable, build_route_pricing
from trustoracle.registration import build_registration_document
from trustoracle.risk import (
    ConfidenceBand,
    FeedbackRecord,
    RiskAssessment,
    Verdict,
    assess,
    confidence_band,
    insufficient_data,
    verdict,
)
from trustoracle.security import apply_security, limiter, rate_limit_value, setup_structured_logging
from trustoracle.x402 import GatewayState, select_gateway, tag_request

logger = logging.getLogger(__name__)

MAX_UINT256 = 2**256 - 1

DEMO_NOTE = "Demo response only. Provide an x402 payment header for the full paid payload."
NO_HISTORY_NOTE = "No on-chain history yet. Demo response returned without payment."
LEDGER_UNAVAILABLE_NOTE = "Ledger is temporarily unavailable. Demo response returned without payment."

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_agent_id(raw: str) -> int:
    """Agent IDs are decimal uint256 values."""
    value = (raw or "").strip()
    if not value.isdigit() or not value.isascii():
        raise ValueError("agentId must be a non-negative integer")
    agent_id = int(value)
    if agent_id > MAX_UINT256:
        raise ValueError("agentId exceeds uint256 range")
    return agent_id


def _error(status_code: int, error: str, details: Optional[str] = None, **extra) -> JSONResponse:
    body = {"error": error}
    if details is not None:
        body["details"] = details
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def build_response_meta(settings: Settings) -> dict:
    base = settings.public_base_url.rstrip("/")
    return {
        "provider": settings.service_name,
        "service": "ERC-8004 Trust Oracle",
        "discover": f"{base}/discover" if base else "/discover",
        "note": "Verify any agent's trust score before transacting. "
                "Free on-chain queries, premium API via x402.",
    }


def _resolve(request: Request) -> AccessDecision:
    state = request.app.state
    decision = resolve_access(
        RequestContext.from_request(request),
        state.gateway,
        demo_allowed=state.settings.x402_allow_demo_query,
        enforce_override=state.settings.x402_stub_enforce,
    )
    if decision.payment_status is not None:
        tag_request(request, decision.payment_status)
    return decision


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------

def _demo_payload(agent_id: int, record: FeedbackRecord, assessment: RiskAssessment,
                  kind: str, settings: Settings) -> dict:
    payload = {
        "demo": True,
        "agentId": str(agent_id),
        "score": as_safe_number(record.score),
        "verdict": verdict(record.score).value,
        "confidenceBand": confidence_band(record.total_feedback).value,
    }
    if kind == "report":
        payload["flagged"] = assessment.flagged
    payload["note"] = DEMO_NOTE
    payload["meta"] = build_response_meta(settings)
    return payload


def _demo_without_record(agent_id: int, kind: str, note: str, settings: Settings,
                         insufficient: bool = False) -> dict:
    payload = {
        "demo": True,
        "agentId": str(agent_id),
        "score": None,
        "verdict": Verdict.UNKNOWN.value,
        "confidenceBand": ConfidenceBand.NONE.value,
    }
    if kind == "report":
        payload["flagged"] = False
    if insufficient:
        payload["recentTrend"] = insufficient_data().to_dict()["recentTrend"]
    payload["note"] = note
    payload["meta"] = build_response_meta(settings)
    return payload


def _full_payload(agent_id: int, record: FeedbackRecord, assessment: RiskAssessment,
                  kind: str, settings: Settings) -> dict:
    if kind == "score":
        return {
            "agentId": str(agent_id),
            "score": as_safe_number(record.score),
            "confidence": assessment.confidence,
            "lastUpdated": as_safe_number(record.last_updated),
            "meta": build_response_meta(settings),
        }
    risk = assessment.to_dict()
    return {
        "agentId": str(agent_id),
        "score": as_safe_number(record.score),
        "confidence": risk["confidence"],
        "totalFeedback": as_safe_number(record.total_feedback),
        "positiveFeedback": as_safe_number(record.positive_feedback),
        "recentTrend": risk["recentTrend"],
        "flagged": risk["flagged"],
        "riskFactors": risk["riskFactors"],
        "negativeRateBps": risk["negativeRateBps"],
        "lastUpdated": as_safe_number(record.last_updated),
        "meta": build_response_meta(settings),
    }


def _serve_paid(request: Request, raw_agent_id: str, route_key: str, kind: str):
    """Validate, gate, read the ledger and shape the response for one tier."""
    state = request.app.state
    settings: Settings = state.settings

    try:
        agent_id = parse_agent_id(raw_agent_id)
    except ValueError as exc:
        return _error(400, "Invalid agentId", str(exc))

    decision = _resolve(request)
    if decision.is_challenge:
        return JSONResponse(status_code=402, content=decision.challenge_body(route_key))

    reader: TrustScoreReader = state.reader
    if not reader.enabled:
        return _error(
            503,
            "TrustScore contract is not configured",
            f"Set TRUST_SCORE_ADDRESS and API_RPC_URL (or Base RPC env vars) before querying {kind}s.",
        )

    try:
        record = reader.get_detailed_report(agent_id)
    except RecordNotFound:
        if decision.is_demo:
            return _demo_without_record(agent_id, kind, NO_HISTORY_NOTE, settings)
        return _error(404, f"{kind.capitalize()} not found for agent", agentId=str(agent_id))
    except LedgerReadError as exc:
        logger.warning("Ledger unavailable", extra={"agent_id": str(agent_id), "error": str(exc)})
        if decision.is_demo:
            return _demo_without_record(
                agent_id, kind, LEDGER_UNAVAILABLE_NOTE, settings, insufficient=True,
            )
        return _error(
            503,
            "Ledger read failed",
            "The TrustScore contract could not be read. Retry later.",
            agentId=str(agent_id),
            recentTrend=insufficient_data().to_dict()["recentTrend"],
        )

    assessment = assess(record, state.scoring, settings.indexer_poll_interval_ms)
    if decision.is_demo:
        return _demo_payload(agent_id, record, assessment, kind, settings)
    return _full_payload(agent_id, record, assessment, kind, settings)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/health")
@limiter.limit(rate_limit_value)
def health(request: Request):
    state = request.app.state
    reader: TrustScoreReader = state.reader
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payment": state.gateway.to_status(),
        "trustScore": {
            "configured": reader.enabled,
            "contractAddress": reader.contract_address if reader.enabled else None,
        },
    }


@router.get("/discover")
@limiter.limit(rate_limit_value)
def discover(request: Request):
    state = request.app.state
    return build_registration_document(state.settings, state.gateway.routes)


@router.get("/score/{agent_id}")
@limiter.limit(rate_limit_value)
def get_score(agent_id: str, request: Request):
    """Agent trust score (paid)."""
    return _serve_paid(request, agent_id, SCORE_ROUTE, "score")


@router.get("/report/{agent_id}")
@limiter.limit(rate_limit_value)
def get_report(agent_id: str, request: Request):
    """Detailed agent trust report with risk assessment (paid)."""
    return _serve_paid(request, agent_id, REPORT_ROUTE, "report")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    reader: Optional[TrustScoreReader] = None,
    gateway: Optional[GatewayState] = None,
) -> FastAPI:
    """Build the oracle app.

    Raises ConfigError for a malformed route table and FacilitatorConfigError
    when X402_MODE=real and the x402 middleware cannot be built; the server
    must not start in either case.
    """
    settings = settings or load_settings()
    setup_structured_logging(settings.log_level)

    if gateway is None:
        routes = RouteTable.compile(build_route_pricing(settings))
        gateway = select_gateway(settings.x402_mode, routes, settings)
    if reader is None:
        reader = TrustScoreReader.from_settings(settings)

    app = FastAPI(
        title="trustoracle",
        description="ERC-8004 Trust Oracle — agent trust scores and risk reports via x402",
        version=__version__,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.reader = reader
    app.state.scoring = settings.scoring_config()

    app.middleware("http")(gateway.middleware)
    apply_security(app, settings)
    app.include_router(router)

    logger.info(
        "trustoracle ready",
        extra={"x402": gateway.mode.value, "trust_score_configured": reader.enabled},
    )
    return app
