"""
trustoracle.registration — ERC-8004 registration document served at /discover.
"""

from __future__ import annotations

from trustoracle.pricing import RouteTable

REGISTRATION_TYPE = "https://eips.ethereum.org/EIPS/eip-8004#registration-v1"


def _url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}{path}" if base else path


def build_registration_document(settings, routes: RouteTable) -> dict:
    """Describe the oracle: endpoints, trust model and x402 pricing."""
    base = settings.public_base_url
    doc = {
        "type": REGISTRATION_TYPE,
        "name": settings.service_name,
        "description": settings.service_description,
        "image": settings.service_image_url or None,
        "endpoints": [
            {"name": "score", "endpoint": _url(base, "/score/{agentId}"), "payment": "x402"},
            {"name": "report", "endpoint": _url(base, "/report/{agentId}"), "payment": "x402"},
            {"name": "health", "endpoint": _url(base, "/health")},
            {"name": "discover", "endpoint": _url(base, "/discover")},
        ],
        "registrations": [],
        "supportedTrust": ["reputation"],
        "pricing": {
            "protocol": "x402",
            "currency": "USDC",
            "routes": routes.to_list(),
            "demo": "Append ?demo=true for a limited free response"
            if settings.x402_allow_demo_query else None,
        },
    }
    if settings.agent_id is not None and settings.agent_registry:
        doc["registrations"].append({
            "agentId": settings.agent_id,
            "agentRegistry": settings.agent_registry,
        })
    return doc
