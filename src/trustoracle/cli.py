#!/usr/bin/env python3
"""
trustoracle CLI — Run the oracle or query a running instance.

Commands:
    serve    - Start the API server (uvicorn)
    health   - Gateway and ledger status
    score    - Trust score for an agent
    report   - Detailed trust report for an agent
    probe    - Dry-run: health plus unpaid score/report requests
"""

import argparse
import json
import sys
from typing import Optional

from trustoracle.client import PaymentRequiredError, TrustOracleAPIError, TrustOracleClient

DEFAULT_URL = "http://localhost:3000"


def _output(data: dict, args: argparse.Namespace, human_fn=None):
    """Output data as JSON or pretty-printed."""
    if getattr(args, "json", False):
        print(json.dumps(data, indent=2, default=str))
    elif human_fn:
        human_fn(data)
    else:
        print(json.dumps(data, indent=2, default=str))


def _make_client(args: argparse.Namespace) -> TrustOracleClient:
    return TrustOracleClient(
        args.url,
        timeout=args.timeout,
        payment_header=getattr(args, "payment", None),
    )


# ─── Commands ──────────────────────────────────────────────────────

def cmd_serve(args):
    """Start the API server."""
    import uvicorn

    from trustoracle.config import load_settings

    settings = load_settings()
    uvicorn.run(
        "trustoracle.api:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def cmd_health(args):
    """Show gateway and ledger status."""
    with _make_client(args) as client:
        result = client.health()

    def human(r):
        payment = r.get("payment", {})
        ledger = r.get("trustScore", {})
        print(f"🩺 Status: {r.get('status')}")
        print(f"   x402 mode:   {payment.get('mode')}"
              f"{' (fallback)' if payment.get('fallbackFromReal') else ''}")
        print(f"   Reason:      {payment.get('reason')}")
        print(f"   Ledger:      {ledger.get('contractAddress') or 'not configured'}")

    _output(result, args, human)
    return result


def _print_record(r: dict):
    print(f"📊 Agent {r.get('agentId')}:")
    for key in ("score", "verdict", "confidence", "confidenceBand", "recentTrend",
                "flagged", "riskFactors", "negativeRateBps"):
        if key in r:
            print(f"   {key}: {r[key]}")
    if r.get("note"):
        print(f"   ℹ️  {r['note']}")


def cmd_score(args):
    """Get the trust score for an agent."""
    with _make_client(args) as client:
        result = client.score(args.agent_id, demo=args.demo)
    _output(result, args, _print_record)
    return result


def cmd_report(args):
    """Get the detailed trust report for an agent."""
    with _make_client(args) as client:
        result = client.report(args.agent_id, demo=args.demo)
    _output(result, args, _print_record)
    return result


def _probe_route(client: TrustOracleClient, kind: str, agent_id: str) -> dict:
    fetch = client.score if kind == "score" else client.report
    try:
        body = fetch(agent_id)
    except PaymentRequiredError as e:
        return {"status": e.status, "challenged": True, "price": e.price, "network": e.network}
    except TrustOracleAPIError as e:
        return {"status": e.status, "challenged": False, "error": e.detail}
    return {"status": 200, "challenged": False, "demo": bool(body.get("demo"))}


def cmd_probe(args):
    """Check which paid routes answer unpaid requests with a 402 challenge."""
    with _make_client(args) as client:
        health = client.health()
        result = {
            "payment": health.get("payment", {}),
            "routes": {
                kind: _probe_route(client, kind, args.agent_id)
                for kind in ("score", "report")
            },
        }

    def human(r):
        payment = r["payment"]
        print(f"🔎 x402 mode: {payment.get('mode')} ({payment.get('reason')})")
        for kind, outcome in r["routes"].items():
            if outcome["challenged"]:
                print(f"   🔒 /{kind}: 402 ({outcome.get('price')} on {outcome.get('network')})")
            else:
                print(f"   🔓 /{kind}: {outcome['status']} without payment")

    _output(result, args, human)
    return result


# ─── Parser ────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trustoracle",
        description="trustoracle — ERC-8004 trust oracle behind x402",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    parser.add_argument("--url", default=DEFAULT_URL, help="Oracle API URL")
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout in seconds")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    p = sub.add_parser("serve", help="Start the API server")
    p.add_argument("--host", help="Bind host (default: HOST or 0.0.0.0)")
    p.add_argument("--port", type=int, help="Bind port (default: PORT or 3000)")

    # health
    sub.add_parser("health", help="Gateway and ledger status")

    # score / report
    for name, help_text in (("score", "Trust score for an agent"),
                            ("report", "Detailed trust report for an agent")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("agent_id", help="Agent ID (uint256)")
        p.add_argument("--demo", action="store_true", help="Request the free demo payload")
        p.add_argument("-p", "--payment", help="x402 payment header value")

    # probe
    p = sub.add_parser("probe", help="Dry-run the paid routes without paying")
    p.add_argument("agent_id", nargs="?", default="1", help="Agent ID to probe with")

    return parser


def main(argv: Optional[list[str]] = None) -> Optional[dict]:
    """CLI entry point. Returns result dict for testing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "serve": cmd_serve,
        "health": cmd_health,
        "score": cmd_score,
        "report": cmd_report,
        "probe": cmd_probe,
    }

    try:
        return commands[args.command](args)
    except PaymentRequiredError as e:
        print(f"💳 Payment required: {e.price} on {e.network}. "
              f"Pass --payment or --demo.", file=sys.stderr)
        sys.exit(2)
    except TrustOracleAPIError as e:
        print(f"❌ API Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
