"""Tests for trustoracle CLI."""

import json

import httpx
import pytest

from trustoracle import cli
from trustoracle.client import TrustOracleClient


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/health":
        return httpx.Response(200, json={
            "status": "ok",
            "payment": {"mode": "stub", "fallbackFromReal": True, "reason": "Fell back"},
            "trustScore": {"configured": True, "contractAddress": "0x" + "11" * 20},
        })
    if path.startswith("/score/"):
        if request.url.params.get("demo") == "true":
            return httpx.Response(200, json={"demo": True, "agentId": "42", "score": 820,
                                             "verdict": "TRUSTED", "note": "Demo"})
        return httpx.Response(402, json={"error": "Payment required", "price": "$0.001",
                                         "network": "base", "details": "pay"})
    if path.startswith("/report/"):
        return httpx.Response(404, json={"error": "Report not found for agent"})
    return httpx.Response(404, json={"error": "not found"})


@pytest.fixture(autouse=True)
def mock_client(monkeypatch):
    created = []

    def _make(args):
        c = TrustOracleClient(args.url, payment_header=getattr(args, "payment", None),
                              transport=httpx.MockTransport(_handler))
        created.append(c)
        return c

    monkeypatch.setattr(cli, "_make_client", _make)
    return created


def test_health_json(capsys):
    result = cli.main(["--json", "health"])
    assert result["status"] == "ok"
    assert json.loads(capsys.readouterr().out)["payment"]["mode"] == "stub"


def test_health_human(capsys):
    cli.main(["health"])
    out = capsys.readouterr().out
    assert "(fallback)" in out
    assert "0x1111" in out


def test_score_demo(capsys):
    result = cli.main(["score", "42", "--demo"])
    assert result["verdict"] == "TRUSTED"
    assert "TRUSTED" in capsys.readouterr().out


def test_score_payment_required_exits(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["score", "42"])
    assert exc_info.value.code == 2
    assert "$0.001" in capsys.readouterr().err


def test_report_not_found_exits(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["report", "9"])
    assert exc_info.value.code == 1
    assert "404" in capsys.readouterr().err


def test_probe():
    result = cli.main(["--json", "probe", "42"])
    assert result["payment"]["mode"] == "stub"
    assert result["routes"]["score"] == {
        "status": 402, "challenged": True, "price": "$0.001", "network": "base",
    }
    assert result["routes"]["report"]["challenged"] is False
    assert result["routes"]["report"]["status"] == 404


def test_payment_flag_reaches_client(mock_client):
    parser = cli.build_parser()
    args = parser.parse_args(["score", "42", "-p", "proof"])
    assert cli._make_client(args).payment_header == "proof"


def test_serve_runs_uvicorn(monkeypatch):
    calls = {}
    monkeypatch.setattr("uvicorn.run", lambda app, **kw: calls.update(app=app, **kw))
    monkeypatch.setenv("PORT", "4000")
    cli.main(["serve", "--host", "127.0.0.1"])
    assert calls["app"] == "trustoracle.api:create_app"
    assert calls["factory"] is True
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 4000


def test_no_command_prints_help():
    with pytest.raises(SystemExit):
        cli.main([])
