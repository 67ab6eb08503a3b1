"""
HTTP API Tests
==============
Drives the FastAPI app in-process with the tick loop disabled.
Run with: python3 -m pytest tests/test_api.py -v
"""

import sys
import os

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trenches_sim.config import Settings
from trenches_sim.engine.market import MarketSimulator
from trenches_sim.main import create_app
from trenches_sim.services.session import GameSession
from trenches_sim.services.storage import JsonStore


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def session(tmp_path):
    return GameSession(simulator=MarketSimulator(seed=21), store=JsonStore(tmp_path), initial_token_count=15)


@pytest.fixture
def client(session, tmp_path):
    app = create_app(session, cfg=Settings(data_dir=str(tmp_path)), run_ticker=False)
    with TestClient(app) as c:
        yield c


def any_token_id(client, status=None):
    params = {"status": status} if status else {}
    return client.get("/api/tokens", params=params).json()[0]["id"]


# ── Market ───────────────────────────────────────────────────────────────────

def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "tick_count": 0, "tokens": 15}


def test_list_tokens_and_filter(client):
    tokens = client.get("/api/tokens").json()
    assert len(tokens) == 15
    assert {"id", "name", "ticker", "avatar", "status", "price", "phase", "price_history"} <= set(tokens[0])

    soon = client.get("/api/tokens", params={"status": "soon"}).json()
    assert len(soon) == 8
    assert all(t["status"] == "soon" for t in soon)

    assert client.get("/api/tokens", params={"status": "rugged"}).status_code == 422


def test_token_detail(client):
    token_id = any_token_id(client)
    r = client.get(f"/api/tokens/{token_id}")
    assert r.status_code == 200
    assert r.json()["id"] == token_id
    assert client.get("/api/tokens/missing").status_code == 404


def test_candles(client):
    token_id = any_token_id(client, "migrated")
    r = client.get(f"/api/tokens/{token_id}/candles", params={"timeframe": "1m"})
    assert r.status_code == 200
    body = r.json()
    assert body["timeframe"] == "1m"
    assert len(body["candles"]) > 0
    c = body["candles"][-1]
    assert c["low"] <= min(c["open"], c["close"]) <= max(c["open"], c["close"]) <= c["high"]

    assert client.get(f"/api/tokens/{token_id}/candles", params={"timeframe": "2h"}).status_code == 422
    assert client.get("/api/tokens/missing/candles").status_code == 404


def test_events(client):
    events = client.get("/api/events", params={"limit": 5}).json()
    assert len(events) == 5
    assert all(e["type"] == "new_token" for e in events)
    assert client.get("/api/events", params={"limit": 0}).json() == []


def test_ticks_show_up_in_health(client, session):
    session.step()
    session.step()
    assert client.get("/api/health").json()["tick_count"] == 2


# ── Player ───────────────────────────────────────────────────────────────────

def test_claim_buy_sell_flow(client):
    r = client.post("/api/portfolio/claim")
    assert r.status_code == 200
    assert r.json()["balance"] == 10.0

    again = client.post("/api/portfolio/claim")
    assert again.status_code == 400
    assert again.json()["detail"]["error"] == "CLAIM_COOLDOWN"

    token_id = any_token_id(client)
    r = client.post("/api/trade/buy", json={"token_id": token_id, "amount_sol": 2.5})
    assert r.status_code == 200
    assert r.json()["balance"] == 7.5
    assert r.json()["position"]["token_id"] == token_id

    portfolio = client.get("/api/portfolio").json()
    assert [p["token_id"] for p in portfolio["positions"]] == [token_id]

    r = client.post("/api/trade/sell", json={"token_id": token_id, "percent": 100})
    assert r.status_code == 200
    assert r.json()["balance"] > 7.5
    assert client.get("/api/portfolio").json()["positions"] == []

    quests = client.get("/api/quests").json()
    assert quests["completed_count"] >= 1
    assert quests["stats"]["total_trades"] == 2


def test_trade_errors(client):
    token_id = any_token_id(client)
    r = client.post("/api/trade/buy", json={"token_id": token_id, "amount_sol": 1.0})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "INSUFFICIENT_BALANCE"

    r = client.post("/api/trade/buy", json={"token_id": "missing", "amount_sol": 1.0})
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "UNKNOWN_TOKEN"

    assert client.post("/api/trade/buy", json={"token_id": token_id, "amount_sol": 0}).status_code == 422
    assert client.post("/api/trade/sell", json={"token_id": token_id, "percent": 150}).status_code == 422

    r = client.post("/api/trade/sell", json={"token_id": token_id})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "NO_POSITION"
