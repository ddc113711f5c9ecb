from fastapi.testclient import TestClient

import coinchart.main as main_mod
from coinchart.coordinator import RequestCoordinator
from coinchart.market_board import MarketBoard
from coinchart.models import Asset, Granularity, PricePoint, Series

T0 = 1704067200000  # 2024-01-01T00:00:00Z
DAY = 24 * 60 * 60 * 1000


class _StubHistory:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def fetch_history(self, asset_id: str, granularity) -> Series:
        g = Granularity.parse(granularity)
        self.calls.append((asset_id, g.value))
        base = 40000.0 if asset_id == "bitcoin" else 2000.0
        pts = tuple(PricePoint(T0 + i * DAY, base + i) for i in range(3))
        return Series(asset_id=asset_id, granularity=g, points=pts)


def _setup(monkeypatch) -> tuple[TestClient, _StubHistory]:
    src = _StubHistory()
    board = MarketBoard(
        assets=[
            Asset(id="bitcoin", symbol="btc", name="Bitcoin", current_price=42000.5, price_change_percentage_24h=1.25),
            Asset(id="ethereum", symbol="eth", name="Ethereum", current_price=2200.0, price_change_percentage_24h=-0.5),
        ]
    )
    monkeypatch.setattr(main_mod, "coordinator", RequestCoordinator(src, granularity="7"))
    monkeypatch.setattr(main_mod, "board", board)
    return TestClient(main_mod.app), src


def test_periods_listing(monkeypatch) -> None:
    client, _ = _setup(monkeypatch)
    r = client.get("/api/chart/periods")
    assert r.status_code == 200
    assert r.json()["periods"][0] == {"value": "1", "label": "1 Hour"}
    assert [p["value"] for p in r.json()["periods"]] == ["1", "24", "7", "30", "90"]


def test_selection_with_wait_returns_aligned_rows(monkeypatch) -> None:
    client, src = _setup(monkeypatch)
    r = client.post(
        "/api/chart/selection",
        json={"asset_id": "bitcoin", "compare_asset_id": "ethereum", "granularity": "7", "wait": True},
    )
    assert r.status_code == 200
    payload = r.json()
    assert payload["loading"] is False
    assert payload["error"] is None
    assert payload["granularity"] == {"value": "7", "label": "7 Days"}
    assert payload["primary"]["status"] == "ready"
    assert payload["primary"]["summary"]["price"] == "$42,000.50"
    assert payload["primary"]["summary"]["change_24h"] == "+1.25%"
    assert payload["secondary"]["summary"]["symbol"] == "ETH"
    assert payload["secondary"]["summary"]["direction"] == "down"
    assert [row["label"] for row in payload["rows"]] == ["Jan 1", "Jan 2", "Jan 3"]
    assert payload["rows"][0]["primary"] == 40000.0
    assert payload["rows"][0]["secondary"] == 2000.0
    assert sorted(src.calls) == [("bitcoin", "7"), ("ethereum", "7")]

    # state is kept between requests
    r2 = client.get("/api/chart")
    assert len(r2.json()["rows"]) == 3


def test_selection_rejects_unknown_period(monkeypatch) -> None:
    client, src = _setup(monkeypatch)
    r = client.post("/api/chart/selection", json={"asset_id": "bitcoin", "granularity": "365"})
    assert r.status_code == 422
    assert r.json()["ok"] is False
    assert src.calls == []


def test_selection_rejects_same_asset_twice(monkeypatch) -> None:
    client, src = _setup(monkeypatch)
    r = client.post("/api/chart/selection", json={"asset_id": "bitcoin", "compare_asset_id": "Bitcoin"})
    assert r.status_code == 400
    assert src.calls == []


def test_assets_served_from_board(monkeypatch) -> None:
    client, _ = _setup(monkeypatch)
    r = client.get("/api/assets", params={"limit": 1})
    assert r.status_code == 200
    assets = r.json()["assets"]
    assert [a["id"] for a in assets] == ["bitcoin"]
    assert assets[0]["price_display"] == "$42,000.50"
    assert assets[0]["change_display"] == "+1.25%"

    assert client.get("/api/assets", params={"limit": 0}).status_code == 422


def test_clear_compare_endpoint_keeps_primary(monkeypatch) -> None:
    client, src = _setup(monkeypatch)
    client.post("/api/chart/selection", json={"asset_id": "bitcoin", "compare_asset_id": "ethereum", "wait": True})

    r = client.delete("/api/chart/compare")
    assert r.status_code == 200
    payload = r.json()
    assert payload["ok"] is True
    assert payload["secondary"]["status"] == "idle"
    assert payload["secondary"]["asset_id"] is None
    assert payload["primary"]["status"] == "ready"
    assert [row["primary"] for row in payload["rows"]] == [40000.0, 40001.0, 40002.0]
    assert all(row["secondary"] is None for row in payload["rows"])
    assert len(src.calls) == 2


def test_refresh_endpoint_refetches_selected_slots(monkeypatch) -> None:
    client, src = _setup(monkeypatch)
    client.post("/api/chart/selection", json={"asset_id": "bitcoin", "compare_asset_id": "ethereum", "wait": True})
    assert len(src.calls) == 2

    r = client.post("/api/chart/refresh", params={"wait": True})
    assert r.status_code == 200
    payload = r.json()
    assert payload["loading"] is False
    assert payload["primary"]["status"] == "ready"
    assert payload["secondary"]["status"] == "ready"
    assert sorted(src.calls) == [("bitcoin", "7"), ("bitcoin", "7"), ("ethereum", "7"), ("ethereum", "7")]
