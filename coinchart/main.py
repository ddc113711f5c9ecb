from __future__ import annotations

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from coinchart.coingecko import CoinGeckoClient
from coinchart.coordinator import ChartViewModel, RequestCoordinator, SlotState
from coinchart.errors import ProviderError
from coinchart.formatters import change_direction, format_change_pct, format_date, format_price
from coinchart.logging_setup import configure_logging
from coinchart.market_board import MarketBoard, start_board_scheduler
from coinchart.models import Asset, Granularity
from coinchart.notifications import CollectingNotifier, LoggingNotifier
from coinchart.series_cache import SeriesCache
from coinchart.settings import Settings, effective_settings_dict

app = FastAPI(title="Coin Chart")

settings = Settings.load()
notifier = CollectingNotifier(forward=LoggingNotifier())
client = CoinGeckoClient(
    base_url=settings.coingecko_base_url,
    timeout_seconds=settings.http_timeout_seconds,
    notifier=notifier,
)
board = MarketBoard()
coordinator = RequestCoordinator(
    client,
    SeriesCache(),
    granularity=settings.default_granularity,
    alignment=settings.alignment,
)
_scheduler = None


class ChartSelectionRequest(BaseModel):
    asset_id: str | None = None
    compare_asset_id: str | None = None
    granularity: str | None = None
    wait: bool = False


def _asset_summary(asset: Asset | None) -> dict | None:
    if asset is None:
        return None
    return {
        "id": asset.id,
        "name": asset.name,
        "symbol": asset.symbol.upper(),
        "image": asset.image,
        "price": format_price(asset.current_price),
        "change_24h": format_change_pct(asset.price_change_percentage_24h),
        "direction": change_direction(asset.price_change_percentage_24h),
        "last_updated": asset.last_updated,
    }


def _slot_payload(state: SlotState) -> dict:
    asset_id = state.key.asset_id if state.key is not None else None
    return {
        "asset_id": asset_id,
        "status": state.status.value,
        "error": state.error.value if state.error is not None else None,
        "points": len(state.series) if state.series is not None else 0,
        "summary": _asset_summary(board.find(asset_id)),
    }


def _chart_payload(vm: ChartViewModel) -> dict:
    tz = settings.tzinfo()
    return {
        "ok": vm.error is None,
        "loading": vm.loading,
        "error": vm.error.value if vm.error is not None else None,
        "granularity": {"value": vm.granularity.value, "label": vm.granularity.label},
        "primary": _slot_payload(vm.primary),
        "secondary": _slot_payload(vm.secondary),
        "rows": [
            {
                "t": r.timestamp,
                "label": format_date(r.timestamp, vm.granularity, tz=tz),
                "primary": r.primary_price,
                "secondary": r.secondary_price,
            }
            for r in vm.rows
        ],
        "notifications": [n.model_dump() for n in notifier.drain()],
    }


def _asset_row(asset: Asset) -> dict:
    d = asset.model_dump()
    d["price_display"] = format_price(asset.current_price)
    d["change_display"] = format_change_pct(asset.price_change_percentage_24h)
    return d


@app.get("/health")
async def health() -> dict:
    return {
        "ok": True,
        "provider_ok": await client.ping(),
        "cache": {
            "entries": len(coordinator.cache),
            "hits": coordinator.cache.hits,
            "misses": coordinator.cache.misses,
        },
        "assets_updated_at": board.updated_at.isoformat() if board.updated_at else None,
        "board_last_error": board.last_error,
        "settings": effective_settings_dict(settings),
    }


@app.get("/api/assets")
async def api_assets(limit: int = Query(10, ge=1, le=250)) -> JSONResponse:
    if board.assets and limit <= len(board.assets):
        assets = board.assets[:limit]
    else:
        try:
            assets = await client.list_top_assets(limit)
        except ProviderError as e:
            return JSONResponse({"ok": False, "error": e.kind.value, "detail": str(e)}, status_code=502)
    return JSONResponse({"ok": True, "assets": [_asset_row(a) for a in assets]})


@app.get("/api/trending")
async def api_trending() -> JSONResponse:
    coins = board.trending
    if board.trending_updated_at is None:
        try:
            coins = await client.fetch_trending()
        except ProviderError as e:
            return JSONResponse({"ok": False, "error": e.kind.value, "detail": str(e)}, status_code=502)
    return JSONResponse({"ok": True, "coins": [c.model_dump() for c in coins]})


@app.get("/api/chart/periods")
async def api_chart_periods() -> dict:
    return {"periods": [{"value": g.value, "label": g.label} for g in Granularity]}


@app.get("/api/chart")
async def api_chart() -> JSONResponse:
    return JSONResponse(_chart_payload(coordinator.view_model))


@app.post("/api/chart/selection")
async def api_chart_selection(req: ChartSelectionRequest) -> JSONResponse:
    fs = set(req.model_fields_set)

    granularity = None
    if "granularity" in fs and req.granularity is not None:
        try:
            granularity = Granularity.parse(req.granularity)
        except ValueError:
            return JSONResponse({"ok": False, "error": f"invalid granularity: {req.granularity}"}, status_code=422)

    kwargs: dict = {"granularity": granularity}
    if "asset_id" in fs:
        kwargs["asset_id"] = req.asset_id
    if "compare_asset_id" in fs:
        kwargs["compare_asset_id"] = req.compare_asset_id

    primary = (req.asset_id if "asset_id" in fs else coordinator.asset_id) or ""
    compare = (req.compare_asset_id if "compare_asset_id" in fs else coordinator.compare_asset_id) or ""
    if primary and primary.strip().lower() == compare.strip().lower():
        return JSONResponse({"ok": False, "error": "compare asset must differ from the selected asset"}, status_code=400)

    vm = coordinator.select(**kwargs)
    if req.wait:
        vm = await coordinator.wait_idle()
    return JSONResponse(_chart_payload(vm))


@app.delete("/api/chart/compare")
async def api_chart_clear_compare() -> JSONResponse:
    return JSONResponse(_chart_payload(coordinator.clear_compare()))


@app.post("/api/chart/refresh")
async def api_chart_refresh(wait: bool = False) -> JSONResponse:
    vm = coordinator.refresh()
    if wait:
        vm = await coordinator.wait_idle()
    return JSONResponse(_chart_payload(vm))


@app.on_event("startup")
async def _startup() -> None:
    global _scheduler
    configure_logging(settings.log_level)
    await board.refresh(client=client, limit=settings.top_assets_limit)
    if board.assets and coordinator.asset_id is None:
        coordinator.select(asset_id=board.assets[0].id)
    _scheduler = start_board_scheduler(
        board=board,
        client=client,
        limit=settings.top_assets_limit,
        interval_seconds=settings.assets_refresh_seconds,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
    await coordinator.close()
    await client.close()
