from __future__ import annotations

import logging
import math
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from coinchart.errors import MalformedResponse, ProviderError, ProviderUnavailable
from coinchart.models import Asset, Granularity, PricePoint, Series, TrendingCoin
from coinchart.notifications import Notifier, failure_notification

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoClient:
    """Thin async wrapper over the public CoinGecko v3 API.

    Every call is one round trip. Failures are reported to the notifier once and
    then raised as ProviderUnavailable / MalformedResponse; nothing is cached here.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 10.0,
        notifier: Notifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._notifier = notifier

    async def close(self) -> None:
        await self._client.aclose()

    async def list_top_assets(self, limit: int = 10) -> list[Asset]:
        if int(limit) < 1:
            raise ValueError("limit must be a positive integer")
        context = "top assets"
        try:
            data = await self._get_json(
                context,
                "/coins/markets",
                params={
                    "vs_currency": "usd",
                    "order": "market_cap_desc",
                    "per_page": str(int(limit)),
                    "page": "1",
                    "sparkline": "false",
                },
            )
            return _parse_markets(data, context=context)
        except ProviderError as e:
            self._report(e)
            raise

    async def fetch_history(self, asset_id: str, granularity: Granularity | str) -> Series:
        asset_id = (asset_id or "").strip()
        if not asset_id:
            raise ValueError("asset_id is required")
        g = Granularity.parse(granularity)
        context = "price history"
        try:
            data = await self._get_json(
                context,
                f"/coins/{quote(asset_id, safe='')}/market_chart",
                params={"vs_currency": "usd", "days": g.value},
            )
            points = _parse_market_chart(data, context=context)
        except ProviderError as e:
            self._report(e)
            raise
        return Series(asset_id=asset_id, granularity=g, points=points)

    async def fetch_trending(self) -> list[TrendingCoin]:
        context = "trending coins"
        try:
            data = await self._get_json(context, "/search/trending")
            return _parse_trending(data, context=context)
        except ProviderError as e:
            self._report(e)
            raise

    async def fetch_simple_price(self, asset_id: str) -> float | None:
        asset_id = (asset_id or "").strip()
        if not asset_id:
            raise ValueError("asset_id is required")
        context = "current price"
        try:
            data = await self._get_json(context, "/simple/price", params={"ids": asset_id, "vs_currencies": "usd"})
            if not isinstance(data, dict):
                raise MalformedResponse(context, "expected an object")
            entry = data.get(asset_id)
            if entry is None:
                return None
            if not isinstance(entry, dict):
                raise MalformedResponse(context, f"unexpected entry for {asset_id!r}")
            return _to_float(entry.get("usd"))
        except ProviderError as e:
            self._report(e)
            raise

    async def ping(self) -> bool:
        try:
            await self._get_json("ping", "/ping")
            return True
        except ProviderError as e:
            logger.warning("CoinGecko ping failed: %s", e)
            return False

    def _report(self, err: ProviderError) -> None:
        logger.warning("CoinGecko %s failed (%s): %s", err.context, err.kind.value, err.message)
        if self._notifier is None:
            return
        try:
            self._notifier(failure_notification(err.context, err.message))
        except Exception:
            logger.exception("Notifier failed while reporting %s error", err.context)

    async def _get_json(self, context: str, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            r = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(context, f"request timed out ({type(e).__name__})") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(context, f"{type(e).__name__}: {e}") from e
        if not r.is_success:
            raise ProviderUnavailable(
                context,
                f"API request failed: {r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
            )
        try:
            return r.json()
        except ValueError as e:
            raise MalformedResponse(context, "response is not valid JSON") from e


def _parse_markets(data: Any, *, context: str) -> list[Asset]:
    if not isinstance(data, list):
        raise MalformedResponse(context, "expected a list of assets")
    out: list[Asset] = []
    for i, it in enumerate(data):
        if not isinstance(it, dict):
            raise MalformedResponse(context, f"item {i} is not an object")
        try:
            out.append(Asset.model_validate(it))
        except ValidationError as e:
            raise MalformedResponse(context, f"item {i}: {e.error_count()} validation error(s)") from e
    return out


def _parse_market_chart(data: Any, *, context: str) -> tuple[PricePoint, ...]:
    if not isinstance(data, dict) or not isinstance(data.get("prices"), list):
        raise MalformedResponse(context, "missing 'prices' array")
    points: list[PricePoint] = []
    for i, pair in enumerate(data["prices"]):
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            raise MalformedResponse(context, f"point {i} is not a [timestamp, price] pair")
        ts = _to_int(pair[0])
        price = _to_float(pair[1])
        if ts is None or price is None:
            raise MalformedResponse(context, f"point {i} has non-numeric values")
        points.append(PricePoint(timestamp=ts, price=price))
    return tuple(points)


def _parse_trending(data: Any, *, context: str) -> list[TrendingCoin]:
    if not isinstance(data, dict) or not isinstance(data.get("coins"), list):
        raise MalformedResponse(context, "missing 'coins' array")
    out: list[TrendingCoin] = []
    for i, wrapper in enumerate(data["coins"]):
        item = wrapper.get("item") if isinstance(wrapper, dict) else None
        if not isinstance(item, dict):
            raise MalformedResponse(context, f"coin {i} has no 'item'")
        try:
            out.append(TrendingCoin.model_validate(item))
        except ValidationError as e:
            raise MalformedResponse(context, f"coin {i}: {e.error_count()} validation error(s)") from e
    return out


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        s = str(value).strip()
        if s == "":
            return None
        f = float(s)
        return f if math.isfinite(f) else None
    except ValueError:
        return None


def _to_int(value: Any) -> int | None:
    f = _to_float(value)
    return int(f) if f is not None else None
