from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from coinchart.coingecko import CoinGeckoClient
from coinchart.errors import ProviderError
from coinchart.models import Asset, TrendingCoin

logger = logging.getLogger(__name__)


@dataclass
class MarketBoard:
    """Latest top-asset and trending snapshots; each refresh replaces the lists wholesale."""

    assets: list[Asset] = field(default_factory=list)
    trending: list[TrendingCoin] = field(default_factory=list)

    updated_at: datetime | None = None
    trending_updated_at: datetime | None = None
    last_duration_ms: float | None = None
    last_error: str | None = None
    refresh_running: bool = False

    def find(self, asset_id: str | None) -> Asset | None:
        if not asset_id:
            return None
        for a in self.assets:
            if a.id == asset_id:
                return a
        return None

    async def refresh(self, *, client: CoinGeckoClient, limit: int, include_trending: bool = True) -> None:
        if self.refresh_running:
            return
        self.refresh_running = True
        start = time.perf_counter()
        errors: list[str] = []
        try:
            try:
                self.assets = await client.list_top_assets(limit)
                self.updated_at = datetime.now(tz=timezone.utc)
            except ProviderError as e:
                errors.append(f"{type(e).__name__}: {e}")

            if include_trending:
                try:
                    self.trending = await client.fetch_trending()
                    self.trending_updated_at = datetime.now(tz=timezone.utc)
                except ProviderError as e:
                    errors.append(f"{type(e).__name__}: {e}")
        finally:
            self.last_error = "; ".join(errors) or None
            self.last_duration_ms = (time.perf_counter() - start) * 1000.0
            self.refresh_running = False
        if self.last_error:
            logger.warning("Market board refresh incomplete, keeping previous snapshot: %s", self.last_error)
        else:
            logger.debug("Market board refreshed: %d assets in %.0f ms", len(self.assets), self.last_duration_ms)


def start_board_scheduler(
    *, board: MarketBoard, client: CoinGeckoClient, limit: int, interval_seconds: int
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        board.refresh,
        trigger="interval",
        seconds=int(interval_seconds),
        kwargs={"client": client, "limit": limit},
        id="market_board_refresh",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
