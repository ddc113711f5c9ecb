from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from coinchart.alignment import AlignmentMode, align_series
from coinchart.errors import ErrorKind, ProviderError, Superseded
from coinchart.models import AlignedRow, Granularity, Series, SeriesKey
from coinchart.series_cache import SeriesCache

logger = logging.getLogger(__name__)


class Slot(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SlotStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class SlotState:
    status: SlotStatus = SlotStatus.IDLE
    key: SeriesKey | None = None
    seq: int = 0
    series: Series | None = None
    error: ErrorKind | None = None


@dataclass(frozen=True)
class ChartViewModel:
    rows: tuple[AlignedRow, ...]
    loading: bool
    error: ErrorKind | None
    granularity: Granularity
    primary: SlotState
    secondary: SlotState


class HistorySource(Protocol):
    async def fetch_history(self, asset_id: str, granularity: Granularity | str) -> Series: ...


Listener = Callable[[ChartViewModel], None]

_KEEP = object()


def _clean_id(value: object) -> str | None:
    if value is None:
        return None
    s = str(value).strip().lower()
    return s or None


class RequestCoordinator:
    """Drives the primary/compare fetch lifecycle and derives the chart view-model.

    Each slot is a small state machine (idle -> loading -> ready|failed). Every
    transition stamps the slot with a fresh sequence number; a fetch that
    completes with an older number is discarded, so a slow response for an
    earlier selection can never overwrite a newer one.
    """

    def __init__(
        self,
        client: HistorySource,
        cache: SeriesCache | None = None,
        *,
        granularity: Granularity | str = Granularity.DAYS_7,
        alignment: AlignmentMode | str = AlignmentMode.NEAREST,
    ) -> None:
        self._client = client
        self._cache = cache if cache is not None else SeriesCache()
        self._alignment = AlignmentMode(alignment)
        self._granularity = Granularity.parse(granularity)
        self._asset_id: str | None = None
        self._compare_id: str | None = None

        self._seq = itertools.count(1)
        self._states: dict[Slot, SlotState] = {Slot.PRIMARY: SlotState(), Slot.SECONDARY: SlotState()}
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []
        self._view = self._build_view()

    @property
    def cache(self) -> SeriesCache:
        return self._cache

    @property
    def asset_id(self) -> str | None:
        return self._asset_id

    @property
    def compare_asset_id(self) -> str | None:
        return self._compare_id

    @property
    def granularity(self) -> Granularity:
        return self._granularity

    @property
    def view_model(self) -> ChartViewModel:
        return self._view

    def state(self, slot: Slot) -> SlotState:
        return self._states[Slot(slot)]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def select(
        self,
        *,
        asset_id: object = _KEEP,
        compare_asset_id: object = _KEEP,
        granularity: Granularity | str | None = None,
    ) -> ChartViewModel:
        """Apply a selection change. Omitted arguments keep their value; None clears a slot."""
        if granularity is not None:
            self._granularity = Granularity.parse(granularity)
        if asset_id is not _KEEP:
            self._asset_id = _clean_id(asset_id)
        if compare_asset_id is not _KEEP:
            self._compare_id = _clean_id(compare_asset_id)

        changed = False
        for slot in Slot:
            changed = self._sync_slot(slot) or changed
        if changed:
            self._publish()
        return self._view

    def clear_compare(self) -> ChartViewModel:
        return self.select(compare_asset_id=None)

    def refresh(self) -> ChartViewModel:
        """Re-fetch every selected slot, bypassing the cache."""
        changed = False
        for slot in Slot:
            changed = self._sync_slot(slot, force=True) or changed
        if changed:
            self._publish()
        return self._view

    async def wait_idle(self) -> ChartViewModel:
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return self._view
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _key_for(self, slot: Slot) -> SeriesKey | None:
        asset = self._asset_id if slot is Slot.PRIMARY else self._compare_id
        return SeriesKey(asset, self._granularity) if asset else None

    def _sync_slot(self, slot: Slot, *, force: bool = False) -> bool:
        key = self._key_for(slot)
        current = self._states[slot]
        if key is None:
            if current.key is None and current.status is SlotStatus.IDLE:
                return False
            # bumping seq orphans any in-flight fetch for the old key
            self._states[slot] = SlotState(seq=next(self._seq))
            return True
        if key == current.key and not force and current.status is not SlotStatus.FAILED:
            return False

        seq = next(self._seq)
        if not force:
            cached = self._cache.get(key)
            if cached is not None:
                self._states[slot] = SlotState(status=SlotStatus.READY, key=key, seq=seq, series=cached)
                return True

        task = asyncio.get_running_loop().create_task(self._run_fetch(slot, key, seq))
        self._states[slot] = SlotState(status=SlotStatus.LOADING, key=key, seq=seq)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return True

    async def _run_fetch(self, slot: Slot, key: SeriesKey, seq: int) -> None:
        try:
            series = await self._client.fetch_history(key.asset_id, key.granularity)
        except ProviderError as e:
            outcome = SlotState(status=SlotStatus.FAILED, key=key, seq=seq, error=e.kind)
        except Exception:
            logger.exception("Unexpected error fetching %s history for %s", key.granularity.value, key.asset_id)
            outcome = SlotState(status=SlotStatus.FAILED, key=key, seq=seq, error=ErrorKind.PROVIDER_UNAVAILABLE)
        else:
            outcome = SlotState(status=SlotStatus.READY, key=key, seq=seq, series=series)

        try:
            self._apply(slot, outcome)
        except Superseded as e:
            logger.debug("Discarding stale result: %s", e)

    def _apply(self, slot: Slot, outcome: SlotState) -> None:
        latest = self._states[slot].seq
        if outcome.seq != latest:
            raise Superseded(slot.value, outcome.seq, latest)
        if outcome.status is SlotStatus.READY and outcome.key is not None and outcome.series is not None:
            self._cache.put(outcome.key, outcome.series)
        self._states[slot] = outcome
        self._publish()

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("History fetch task crashed", exc_info=exc)

    def _build_view(self) -> ChartViewModel:
        p = self._states[Slot.PRIMARY]
        s = self._states[Slot.SECONDARY]
        primary = p.series if p.status is SlotStatus.READY else None
        secondary = s.series if s.status is SlotStatus.READY else None
        rows: tuple[AlignedRow, ...] = ()
        if primary is not None or secondary is not None:
            rows = tuple(align_series(primary, secondary, mode=self._alignment))
        return ChartViewModel(
            rows=rows,
            loading=SlotStatus.LOADING in (p.status, s.status),
            error=p.error or s.error,
            granularity=self._granularity,
            primary=p,
            secondary=s,
        )

    def _publish(self) -> None:
        self._view = self._build_view()
        for listener in list(self._listeners):
            listener(self._view)
