from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class Granularity(str, Enum):
    HOUR_1 = "1"
    HOURS_24 = "24"
    DAYS_7 = "7"
    DAYS_30 = "30"
    DAYS_90 = "90"

    @property
    def label(self) -> str:
        return _GRANULARITY_LABELS[self]

    @property
    def intraday(self) -> bool:
        return self in (Granularity.HOUR_1, Granularity.HOURS_24)

    @classmethod
    def parse(cls, value: "Granularity | str | int") -> "Granularity":
        if isinstance(value, Granularity):
            return value
        s = str(value).strip()
        try:
            return cls(s)
        except ValueError:
            raise ValueError(f"unknown granularity: {value!r}") from None


_GRANULARITY_LABELS = {
    Granularity.HOUR_1: "1 Hour",
    Granularity.HOURS_24: "24 Hours",
    Granularity.DAYS_7: "7 Days",
    Granularity.DAYS_30: "30 Days",
    Granularity.DAYS_90: "90 Days",
}


class Asset(BaseModel):
    """Market snapshot of one asset as returned by /coins/markets."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    symbol: str
    name: str
    image: str | None = None
    current_price: float | None = None
    market_cap: float | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None
    last_updated: str | None = None


class TrendingCoin(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    symbol: str
    thumb: str | None = None
    market_cap_rank: int | None = None


@dataclass(frozen=True)
class PricePoint:
    timestamp: int  # ms since epoch
    price: float


class SeriesKey(NamedTuple):
    asset_id: str
    granularity: Granularity


@dataclass(frozen=True)
class Series:
    asset_id: str
    granularity: Granularity
    points: tuple[PricePoint, ...] = ()

    @property
    def key(self) -> SeriesKey:
        return SeriesKey(self.asset_id, self.granularity)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)


@dataclass(frozen=True)
class AlignedRow:
    timestamp: int
    primary_price: float | None = None
    secondary_price: float | None = None

    def __post_init__(self) -> None:
        if self.primary_price is None and self.secondary_price is None:
            raise ValueError("aligned row needs at least one price")
