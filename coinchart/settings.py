from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from coinchart.alignment import AlignmentMode
from coinchart.coingecko import DEFAULT_BASE_URL
from coinchart.models import Granularity


def _get_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    v = os.environ.get(name)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _get_str(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name)
    if v is None:
        return default
    s = v.strip()
    return s if s else default


def _get_granularity(name: str, default: Granularity) -> Granularity:
    try:
        return Granularity.parse(_get_str(name, default.value) or default.value)
    except ValueError:
        return default


def _get_alignment(name: str, default: AlignmentMode) -> AlignmentMode:
    raw = (_get_str(name, default.value) or default.value).lower()
    try:
        return AlignmentMode(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    coingecko_base_url: str
    http_timeout_seconds: float
    top_assets_limit: int
    assets_refresh_seconds: int
    default_granularity: Granularity
    alignment: AlignmentMode
    timezone: str
    log_level: str

    @staticmethod
    def load() -> "Settings":
        return Settings(
            coingecko_base_url=(_get_str("COINCHART_COINGECKO_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL).rstrip("/"),
            http_timeout_seconds=max(1.0, _get_float("COINCHART_HTTP_TIMEOUT_SECONDS", 10.0)),
            top_assets_limit=max(1, min(250, _get_int("COINCHART_TOP_ASSETS_LIMIT", 20))),
            assets_refresh_seconds=max(10, _get_int("COINCHART_ASSETS_REFRESH_SECONDS", 60)),
            default_granularity=_get_granularity("COINCHART_DEFAULT_GRANULARITY", Granularity.DAYS_7),
            alignment=_get_alignment("COINCHART_ALIGNMENT", AlignmentMode.NEAREST),
            timezone=_get_str("COINCHART_TIMEZONE", "UTC") or "UTC",
            log_level=(_get_str("COINCHART_LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    def tzinfo(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc


def effective_settings_dict(settings: Settings) -> dict:
    d = asdict(settings)
    d["default_granularity"] = settings.default_granularity.value
    d["alignment"] = settings.alignment.value
    return d
