"""Label formatting for chart axes, tooltips and asset headers.

All helpers are pure: they take raw prices (floats) and raw timestamps
(epoch milliseconds) and return display strings.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

from coinchart.models import AlignedRow, Granularity

MISSING = "—"


def format_price(price: float | None) -> str:
    """USD with thousands separators, 2 to 6 fraction digits: 1234.5 -> "$1,234.50"."""
    if price is None:
        return MISSING
    v = float(price)
    whole, frac = f"{abs(v):,.6f}".split(".")
    frac = frac.rstrip("0").ljust(2, "0")
    sign = "-" if v < 0 else ""
    return f"{sign}${whole}.{frac}"


def format_price_short(price: float | None) -> str:
    if price is None:
        return MISSING
    v = float(price)
    if v >= 1e9:
        return f"${v / 1e9:.1f}B"
    if v >= 1e6:
        return f"${v / 1e6:.1f}M"
    if v >= 1e3:
        return f"${v / 1e3:.1f}k"
    return f"${v:.2f}"


def format_change_pct(change_pct: float | None) -> str:
    if change_pct is None:
        return MISSING
    return f"{float(change_pct):+.2f}%"


def change_direction(change_pct: float | None) -> str | None:
    if change_pct is None:
        return None
    return "up" if change_pct >= 0 else "down"


def format_date(timestamp_ms: int, granularity: Granularity | str, tz: tzinfo | None = None) -> str:
    g = Granularity.parse(granularity)
    dt = datetime.fromtimestamp(int(timestamp_ms) / 1000.0, tz=tz or timezone.utc)
    if g.intraday:
        return f"{dt:%H:%M}"
    # "%-d" is not portable
    return f"{dt:%b} {dt.day}"


def format_tooltip(
    row: AlignedRow,
    granularity: Granularity | str,
    *,
    primary_name: str,
    secondary_name: str | None = None,
    tz: tzinfo | None = None,
) -> list[str]:
    lines = [format_date(row.timestamp, granularity, tz=tz)]
    if row.primary_price is not None:
        lines.append(f"{primary_name}: {format_price(row.primary_price)}")
    if row.secondary_price is not None:
        lines.append(f"{secondary_name or 'Compare'}: {format_price(row.secondary_price)}")
    return lines
