from __future__ import annotations

from bisect import bisect_left
from collections import Counter
from enum import Enum
from typing import Sequence

from coinchart.models import AlignedRow, PricePoint, Series


class AlignmentMode(str, Enum):
    NEAREST = "nearest"
    # Pairs point i with point i regardless of timestamps; only correct when both
    # series share the same sampling grid.
    INDEX = "index"


def _points(series: Series | Sequence[PricePoint] | None) -> Sequence[PricePoint]:
    if series is None:
        return ()
    if isinstance(series, Series):
        return series.points
    return series


def modal_interval(series: Series | Sequence[PricePoint] | None) -> int | None:
    """Most common gap (ms) between consecutive points; ties go to the smaller gap."""
    pts = _points(series)
    if len(pts) < 2:
        return None
    gaps = Counter(b.timestamp - a.timestamp for a, b in zip(pts, pts[1:]))
    top = max(gaps.values())
    return min(g for g, n in gaps.items() if n == top)


def _tolerance(primary: Sequence[PricePoint], secondary: Sequence[PricePoint]) -> float:
    interval = modal_interval(primary)
    if interval is None:
        interval = modal_interval(secondary)
    if interval is None:
        return 0.0
    return abs(interval) / 2.0


def _nearest_index(timestamps: list[int], t: int, tolerance: float) -> int | None:
    i = bisect_left(timestamps, t)
    best: int | None = None
    best_d = 0
    for j in (i - 1, i):
        if 0 <= j < len(timestamps):
            d = abs(timestamps[j] - t)
            if best is None or d < best_d:
                best, best_d = j, d
    if best is None or best_d > tolerance:
        return None
    return best


def align_series(
    primary: Series | Sequence[PricePoint] | None,
    secondary: Series | Sequence[PricePoint] | None = None,
    *,
    mode: AlignmentMode = AlignmentMode.NEAREST,
) -> list[AlignedRow]:
    """Merge two independently sampled series onto the primary series' timeline.

    The primary series defines the rows; each row takes the secondary price
    nearest in time if it lies within half of the primary's modal sampling
    interval. When there is no primary series at all (e.g. its fetch failed),
    the secondary series is returned on its own so it stays visible.
    """
    p = _points(primary)
    s = _points(secondary)

    if primary is None:
        return [AlignedRow(timestamp=pt.timestamp, secondary_price=pt.price) for pt in s]
    if not p:
        return []
    if not s:
        return [AlignedRow(timestamp=pt.timestamp, primary_price=pt.price) for pt in p]
    if AlignmentMode(mode) is AlignmentMode.INDEX:
        return align_by_index(p, s)

    tol = _tolerance(p, s)
    s_ts = [pt.timestamp for pt in s]
    rows: list[AlignedRow] = []
    for pt in p:
        j = _nearest_index(s_ts, pt.timestamp, tol)
        rows.append(
            AlignedRow(
                timestamp=pt.timestamp,
                primary_price=pt.price,
                secondary_price=s[j].price if j is not None else None,
            )
        )
    return rows


def align_by_index(
    primary: Series | Sequence[PricePoint],
    secondary: Series | Sequence[PricePoint] | None,
) -> list[AlignedRow]:
    p = _points(primary)
    s = _points(secondary)
    return [
        AlignedRow(
            timestamp=pt.timestamp,
            primary_price=pt.price,
            secondary_price=s[i].price if i < len(s) else None,
        )
        for i, pt in enumerate(p)
    ]
