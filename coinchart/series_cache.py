from __future__ import annotations

from dataclasses import dataclass, field

from coinchart.models import Series, SeriesKey


@dataclass
class SeriesCache:
    # No TTL and no eviction: history stays valid for the whole session and the
    # key space (top assets x five granularities) is small.
    _entries: dict[SeriesKey, Series] = field(default_factory=dict)

    hits: int = 0
    misses: int = 0

    def get(self, key: SeriesKey) -> Series | None:
        series = self._entries.get(key)
        if series is None:
            self.misses += 1
        else:
            self.hits += 1
        return series

    def put(self, key: SeriesKey, series: Series) -> None:
        self._entries[key] = series

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
