"""In-memory PuzzleStore for local runs and tests."""

import asyncio
from collections import defaultdict

from chronoclue.interfaces.puzzle_store import (
    GenerationLogEntry,
    ImportedEvent,
    PuzzleSelection,
    YearStats,
)


class InMemoryPuzzleStore:
    """Keeps events, puzzle history and generation logs in process memory."""

    def __init__(
        self,
        events: dict[int, list[ImportedEvent]] | None = None,
        selections: list[PuzzleSelection] | None = None,
        used_counts: dict[int, int] | None = None,
    ):
        self._events: dict[int, list[ImportedEvent]] = defaultdict(list)
        for year, year_events in (events or {}).items():
            self._events[year].extend(year_events)
        self._selections = list(selections or [])
        self._used = dict(used_counts or {})
        self._logs: list[GenerationLogEntry] = []
        self._lock = asyncio.Lock()

    @property
    def logs(self) -> list[GenerationLogEntry]:
        return list(self._logs)

    def events_for(self, year: int) -> list[ImportedEvent]:
        return list(self._events.get(year, []))

    def add_selection(self, year: int) -> None:
        self._selections.append(PuzzleSelection(target_year=year))

    async def log_generation_attempt(self, entry: GenerationLogEntry) -> None:
        async with self._lock:
            self._logs.append(entry)

    async def import_year_events(self, year: int, events: list[ImportedEvent]) -> None:
        async with self._lock:
            known = {existing.event for existing in self._events[year]}
            for event in events:
                if event.event not in known:
                    self._events[year].append(event)
                    known.add(event.event)

    async def get_year_stats(self) -> list[YearStats]:
        async with self._lock:
            stats = []
            for year in sorted(self._events):
                total = len(self._events[year])
                used = min(total, self._used.get(year, 0))
                stats.append(YearStats(year=year, total=total, used=used, available=total - used))
            return stats

    async def get_puzzle_selections(self) -> list[PuzzleSelection]:
        async with self._lock:
            return list(self._selections)
