"""Persistence and alert contracts consumed by the pipeline."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from chronoclue.core.models import Era, EventMetadata


@dataclass(frozen=True)
class YearStats:
    """Clue inventory for one year."""

    year: int
    total: int
    used: int = 0
    available: int = 0


@dataclass(frozen=True)
class PuzzleSelection:
    """One historical puzzle, identified by the year it asked for."""

    target_year: int


@dataclass(frozen=True)
class ImportedEvent:
    event: str
    metadata: EventMetadata | None = None


@dataclass(frozen=True)
class GenerationLogEntry:
    """Record of one completed pipeline run."""

    year: int
    era: Era
    status: str
    attempt_count: int
    events_generated: int
    token_usage: dict[str, int] = field(default_factory=dict)
    cost_usd: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    fallback_count: int = 0
    error_message: str | None = None
    quality_scores: dict[str, Any] | None = None


class PuzzleStore(Protocol):
    """Document store holding clues, puzzles and generation logs."""

    async def log_generation_attempt(self, entry: GenerationLogEntry) -> None: ...

    async def import_year_events(self, year: int, events: list[ImportedEvent]) -> None: ...

    async def get_year_stats(self) -> list[YearStats]: ...

    async def get_puzzle_selections(self) -> list[PuzzleSelection]: ...


class AlertNotifier(Protocol):
    async def run_alert_checks(self) -> None: ...
