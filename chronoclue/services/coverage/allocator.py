"""Coverage-aware work selection for daily batches.

Years are picked from the inventory gaps (no clues, or fewer than the
per-year minimum). Most of a batch goes to years players keep getting
asked about; the rest is spread across eras, favoring whichever era is
least covered so far.
"""

import asyncio
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from chronoclue.core.constants import (
    HIGH_DEMAND_SHARE,
    MIN_EVENTS_PER_YEAR,
    YEAR_RANGE_END,
    YEAR_RANGE_START,
)
from chronoclue.core.models import ERA_BUCKETS, EraBucket
from chronoclue.core.utils.text_validation import coverage_era_bucket
from chronoclue.interfaces.puzzle_store import PuzzleStore

WorkPriority = Literal["missing", "low_quality"]

# Years in each coverage era across the full range
ERA_TOTALS: dict[EraBucket, int] = {
    "ancient": 500 - YEAR_RANGE_START + 1,
    "medieval": 1499 - 501 + 1,
    "modern": YEAR_RANGE_END - 1500 + 1,
}


def _empty_era_counts() -> dict[EraBucket, int]:
    return {era: 0 for era in ERA_BUCKETS}


@dataclass(frozen=True)
class CoverageGaps:
    missing_years: list[int]
    insufficient_years: list[int]
    coverage_by_era: dict[EraBucket, float]


@dataclass(frozen=True)
class PuzzleDemand:
    # Years used more than once, most frequent first
    high_demand_years: list[int]
    demand_by_era: dict[EraBucket, int]
    selection_frequency: dict[int, int]


@dataclass(frozen=True)
class CoverageStrategy:
    target_years: list[int]
    priority: WorkPriority
    era_balance: dict[EraBucket, int] = field(default_factory=_empty_era_counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetYears": list(self.target_years),
            "priority": self.priority,
            "eraBalance": dict(self.era_balance),
        }


class CoverageAllocator:
    """Chooses which years a batch should generate clues for."""

    def __init__(self, store: PuzzleStore):
        self._store = store

    async def analyze_coverage_gaps(self) -> CoverageGaps:
        stats = await self._store.get_year_stats()
        totals = {
            stat.year: stat.total
            for stat in stats
            if YEAR_RANGE_START <= stat.year <= YEAR_RANGE_END
        }

        missing = []
        insufficient = []
        covered = _empty_era_counts()
        for year in range(YEAR_RANGE_START, YEAR_RANGE_END + 1):
            total = totals.get(year, 0)
            if total <= 0:
                missing.append(year)
                continue
            covered[coverage_era_bucket(year)] += 1
            if total < MIN_EVENTS_PER_YEAR:
                insufficient.append(year)

        return CoverageGaps(
            missing_years=missing,
            insufficient_years=insufficient,
            coverage_by_era={era: covered[era] / ERA_TOTALS[era] for era in ERA_BUCKETS},
        )

    async def analyze_puzzle_demand(self) -> PuzzleDemand:
        selections = await self._store.get_puzzle_selections()
        frequency = Counter(selection.target_year for selection in selections)

        high_demand = sorted(
            (year for year, count in frequency.items() if count > 1),
            key=lambda year: (-frequency[year], year),
        )
        demand_by_era = _empty_era_counts()
        for selection in selections:
            demand_by_era[coverage_era_bucket(selection.target_year)] += 1

        return PuzzleDemand(
            high_demand_years=high_demand,
            demand_by_era=demand_by_era,
            selection_frequency=dict(frequency),
        )

    async def select_work(self, count: int) -> CoverageStrategy:
        """Pick up to ``count`` gap years for the next batch."""
        gaps, demand = await asyncio.gather(
            self.analyze_coverage_gaps(), self.analyze_puzzle_demand()
        )
        strategy = plan_strategy(count, gaps, demand)
        logger.info(
            f"Coverage strategy: {len(strategy.target_years)} years "
            f"(priority={strategy.priority}, eras={strategy.era_balance})"
        )
        return strategy


def plan_strategy(count: int, gaps: CoverageGaps, demand: PuzzleDemand) -> CoverageStrategy:
    """Pure selection step behind ``CoverageAllocator.select_work``."""
    pool = set(gaps.missing_years) | set(gaps.insufficient_years)
    if count <= 0 or not pool:
        return CoverageStrategy(target_years=[], priority="low_quality")

    high_demand_pool = [year for year in demand.high_demand_years if year in pool]
    high_demand_slots = min(math.ceil(HIGH_DEMAND_SHARE * count), len(high_demand_pool), count)
    high_demand = high_demand_pool[:high_demand_slots]

    remaining = pool - set(high_demand)
    strategic = _pick_strategic(
        remaining, count - len(high_demand), gaps.coverage_by_era
    )

    selected = _ensure_era_spread(high_demand + strategic, pool, count)

    era_balance = _empty_era_counts()
    for year in selected:
        era_balance[coverage_era_bucket(year)] += 1

    priority: WorkPriority = "missing" if any(y in selected for y in high_demand) else "low_quality"
    return CoverageStrategy(target_years=selected, priority=priority, era_balance=era_balance)


def _by_era(years: set[int]) -> dict[EraBucket, list[int]]:
    buckets: dict[EraBucket, list[int]] = {era: [] for era in ERA_BUCKETS}
    for year in sorted(years):
        buckets[coverage_era_bucket(year)].append(year)
    return buckets


def _pick_strategic(
    candidates: set[int], slots: int, coverage_by_era: dict[EraBucket, float]
) -> list[int]:
    if slots <= 0 or not candidates:
        return []

    buckets = _by_era(candidates)
    projected = dict(coverage_by_era)
    picks: list[int] = []

    def take(era: EraBucket) -> None:
        picks.append(buckets[era].pop(0))
        projected[era] = projected.get(era, 0.0) + 1 / ERA_TOTALS[era]

    # One year per era first
    for era in ERA_BUCKETS:
        if len(picks) >= slots:
            break
        if buckets[era]:
            take(era)

    # Then always feed the least covered era
    while len(picks) < slots:
        open_eras = [era for era in ERA_BUCKETS if buckets[era]]
        if not open_eras:
            break
        take(min(open_eras, key=lambda era: (projected.get(era, 0.0), ERA_BUCKETS.index(era))))

    return picks


def _ensure_era_spread(selected: list[int], pool: set[int], count: int) -> list[int]:
    """Swap trailing picks so every era with gap years is represented when count allows."""
    buckets = _by_era(pool - set(selected))
    eras_with_gaps = {coverage_era_bucket(year) for year in pool}
    if count < len(eras_with_gaps):
        return selected

    result = list(selected)
    for era in ERA_BUCKETS:
        represented = Counter(coverage_era_bucket(year) for year in result)
        if represented[era] or not buckets[era]:
            continue
        # Replace the last pick from an era that has more than one
        for index in range(len(result) - 1, -1, -1):
            if represented[coverage_era_bucket(result[index])] > 1:
                result[index] = buckets[era].pop(0)
                break
    return result
