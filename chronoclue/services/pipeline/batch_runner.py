"""Daily batch generation across many years.

Every selected year runs concurrently. One year failing, even by raising,
never stops its siblings: the exception is logged and turned into a
failed result for that year alone.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from chronoclue.core.config.pipeline_config import PipelineConfig
from chronoclue.core.constants import MAX_TARGET_COUNT, MIN_TARGET_COUNT
from chronoclue.core.utils.stage_logging import log_stage_error, log_stage_success
from chronoclue.interfaces.puzzle_store import (
    AlertNotifier,
    GenerationLogEntry,
    ImportedEvent,
    PuzzleStore,
)
from chronoclue.services.coverage.allocator import CoverageAllocator
from chronoclue.services.pipeline.orchestrator import PipelineOrchestrator, YearGenerationResult

STAGE = "Orchestrator"


def clamp_target_count(value: Any, default: int) -> int:
    """Clamp a requested batch size to [MIN_TARGET_COUNT, MAX_TARGET_COUNT].

    Missing or non-finite values fall back to ``default``.
    """
    if value is None:
        value = default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(MIN_TARGET_COUNT, min(MAX_TARGET_COUNT, math.floor(number)))


def build_log_entry(result: YearGenerationResult) -> GenerationLogEntry:
    total = result.usage.total
    return GenerationLogEntry(
        year=result.year,
        era=result.era,
        status=result.status.value,
        attempt_count=result.metadata.attempts,
        events_generated=len(result.events) if result.succeeded else 0,
        token_usage={
            "input": total.input_tokens,
            "output": total.output_tokens,
            "reasoning": total.reasoning_tokens,
            "total": total.total_tokens,
        },
        cost_usd=total.cost_usd,
        cache_hits=total.cache_hits,
        cache_misses=total.cache_misses,
        fallback_count=total.fallbacks,
        error_message=None if result.succeeded else (result.error or result.reason),
        quality_scores=result.quality_scores.to_dict() if result.quality_scores else None,
    )


@dataclass
class BatchSummary:
    attempted_years: list[int] = field(default_factory=list)
    successes: int = 0
    failures: int = 0
    failed_years: list[int] = field(default_factory=list)
    total_cost_usd: float = 0.0
    duration_ms: int = 0
    results: list[YearGenerationResult] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attemptedYears": list(self.attempted_years),
            "successes": self.successes,
            "failures": self.failures,
            "failedYears": list(self.failed_years),
            "totalCostUsd": self.total_cost_usd,
            "durationMs": self.duration_ms,
        }


class BatchRunner:
    """Selects work, runs the per-year pipeline and persists the outcome."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        store: PuzzleStore,
        allocator: CoverageAllocator | None = None,
        alerts: AlertNotifier | None = None,
        config: PipelineConfig | None = None,
    ):
        self._orchestrator = orchestrator
        self._store = store
        self._allocator = allocator or CoverageAllocator(store)
        self._alerts = alerts
        self._config = config or PipelineConfig()
        self._semaphore = (
            asyncio.Semaphore(self._config.max_concurrent_runs)
            if self._config.max_concurrent_runs > 0
            else None
        )

    async def generate_year(self, year: int) -> YearGenerationResult:
        """Run the pipeline for one year and record the outcome.

        A log entry is always written; events are imported only on success.
        """
        result = await self._orchestrator.run(year)

        await self._store.log_generation_attempt(build_log_entry(result))
        if result.succeeded:
            # Metadata travels with each clue for diversity-aware puzzle composition
            await self._store.import_year_events(
                year,
                [ImportedEvent(event=e.event_text, metadata=e.metadata) for e in result.events],
            )
        return result

    async def generate_daily_batch(self, target_count: Any = None) -> BatchSummary:
        count = clamp_target_count(target_count, self._config.default_target_count)
        strategy = await self._allocator.select_work(count)

        log_stage_success(
            STAGE,
            "Coverage strategy selected",
            years_selected=len(strategy.target_years),
            selected_years=strategy.target_years,
            priority=strategy.priority,
            era_balance=strategy.era_balance,
        )

        started = time.perf_counter()
        results = await asyncio.gather(
            *(self._run_isolated(year) for year in strategy.target_years)
        )
        duration_ms = int((time.perf_counter() - started) * 1000)

        await self._run_alert_checks()

        summary = BatchSummary(
            attempted_years=[result.year for result in results],
            successes=sum(1 for result in results if result.succeeded),
            failures=sum(1 for result in results if not result.succeeded),
            failed_years=[result.year for result in results if not result.succeeded],
            total_cost_usd=sum(result.usage.total.cost_usd for result in results),
            duration_ms=duration_ms,
            results=list(results),
        )

        log_stage_success(
            STAGE,
            "Batch completed",
            attempted_years=len(summary.attempted_years),
            success_count=summary.successes,
            failure_count=summary.failures,
            failed_years=summary.failed_years,
            total_cost_usd=round(summary.total_cost_usd, 6),
            duration_ms=duration_ms,
            avg_time_per_year=(
                round(duration_ms / len(results)) if results else 0
            ),
        )
        return summary

    async def _run_isolated(self, year: int) -> YearGenerationResult:
        try:
            if self._semaphore is None:
                return await self.generate_year(year)
            async with self._semaphore:
                return await self.generate_year(year)
        except Exception as e:
            log_stage_error(STAGE, e, year=year)
            return YearGenerationResult.from_exception(year, e)

    async def _run_alert_checks(self) -> None:
        if self._alerts is None:
            return
        try:
            await self._alerts.run_alert_checks()
        except Exception as e:
            logger.error(f"Alert checks failed after batch: {e}")
