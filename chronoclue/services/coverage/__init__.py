from .allocator import (
    CoverageAllocator,
    CoverageGaps,
    CoverageStrategy,
    PuzzleDemand,
    plan_strategy,
)

__all__ = [
    "CoverageAllocator",
    "CoverageGaps",
    "CoverageStrategy",
    "PuzzleDemand",
    "plan_strategy",
]
