from .batch_runner import BatchRunner, BatchSummary, clamp_target_count
from .orchestrator import (
    GenerationStatus,
    PipelineMetadata,
    PipelineOrchestrator,
    PipelineState,
    YearGenerationResult,
)
from .usage import StageUsage, UsageSummary

__all__ = [
    "BatchRunner",
    "BatchSummary",
    "GenerationStatus",
    "PipelineMetadata",
    "PipelineOrchestrator",
    "PipelineState",
    "StageUsage",
    "UsageSummary",
    "YearGenerationResult",
    "clamp_target_count",
]
