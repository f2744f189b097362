"""Structured stage logging helpers."""

from typing import Any

from loguru import logger


def _format_context(context: dict[str, Any]) -> str:
    parts = [f"{key}={value}" for key, value in context.items() if value is not None]
    return f" ({', '.join(parts)})" if parts else ""


def log_stage_success(stage: str, message: str, **context: Any) -> None:
    logger.bind(stage=stage, **context).info(f"[{stage}] {message}{_format_context(context)}")


def log_stage_error(stage: str, error: BaseException | str, **context: Any) -> None:
    text = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
    logger.bind(stage=stage, **context).error(f"[{stage}] {text}{_format_context(context)}")
