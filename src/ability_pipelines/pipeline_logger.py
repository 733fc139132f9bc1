"""Structured JSON logging for pipeline execution.

Writes JSON-lines to disk so agents and humans can debug pipeline
runs after the fact. Each log entry is a single JSON object on one line.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

_logger = logging.getLogger("ability_pipelines")


def configure_logging(
    log_dir: str | Path, level: int = logging.DEBUG
) -> None:
    """Set up pipeline logging to write JSON-lines to a file.

    Args:
        log_dir: Directory to write ``pipeline.log`` into.
        level: Logging level (default: DEBUG).
    """
    log_path = Path(log_dir) / "pipeline.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(str(log_path))
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    _logger.addHandler(handler)
    _logger.setLevel(level)


def _log(event: dict[str, Any], level: int = logging.INFO) -> None:
    _logger.log(level, json.dumps(event, default=str))


def log_step_start(path: str, step_type: str, depth: int) -> None:
    _log({"event": "step_start", "path": path, "step_type": step_type, "depth": depth})


def log_step_complete(path: str, step_type: str, duration_ms: float) -> None:
    _log({
        "event": "step_complete",
        "path": path,
        "step_type": step_type,
        "duration_ms": round(duration_ms, 2),
    })


def log_step_error(path: str, step_type: str, error: str, code: str) -> None:
    _log(
        {"event": "step_error", "path": path, "step_type": step_type, "error": error, "code": code},
        logging.ERROR,
    )


def log_branch_error(path: str, error: str) -> None:
    """A parallel branch failed; the failure was recorded as data."""
    _log({"event": "branch_error", "path": path, "error": error}, logging.WARNING)


def log_catch_error(path: str, error: str) -> None:
    """A catch block failed; its error replaced ``error`` and was contained."""
    _log({"event": "catch_error", "path": path, "error": error}, logging.WARNING)


def log_finally_error(path: str, error: str) -> None:
    """A finally block failed; the failure was contained."""
    _log({"event": "finally_error", "path": path, "error": error}, logging.WARNING)


def log_pipeline_complete(success: bool, steps_executed: int, duration_ms: float) -> None:
    _log({
        "event": "pipeline_complete",
        "success": success,
        "steps_executed": steps_executed,
        "duration_ms": round(duration_ms, 2),
    })


def log_tokens_restored(count: int) -> None:
    _log({"event": "tokens_restored", "count": count}, logging.DEBUG)


def log_capability_replaced(name: str) -> None:
    _log({"event": "capability_replaced", "name": name}, logging.WARNING)
