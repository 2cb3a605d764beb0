"""Structured JSON logs for plan generation runs.

Every logger created by setup_structured_logger() writes one JSON object per
line to LOG_DIR/<name>.jsonl, rotated at midnight and kept for
LOG_RETENTION_DAYS. Records emitted inside a plan_run() block carry that
run's id, including records logged from the per-day tasks the run fans out
to (asyncio tasks inherit the context they were created in).
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

# ============================================================================
# Configuration
# ============================================================================

LOG_DIR = Path(os.getenv("LOG_DIR", "/tmp/planner_logs"))
LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "7"))
STRUCTURED_LOG_LEVEL = os.getenv("STRUCTURED_LOG_LEVEL", "INFO").upper()
MAX_LOGGED_TEXT_CHARS = 5000

_current_run_id: "contextvars.ContextVar[Optional[str]]" = contextvars.ContextVar(
    "plan_run_id", default=None
)
_log_dir_ready = False


def current_run_id() -> Optional[str]:
    """Id of the plan_run() block we are inside, if any."""
    return _current_run_id.get()


# ============================================================================
# JSON Formatter
# ============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields passed to log_event() are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        run_id = _current_run_id.get()
        if run_id:
            entry["run_id"] = run_id
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


# ============================================================================
# Logger Setup
# ============================================================================


def prune_old_logs() -> int:
    """Delete log files older than the retention window.

    Returns:
        Number of files removed
    """
    cutoff = time.time() - LOG_RETENTION_DAYS * 86400
    removed = 0
    for path in LOG_DIR.glob("*.jsonl*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError as e:
            print(f"⚠️  Could not prune {path.name}: {e}", file=sys.stderr)
    if removed:
        print(f"🗑️  Pruned {removed} old log file(s) from {LOG_DIR}", file=sys.stderr)
    return removed


def _ensure_log_dir() -> bool:
    global _log_dir_ready
    if not _log_dir_ready:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"⚠️  Structured logs disabled, cannot create {LOG_DIR}: {e}", file=sys.stderr)
            return False
        prune_old_logs()
        _log_dir_ready = True
    return True


def setup_structured_logger(name: str) -> logging.Logger:
    """Logger writing JSON lines to LOG_DIR/<name>.jsonl.

    Safe to call repeatedly: the handler is attached once. When the log
    directory cannot be created the logger gets a NullHandler instead, so
    generation never fails because of logging.

    Args:
        name: Logger name (e.g., "planner.orchestrator", "planner.assembler")
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, STRUCTURED_LOG_LEVEL, logging.INFO))
    if logger.handlers:
        return logger

    handler: logging.Handler
    if _ensure_log_dir():
        handler = logging.handlers.TimedRotatingFileHandler(
            filename=LOG_DIR / f"{name}.jsonl",
            when="midnight",
            backupCount=LOG_RETENTION_DAYS,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.NullHandler()
    logger.addHandler(handler)
    return logger


# ============================================================================
# Emitting
# ============================================================================


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "info",
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """Emit one structured record; keyword arguments become JSON fields."""
    logger.log(getattr(logging, level.upper()), event, extra={"fields": fields}, exc_info=exc_info)


def log_model_output(logger: logging.Logger, label: str, output: Any, level: str = "debug") -> None:
    """Record raw model output (or any payload), cut at MAX_LOGGED_TEXT_CHARS."""
    if isinstance(output, str):
        text = output
    else:
        try:
            text = json.dumps(output, indent=2, default=str)
        except (TypeError, ValueError):
            text = repr(output)

    size = len(text)
    truncated = size > MAX_LOGGED_TEXT_CHARS
    if truncated:
        text = text[:MAX_LOGGED_TEXT_CHARS] + f"\n... ({size - MAX_LOGGED_TEXT_CHARS} more chars)"
    log_event(logger, label, level=level, chars=size, truncated=truncated, output=text)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


@contextmanager
def plan_run(logger: logging.Logger, name: str, **context: Any) -> Iterator[str]:
    """Tag every record logged inside the block with a fresh run id.

    Logs "<name> started", then "<name> completed" or "<name> failed" with the
    elapsed milliseconds. Exceptions propagate unchanged.

    Example:
        with plan_run(logger, "plan_generation", start_date="2026-10-14") as run_id:
            ...
    """
    run_id = uuid.uuid4().hex[:12]
    token = _current_run_id.set(run_id)
    started = time.perf_counter()
    log_event(logger, f"{name} started", phase="start", **context)
    try:
        yield run_id
    except Exception as e:
        log_event(
            logger,
            f"{name} failed",
            level="error",
            exc_info=True,
            phase="error",
            duration_ms=_elapsed_ms(started),
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        raise
    else:
        log_event(
            logger,
            f"{name} completed",
            phase="complete",
            duration_ms=_elapsed_ms(started),
            **context,
        )
    finally:
        _current_run_id.reset(token)
