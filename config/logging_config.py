# config/logging_config.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Logging Configuration v1.0                                ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Loguru Integration                                                    ║
║  ✓ Rotating File Sinks (app / errors / agents / jsonl)                   ║
║  ✓ Stdlib Logging Interception                                           ║
║  ✓ Model / Run Context Binding                                           ║
║  ✓ Execution Time Decorator                                              ║
╚════════════════════════════════════════════════════════════════════════════╝

Usage:
```python
    from config.logging_config import setup_logging, get_logger, LogContext

    setup_logging(log_level="DEBUG")
    log = get_logger(__name__, component="patching")

    with LogContext(model_id="churn-v2", run_id=run_id):
        log.info("Validating candidates")
```

Dependencies:
    • loguru
"""

from __future__ import annotations

import logging
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from config.settings import settings

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__ = "1.0.0"
__author__ = "DriftFix Team"

__all__ = [
    "setup_logging",
    "get_logger",
    "log_execution_time",
    "LogContext",
    "set_log_level"
]


# ═══════════════════════════════════════════════════════════════════════════
# Stdlib Logging Interception
# ═══════════════════════════════════════════════════════════════════════════

class InterceptHandler(logging.Handler):
    """
    🔌 **Stdlib Logging Interceptor**

    Routes standard library logging (numpy/scipy warnings, third-party
    loggers) to loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _patch_record(record: Dict[str, Any]) -> None:
    """Default model/run placeholders for records outside a LogContext."""
    extra = record["extra"]
    extra.setdefault("model_id", "-")
    extra.setdefault("run_id", "-")


def _agents_filter(record: Dict[str, Any]) -> bool:
    """Keep records emitted by bound agents/components."""
    extra = record.get("extra") or {}
    return bool(extra.get("agent")) or "agents" in (record.get("name") or "")


# ═══════════════════════════════════════════════════════════════════════════
# Log Formats
# ═══════════════════════════════════════════════════════════════════════════

LOG_FORMAT_HUMAN = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "model=<blue>{extra[model_id]}</blue> run=<blue>{extra[run_id]}</blue> | "
    "<level>{message}</level>"
)

LOG_FORMAT_COMPACT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
)


# ═══════════════════════════════════════════════════════════════════════════
# Initialization State
# ═══════════════════════════════════════════════════════════════════════════

_INITIALIZED_FLAG = False
_SINK_IDS: List[int] = []


# ═══════════════════════════════════════════════════════════════════════════
# Main Setup
# ═══════════════════════════════════════════════════════════════════════════

def setup_logging(
    app_name: Optional[str] = None,
    log_level: Optional[str] = None,
    *,
    enable_json: Optional[bool] = None,
    console_compact: Optional[bool] = None,
    logs_path: Optional[Union[str, Path]] = None,
    reset_existing: bool = False
) -> None:
    """
    🔧 **Setup Centralized Logging**

    Idempotent - can be called multiple times safely.

    Args:
        app_name: Application name
        log_level: Log level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
        enable_json: Enable JSONL sink
        console_compact: Use compact console format
        logs_path: Directory for log files
        reset_existing: Force re-initialization

    Creates:
      • Console sink (stderr, colorized)
      • app.log (all logs)
      • errors.log (ERROR+ only)
      • agents.log (agent-bound records)
      • app.jsonl (structured JSON, if enabled)

    File sinks are skipped when ``TEST_MODE`` is on.
    """
    global _INITIALIZED_FLAG

    if _INITIALIZED_FLAG and not reset_existing:
        return

    app_name = app_name or settings.APP_NAME
    log_level = (log_level or settings.LOG_LEVEL).upper()
    logs_dir = Path(logs_path or settings.LOGS_PATH).resolve()
    rotation = settings.LOG_ROTATION
    retention = settings.LOG_RETENTION
    enable_json = settings.LOG_JSON_ENABLED if enable_json is None else enable_json
    console_compact = (
        settings.LOG_CONSOLE_COMPACT if console_compact is None else console_compact
    )

    try:
        logger.remove()
    except ValueError:
        pass

    _SINK_IDS.clear()

    logger.configure(
        extra={"model_id": "-", "run_id": "-", "app": app_name},
        patcher=_patch_record
    )

    # Console sink
    _SINK_IDS.append(
        logger.add(
            sys.stderr,
            format=LOG_FORMAT_COMPACT if console_compact else LOG_FORMAT_HUMAN,
            level=log_level,
            colorize=True,
            backtrace=(log_level == "DEBUG"),
            diagnose=False
        )
    )

    if not settings.TEST_MODE:
        logs_dir.mkdir(parents=True, exist_ok=True)

        _SINK_IDS.append(
            logger.add(
                logs_dir / "app.log",
                format=LOG_FORMAT_HUMAN,
                level=log_level,
                rotation=rotation,
                retention=retention,
                compression="zip",
                encoding="utf-8",
                enqueue=True
            )
        )

        _SINK_IDS.append(
            logger.add(
                logs_dir / "errors.log",
                format=LOG_FORMAT_HUMAN,
                level="ERROR",
                rotation=rotation,
                retention="90 days",
                compression="zip",
                encoding="utf-8",
                enqueue=True
            )
        )

        _SINK_IDS.append(
            logger.add(
                logs_dir / "agents.log",
                format=LOG_FORMAT_HUMAN,
                level="INFO",
                rotation=rotation,
                retention=retention,
                compression="zip",
                encoding="utf-8",
                enqueue=True,
                filter=_agents_filter
            )
        )

        if enable_json:
            _SINK_IDS.append(
                logger.add(
                    logs_dir / "app.jsonl",
                    serialize=True,
                    level=log_level,
                    rotation=rotation,
                    retention=retention,
                    compression="zip",
                    encoding="utf-8",
                    enqueue=True
                )
            )

    # Intercept stdlib logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    _INITIALIZED_FLAG = True
    logger.bind(component="logging").debug(
        f"✓ Logging initialized | level={log_level} | sinks={len(_SINK_IDS)}"
    )


def set_log_level(level: str) -> None:
    """🎚️ Change log level at runtime."""
    setup_logging(log_level=level, reset_existing=True)


# ═══════════════════════════════════════════════════════════════════════════
# Logger Helpers
# ═══════════════════════════════════════════════════════════════════════════

def get_logger(name: Optional[str] = None, **binds: Any):
    """
    📝 **Get Bound Logger**

    Example:
```python
        log = get_logger(__name__, component="validator")
        log.info("Validating candidate")
```
    """
    lgr = logger

    if name:
        lgr = lgr.bind(name=name)

    if binds:
        lgr = lgr.bind(**binds)

    return lgr


class LogContext:
    """
    📦 **Log Context Manager**

    Temporarily contextualizes every record emitted inside the block.

    Example:
```python
        with LogContext(model_id="churn-v2"):
            detector.detect(reference, current, model_id="churn-v2")
```
    """

    def __init__(self, **kwargs: Any):
        self._ctx = kwargs
        self._manager = None

    def __enter__(self) -> "LogContext":
        self._manager = logger.contextualize(**self._ctx)
        self._manager.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type:
            logger.error(f"Exception in context: {exc_val!r}")
        if self._manager is not None:
            self._manager.__exit__(exc_type, exc_val, exc_tb)
        return False


def log_execution_time(func: Callable) -> Callable:
    """⏱️ Log the wall-clock duration of a call at DEBUG level."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            logger.debug(f"⏱ {func.__qualname__} took {elapsed:.3f}s")

    return wrapper
