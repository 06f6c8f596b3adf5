from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger

from voxflow.config import Config


PROJECT_ROOT = Path(__file__).resolve().parents[2]
PRETTY_LOG_NAME = "latest.log"
STRUCTURED_LOG_NAME = "latest.structured.jsonl"


_CONFIGURED = False
_PATHS: dict[str, str] = {}


def _normalize_level(level: str | None) -> str:
    raw = (level or "INFO").strip().upper()
    valid = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
    if raw in valid:
        return raw
    return "INFO"


def _resolve_log_dir(log_dir: str | Path | None) -> Path:
    if log_dir:
        return Path(log_dir)
    if Config.LOG_DIR:
        return Path(Config.LOG_DIR)
    return PROJECT_ROOT


def setup_logging(
    *,
    component: str = "app",
    log_dir: str | Path | None = None,
    force: bool = False,
    add_stderr: bool = True,
) -> dict[str, str]:
    global _CONFIGURED

    if _CONFIGURED and not force:
        return dict(_PATHS)

    if force:
        logger.remove()

    directory = _resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    pretty_path = directory / PRETTY_LOG_NAME
    structured_path = directory / STRUCTURED_LOG_NAME

    logger.configure(extra={"component": component, "session": "------", "stage": component})

    fmt = (
        "... {time:HH:mm:ss.SSS} {level:<5} "
        "[{extra[component]:<12}] "
        "[{extra[session]:<6}] "
        "[{extra[stage]:<12}] "
        "{message}"
    )

    level_name = _normalize_level(Config.LOG_LEVEL)

    if add_stderr:
        logger.add(
            sys.stderr,
            level=level_name,
            format=fmt,
            colorize=False,
            enqueue=False,
            backtrace=False,
            diagnose=False,
        )

    logger.add(
        pretty_path,
        level=level_name,
        format=fmt,
        colorize=False,
        enqueue=False,
        encoding="utf-8",
        mode="w",
        backtrace=False,
        diagnose=False,
    )

    logger.add(
        structured_path,
        level=level_name,
        serialize=True,
        enqueue=False,
        encoding="utf-8",
        mode="w",
        backtrace=False,
        diagnose=False,
    )

    _CONFIGURED = True
    _PATHS.clear()
    _PATHS.update({"pretty": str(pretty_path), "structured": str(structured_path)})
    return dict(_PATHS)


def emit_event(
    bound_logger: Any,
    message: str,
    *,
    level: str = "INFO",
    event: str | None = None,
    stage: str | None = None,
    session_id: str | None = None,
    action: str | None = None,
    provider: str | None = None,
    duration_ms: int | float | None = None,
    outcome: str | None = None,
    error_code: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    extras: dict[str, Any] = {}
    if event is not None:
        extras["event"] = event
    if stage is not None:
        extras["stage"] = stage
    if session_id is not None:
        extras["session_id"] = session_id
        extras["session"] = session_id[-6:] if len(session_id) >= 6 else session_id
    if action is not None:
        extras["action"] = action
    if provider is not None:
        extras["provider"] = provider
    if duration_ms is not None:
        extras["duration_ms"] = duration_ms
    if outcome is not None:
        extras["outcome"] = outcome
    if error_code is not None:
        extras["error_code"] = error_code
    if meta is not None:
        extras["meta"] = meta

    logger_obj = bound_logger.bind(**extras) if extras else bound_logger
    logger_obj.log(_normalize_level(level), message)
