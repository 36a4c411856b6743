# uiflow/utils/logger.py
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, MutableMapping, Optional

from rich.console import Console
from rich.logging import RichHandler

from uiflow.utils.config import LogLevel, get_settings


__all__ = [
    "get_logger",
    "set_log_level",
    "bind",
    "unbind",
    "log_with_context",
    "attach_file_logger",
    "detach_file_logger",
]


_config_lock = threading.Lock()
_configured = False
_global_context: Dict[str, Any] = {}  # attached to every record (run_id, workflow, ...)

_NOISY = ("asyncio", "urllib3", "httpx", "playwright")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; context fields are merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            payload.update(context)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that carries a context dict.
    The console shows it as a `(k=v ...)` suffix; file logs get it as JSON fields.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        context = dict(_global_context)
        context.update(self.extra or {})
        extra = kwargs.setdefault("extra", {})
        extra["context"] = context
        if context:
            suffix = " ".join(f"{k}={v}" for k, v in context.items() if k != "run_id")
            if suffix:
                msg = f"{msg} ({suffix})"
        return msg, kwargs


_LEVEL_MAP = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def _ensure_configured() -> None:
    """Configure root logging once from settings; later calls are no-ops."""
    global _configured
    if _configured:
        return

    with _config_lock:
        if _configured:
            return

        settings = get_settings()
        level = _LEVEL_MAP.get(settings.LOG_LEVEL, logging.INFO)

        root = logging.getLogger()
        root.setLevel(level)
        for h in list(root.handlers):
            if isinstance(h, (RichHandler, RotatingFileHandler)):
                root.removeHandler(h)

        console = Console(stderr=True, color_system="auto" if settings.COLORIZED_OUTPUT else None)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        rich_handler.setLevel(level)
        root.addHandler(rich_handler)

        if settings.LOG_TO_FILE:
            settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(settings.LOG_FILE),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
                delay=True,
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JsonFormatter())
            root.addHandler(file_handler)

        for name in _NOISY:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        _configured = True


def get_logger(name: Optional[str] = None, **context: Any) -> ContextAdapter:
    _ensure_configured()
    return ContextAdapter(logging.getLogger(name or "uiflow"), context)


def set_log_level(level: LogLevel | str) -> None:
    _ensure_configured()
    lvl = level if isinstance(level, str) else level.value
    py_level = getattr(logging, lvl.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(py_level)
    for h in root.handlers:
        h.setLevel(py_level)


def bind(**kwargs: Any) -> None:
    """Bind process-wide context (e.g. run_id) to every subsequent record."""
    _global_context.update(kwargs)


def unbind(*keys: str) -> None:
    for k in keys:
        _global_context.pop(k, None)


def log_with_context(logger: logging.LoggerAdapter, **kwargs: Any) -> ContextAdapter:
    """
    Return an adapter that adds `kwargs` on top of `logger`'s own context.

        step_log = log_with_context(log, step="Filters", index=3)
        step_log.warning("soft failure")
    """
    merged = dict(getattr(logger, "extra", None) or {})
    merged.update(kwargs)
    return ContextAdapter(logger.logger, merged)


# ------------- Per-run file logging -------------

def attach_file_logger(path: os.PathLike | str, level: Optional[int] = None) -> logging.Handler:
    """Attach a JSON file handler (e.g. `<run_dir>/run.log`); detach it when the run ends."""
    _ensure_configured()
    root = logging.getLogger()
    p = os.fspath(path)
    os.makedirs(os.path.dirname(p) or ".", exist_ok=True)
    fh = RotatingFileHandler(filename=p, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8", delay=True)
    fh.setLevel(level if level is not None else root.level)
    fh.setFormatter(JsonFormatter())
    root.addHandler(fh)
    return fh


def detach_file_logger(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()
