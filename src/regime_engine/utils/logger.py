"""
Structured logging for the regime engine.

Every record carries a dotted event name as its message (`engine.alerts`,
`feed.backpressure`) and a JSON-safe `context` dict. Profiles live in
configs/logging.json; `init_logging` merges the chosen profile over
`default` and applies it with dictConfig.
"""

import dataclasses
import json
import logging
import logging.config
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from logging import Logger
from pathlib import Path
from typing import Any

_DEBUG_ENABLED = False
_DEBUG_MODULES: frozenset[str] = frozenset()
_CONFIGURED = False
_RUN_ID: str | None = None
_SYMBOL: str | None = None

CATEGORY_DATA_INTEGRITY = "data_integrity"
CATEGORY_REGIME = "regime_trace"
CATEGORY_ALERT = "alert"
CATEGORY_HEARTBEAT = "health_heartbeat"

_DEFAULT_LOG_PATH = "artifacts/logs/{symbol}-{run_id}.jsonl"


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _section(cfg: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    node: Any = cfg
    for key in keys:
        node = node.get(key) if isinstance(node, Mapping) else None
    return dict(node) if isinstance(node, Mapping) else {}


def _load_profile(config_path: str, profile: str | None) -> dict[str, Any]:
    path = Path(config_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    with path.open("r", encoding="utf-8") as f:
        cfg = json.load(f)

    profiles = cfg.get("profiles", {})
    if not isinstance(profiles, dict):
        raise TypeError(f"{path}: 'profiles' must be an object")
    name = str(profile or cfg.get("active_profile") or "default")
    if name not in profiles:
        raise KeyError(f"logging profile not found: {name}")
    return _deep_merge(_section(profiles, "default"), _section(profiles, name))


def _handlers(profile: Mapping[str, Any], level: str, formatter: str) -> dict[str, dict[str, Any]]:
    console = _section(profile, "handlers", "console")
    file = _section(profile, "handlers", "file")
    out: dict[str, dict[str, Any]] = {}

    if console.get("enabled", True):
        out["console"] = {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "level": str(console.get("level", level)).upper(),
            "formatter": formatter,
            "filters": ["context"],
        }
    if file.get("enabled", False):
        path = Path(str(file.get("path", _DEFAULT_LOG_PATH)).format(
            run_id=_RUN_ID or "run",
            symbol=_SYMBOL or "default",
        ))
        path.parent.mkdir(parents=True, exist_ok=True)
        out["file"] = {
            "class": "logging.FileHandler",
            "filename": str(path),
            "encoding": "utf-8",
            "level": str(file.get("level", level)).upper(),
            "formatter": formatter,
            "filters": ["context"],
        }
    return out


def init_logging(
    config_path: str = "configs/logging.json",
    *,
    run_id: str | None = None,
    symbol: str | None = None,
    profile: str | None = None,
) -> None:
    """
    Configure the root logger from a named profile.

    `run_id` and `symbol` are stamped onto every record's context and fill
    the `{run_id}` / `{symbol}` placeholders of the file handler path.
    """
    global _DEBUG_ENABLED, _DEBUG_MODULES, _CONFIGURED, _RUN_ID, _SYMBOL

    merged = _load_profile(config_path, profile)
    _RUN_ID, _SYMBOL = run_id, symbol

    debug = _section(merged, "debug")
    _DEBUG_ENABLED = bool(debug.get("enabled", False))
    _DEBUG_MODULES = frozenset(str(m) for m in debug.get("modules", []))

    level = str(merged.get("level", "INFO")).upper()
    formatter = "json" if _section(merged, "format").get("json", True) else "standard"
    handlers = _handlers(merged, level, formatter)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"context": {"()": "regime_engine.utils.logger.ContextFilter"}},
        "formatters": {
            "json": {"()": "regime_engine.utils.logger.JsonFormatter"},
            "standard": {
                "()": "regime_engine.utils.logger.UtcFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s %(context)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
        },
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers)},
    })

    _CONFIGURED = True
    get_logger.cache_clear()
    # module loggers defer to the root level once a profile is applied
    for lg in logging.root.manager.loggerDict.values():
        if isinstance(lg, logging.Logger):
            lg.setLevel(logging.NOTSET)


class ContextFilter(logging.Filter):
    """Ensures `record.context` is a dict and stamps run_id / symbol on it."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = getattr(record, "context", None)
        if ctx is None:
            ctx = {}
        elif not isinstance(ctx, dict):
            ctx = {"_context": safe_jsonable(ctx)}
        if _CONFIGURED:
            if _RUN_ID is not None:
                ctx.setdefault("run_id", _RUN_ID)
            if _SYMBOL is not None:
                ctx.setdefault("symbol", _SYMBOL)
        record.context = ctx
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `category` is lifted out of the context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "ts_ms": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        ctx = getattr(record, "context", None)
        if isinstance(ctx, dict) and ctx:
            ctx = dict(ctx)
            category = ctx.pop("category", None)
            if category is not None:
                payload["category"] = category
            if ctx:
                payload["context"] = safe_jsonable(ctx)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class UtcFormatter(logging.Formatter):
    converter = time.gmtime


@lru_cache(None)
def get_logger(name: str = "regime_engine") -> Logger:
    return logging.getLogger(name)


def safe_jsonable(x: Any) -> Any:
    if isinstance(x, Enum):
        return safe_jsonable(x.value)
    if x is None or isinstance(x, (str, int, float, bool)):
        return x
    if isinstance(x, datetime):
        aware = x if x.tzinfo is not None else x.replace(tzinfo=timezone.utc)
        return aware.astimezone(timezone.utc).isoformat()
    if dataclasses.is_dataclass(x):
        if isinstance(x, type):
            return f"{x.__module__}.{x.__qualname__}"
        return {f.name: safe_jsonable(getattr(x, f.name)) for f in dataclasses.fields(x)}
    if isinstance(x, Mapping):
        return {k if isinstance(k, str) else repr(safe_jsonable(k)): safe_jsonable(v) for k, v in x.items()}
    if isinstance(x, (list, tuple, set, frozenset)):
        return [safe_jsonable(v) for v in x]
    # Path, exceptions, anything else
    return str(x)


def _debug_module_matches(logger_name: str, module: str) -> bool:
    module = module.strip()
    if not module:
        return False
    return logger_name == module or logger_name.startswith(module + ".") or module in logger_name.split(".")


def _emit(logger: Logger, level: int, msg: str, category: str | None, context: dict[str, Any], **kw: Any) -> None:
    if category is not None:
        context["category"] = category
    ctx = safe_jsonable(context)
    logger.log(level, msg, extra={"context": ctx if isinstance(ctx, dict) else {"_context": ctx}}, **kw)


def log_debug(logger: Logger, msg: str, **context):
    if not _DEBUG_ENABLED:
        return
    if _DEBUG_MODULES and not any(_debug_module_matches(logger.name, m) for m in _DEBUG_MODULES):
        return
    _emit(logger, logging.DEBUG, msg, None, context)


def log_info(logger: Logger, msg: str, **context):
    _emit(logger, logging.INFO, msg, None, context)


def log_exception(logger: Logger, msg: str, **context):
    _emit(logger, logging.ERROR, msg, None, context, exc_info=True)


# ---------------------------------------------------------------------
# Category helpers
# ---------------------------------------------------------------------

def log_data_integrity(logger: Logger, msg: str, **context):
    """Rejected ticks, superseded or coalesced backfill, backpressure."""
    _emit(logger, logging.WARNING, msg, CATEGORY_DATA_INTEGRITY, context)


def log_regime(logger: Logger, msg: str, **context):
    """Adopted regime changes: timestamp, prev, regime, baseline, dd, spread."""
    _emit(logger, logging.INFO, msg, CATEGORY_REGIME, context)


def log_alert(logger: Logger, msg: str, **context):
    """Alert emissions: timestamp, regime, alerts, dd, dd_slope, spread, baseline."""
    _emit(logger, logging.INFO, msg, CATEGORY_ALERT, context)


def log_heartbeat(logger: Logger, msg: str, **context):
    """Liveness: processed, rejected, backlog, last_ts."""
    _emit(logger, logging.INFO, msg, CATEGORY_HEARTBEAT, context)
