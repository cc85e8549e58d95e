"""Structured logging helpers shared across the DLC catalog engine.

Every module logs through ``LauncherAdmin.DLCCatalog.<module>`` loggers with a
``stage`` extra.  :func:`setup_logging` attaches a terse console handler and a
daily JSON-lines file whose entries carry those extras, with credential-like
fields masked.
"""

from __future__ import annotations

import gzip
import json
import logging
import re
import shutil
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

from .settings import LOG_DIR, LoggingSettings

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging", "LOGGER_NAME"]

LOGGER_NAME = "LauncherAdmin.DLCCatalog"

_MASK = "***masked***"
_MANAGED_FLAG = "_dlcadmin_managed"
_SENSITIVE_KEYS = {
    "authorization",
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "accesskeyid",
    "secretaccesskey",
}
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9+/=_-]{32,}$")
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


def _mask(value: object, key: Optional[str]) -> object:
    if key in _SENSITIVE_KEYS:
        return _MASK
    if isinstance(value, dict):
        return {sub_key: _mask(sub_value, str(sub_key).lower()) for sub_key, sub_value in value.items()}
    if isinstance(value, (list, tuple)):
        masked = [_mask(item, key) for item in value]
        return tuple(masked) if isinstance(value, tuple) else masked
    if isinstance(value, str):
        if "bearer " in value.lower():
            return _MASK
        if key == "authorization" and _TOKEN_PATTERN.match(value.strip()):
            return _MASK
    return value


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with bucket credentials and tokens masked."""

    return {key: _mask(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """One masked JSON object per record, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, object] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(entry), default=str)


def _modified_before(path: Path, cutoff: datetime) -> bool:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc) < cutoff


def _archive(path: Path) -> Path:
    archive = path.parent / f"{path.name}.gz"
    with path.open("rb") as raw, gzip.open(archive, "wb") as packed:
        shutil.copyfileobj(raw, packed)
    path.unlink(missing_ok=True)
    return archive


def _prune_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Gzip ``.jsonl`` files older than the retention window and drop old archives."""

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    actions: List[str] = []
    for path in sorted(log_dir.glob("*.jsonl")):
        if _modified_before(path, cutoff):
            actions.append(f"archived {_archive(path).name}")
    for path in sorted(log_dir.glob("*.jsonl.gz")):
        if _modified_before(path, cutoff):
            path.unlink(missing_ok=True)
            actions.append(f"deleted {path.name}")
    return actions


def _detach_managed_handlers(logger: logging.Logger) -> None:
    for handler in [h for h in logger.handlers if getattr(h, _MANAGED_FLAG, False)]:
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    settings: Optional[LoggingSettings] = None,
    *,
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Attach console and JSON-lines file handlers to the package logger.

    Calling it again replaces the handlers installed by the previous call.
    """

    cfg = settings or LoggingSettings()
    target_dir = Path(log_dir or cfg.log_dir or LOG_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    pruned = _prune_logs(target_dir, cfg.retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, (level or cfg.level).upper(), logging.INFO))
    _detach_managed_handlers(logger)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    logfile = RotatingFileHandler(
        target_dir / f"dlc-admin-{stamp}.jsonl",
        maxBytes=cfg.max_log_size_mb * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    logfile.setFormatter(JSONFormatter())

    for handler in (console, logfile):
        setattr(handler, _MANAGED_FLAG, True)
        logger.addHandler(handler)
    logger.propagate = propagate

    if pruned:
        logger.debug("log directory pruned", extra={"stage": "logging", "actions": pruned})
    return logger
