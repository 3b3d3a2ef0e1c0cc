# repodevkit/logging.py
# -*- coding: utf-8 -*-
"""
repodevkit logging

Features:
 - Console color formatter (stderr, so that JSON output on stdout stays clean)
 - Rotating file handler
 - JSONL log with one object per record
 - Module-level configurable log levels (module_levels)
 - Explicit setup: configure_logging() returns a LogSetup owning its handlers,
   nothing is installed at import time
"""

from __future__ import annotations
import sys
import json
import time
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Any, Optional, List

ROOT_LOGGER = "repodevkit"

_logger = logging.getLogger("repodevkit.logging")

DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(devkit_module)s] %(message)s"
DEFAULT_FILE_FORMAT = "%(asctime)s %(levelname)s [%(devkit_module)s] %(message)s"


# ----------------------
# Color formatter
# ----------------------
class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[37m",    # light gray
        logging.INFO: "\033[36m",     # cyan
        logging.WARNING: "\033[33m",  # yellow
        logging.ERROR: "\033[31m",    # red
        logging.CRITICAL: "\033[41;37m", # white on red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = color

    def format(self, record):
        msg = super().format(record)
        if self.color:
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{msg}{self.RESET}"
        return msg


# ----------------------
# JSONL formatter
# ----------------------
class JSONLineFormatter(logging.Formatter):
    def format(self, record):
        obj = {
            "timestamp": time.time(),
            "level": record.levelname,
            "module": getattr(record, "devkit_module", record.name),
            "message": record.getMessage(),
        }
        if record.exc_info:
            obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


# ----------------------
# Filters
# ----------------------
class ModuleStampFilter(logging.Filter):
    """Records emitted without the adapter still need devkit_module for the format strings."""

    def filter(self, record):
        if not hasattr(record, "devkit_module"):
            record.devkit_module = record.name.rsplit(".", 1)[-1]
        return True


class ModuleLevelFilter(logging.Filter):
    def __init__(self, module_levels: Dict[str, str]):
        super().__init__()
        self.module_levels = {m: getattr(logging, str(lvl).upper(), logging.INFO) for m, lvl in (module_levels or {}).items()}

    def filter(self, record):
        mod = getattr(record, "devkit_module", None)
        if mod and mod in self.module_levels:
            return record.levelno >= self.module_levels[mod]
        return True


# ----------------------
# Setup
# ----------------------
class LogSetup:
    """Handlers and filters installed on the repodevkit logger by one configure call."""

    def __init__(self, root: logging.Logger):
        self.root = root
        self.handlers: List[logging.Handler] = []
        self.filters: List[logging.Filter] = []
        self.jsonl_path: Optional[Path] = None
        self._propagate = root.propagate

    def add_handler(self, handler: logging.Handler):
        for f in self.filters:
            handler.addFilter(f)
        self.root.addHandler(handler)
        self.handlers.append(handler)

    def close(self):
        for h in self.handlers:
            self.root.removeHandler(h)
            h.close()
        self.handlers.clear()
        self.root.propagate = self._propagate


def _level(name: Any, default: int = logging.INFO) -> int:
    return getattr(logging, str(name or "").upper(), default)


def configure_logging(cfg: Optional[Dict[str, Any]] = None, debug: bool = False,
                      stream=None) -> LogSetup:
    """
    Install handlers described by the `logging` section of the specs file.
    --debug overrides the configured level.
    """
    cfg = cfg or {}
    root = logging.getLogger(ROOT_LOGGER)
    for h in list(root.handlers):
        root.removeHandler(h)

    setup = LogSetup(root)
    root.propagate = False
    setup.filters = [ModuleStampFilter(), ModuleLevelFilter(cfg.get("module_levels") or {})]

    level = logging.DEBUG if debug else _level(cfg.get("level", "INFO"))
    root.setLevel(level)

    # console handler
    console_cfg = cfg.get("console") or {"enabled": True}
    if console_cfg.get("enabled", True):
        ch = logging.StreamHandler(stream or sys.stderr)
        ch.setLevel(level)
        fmt = cfg.get("format") or DEFAULT_FORMAT
        datefmt = cfg.get("datefmt", "%H:%M:%S")
        ch.setFormatter(ColorFormatter(fmt, datefmt=datefmt, color=bool(cfg.get("color", True))))
        setup.add_handler(ch)

    # rotating file handler
    if cfg.get("file"):
        file_path = Path(cfg["file"]).expanduser()
        file_path.parent.mkdir(parents=True, exist_ok=True)
        max_bytes = parse_size(cfg.get("max_size", "10M"))
        backups = int(cfg.get("backups", 5))
        fh = logging.handlers.RotatingFileHandler(str(file_path), maxBytes=max_bytes or 10 * 1024 * 1024,
                                                  backupCount=backups, encoding="utf-8")
        fh.setLevel(logging.DEBUG if debug else _level(cfg.get("file_level", "DEBUG"), logging.DEBUG))
        fh.setFormatter(logging.Formatter(cfg.get("format") or DEFAULT_FILE_FORMAT, datefmt=cfg.get("datefmt", "%H:%M:%S")))
        setup.add_handler(fh)

    # jsonl log
    jsonl_cfg = cfg.get("jsonl") or {}
    if jsonl_cfg.get("enabled"):
        path = Path(jsonl_cfg.get("path") or "repodevkit.jsonl").expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        jh = logging.FileHandler(str(path), encoding="utf-8")
        jh.setLevel(_level(jsonl_cfg.get("level", "INFO")))
        jh.setFormatter(JSONLineFormatter())
        setup.add_handler(jh)
        setup.jsonl_path = path

    _logger.debug("logging: configuration applied (level=%s)", logging.getLevelName(level))
    return setup


def get_logger(module_name: str) -> logging.LoggerAdapter:
    """Return a LoggerAdapter that injects 'devkit_module' into records."""
    base = logging.getLogger(f"{ROOT_LOGGER}.{module_name}")
    return logging.LoggerAdapter(base, {"devkit_module": module_name})


# ----------------------
# Helper parse size (public)
# ----------------------
def parse_size(s: Any) -> Optional[int]:
    if s is None:
        return None
    if isinstance(s, int):
        return s
    ss = str(s).strip().upper()
    units = (("KB", 1024), ("K", 1024), ("MB", 1024**2), ("M", 1024**2), ("GB", 1024**3), ("G", 1024**3))
    try:
        for suffix, mul in units:
            if ss.endswith(suffix):
                return int(float(ss[: -len(suffix)]) * mul)
        return int(float(ss))
    except ValueError:
        _logger.debug("logging: parse size failed for %s", s)
        return None
