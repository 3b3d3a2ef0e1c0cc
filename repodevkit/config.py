# repodevkit/config.py
# -*- coding: utf-8 -*-
"""
repodevkit specs file loader

Features:
- Read the specs file given explicitly (--specs-file) or through $REPODEVKIT_SPECS
- YAML via PyYAML safe_load, JSON accepted for *.json files
- Merge with authoritative DEFAULTS (all keys optional, absent = empty)
- Validate structure and types; any problem raises ConfigError
- Typed access: Config.get() dotted getter, cleaner_excludes() compiled regexes,
  exclude_pkgs() ignore triples for the lister
- No module state: every caller holds its own Config instance
"""

from __future__ import annotations
import os
import re
import json
from pathlib import Path
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List

import yaml

from .errors import ConfigError
from .logging import get_logger

logger = get_logger("config")

ENV_SPECS = "REPODEVKIT_SPECS"

# ----------------------------
# DEFAULT configuration (authoritative base)
# ----------------------------
DEFAULTS: Dict[str, Any] = {
    "cleaner": {
        "excludes": [],
    },
    "list": {
        "exclude_pkgs": [],
    },
    "logging": {
        "level": "INFO",
        "color": True,
        "format": None,
        "datefmt": "%H:%M:%S",
        "file": None,
        "max_size": "10M",
        "backups": 5,
        "jsonl": {"enabled": False, "path": None, "level": "INFO"},
        "module_levels": {},
    },
}


@dataclass(frozen=True)
class PackageFilter:
    """One ignore triple of list.exclude_pkgs."""
    name: str
    category: str
    version: str = ">=0"


# ----------------------------
# Dataclass to hold config
# ----------------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=dict)     # values loaded from file (if any)
    merged: Dict[str, Any] = field(default_factory=dict)  # merged with DEFAULTS
    path: Optional[Path] = None

    def get(self, path: str, default: Any = None) -> Any:
        """Dot-separated getter for merged config."""
        parts = path.split(".") if path else []
        cur: Any = self.merged
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur

    def as_dict(self) -> Dict[str, Any]:
        return deepcopy(self.merged)

    def cleaner_excludes(self) -> List[re.Pattern]:
        return [re.compile(p) for p in self.get("cleaner.excludes", [])]

    def exclude_pkgs(self) -> List[PackageFilter]:
        out: List[PackageFilter] = []
        for entry in self.get("list.exclude_pkgs", []):
            out.append(PackageFilter(
                name=str(entry.get("name", "")),
                category=str(entry.get("category", "")),
                version=str(entry.get("version") or ">=0"),
            ))
        return out

    def logging_config(self) -> Dict[str, Any]:
        return deepcopy(self.get("logging", {}))


# ----------------------------
# Utilities
# ----------------------------
def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    res = deepcopy(a)
    for k, v in b.items():
        if k in res and isinstance(res[k], dict) and isinstance(v, dict):
            res[k] = _deep_merge(res[k], v)
        elif v is None and k in res:
            # "excludes:" with no value means empty, keep the default
            continue
        else:
            res[k] = deepcopy(v)
    return res


def _load_file(path: Path) -> Dict[str, Any]:
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read specs file {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(txt)
        else:
            data = yaml.safe_load(txt)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigError(f"invalid specs file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"specs file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _validate_structure(cfg: Dict[str, Any]) -> List[str]:
    """Return the list of issues; empty means valid."""
    issues: List[str] = []

    cleaner = cfg.get("cleaner")
    if not isinstance(cleaner, dict):
        issues.append("cleaner must be a mapping")
    else:
        excludes = cleaner.get("excludes")
        if not isinstance(excludes, list):
            issues.append("cleaner.excludes must be a list of regexes")
        else:
            for pat in excludes:
                if not isinstance(pat, str):
                    issues.append(f"cleaner.excludes entry {pat!r} is not a string")
                    continue
                try:
                    re.compile(pat)
                except re.error as e:
                    issues.append(f"cleaner.excludes entry {pat!r} is not a valid regex: {e}")

    lst = cfg.get("list")
    if not isinstance(lst, dict):
        issues.append("list must be a mapping")
    else:
        pkgs = lst.get("exclude_pkgs")
        if not isinstance(pkgs, list):
            issues.append("list.exclude_pkgs must be a list")
        else:
            for i, entry in enumerate(pkgs):
                if not isinstance(entry, dict):
                    issues.append(f"list.exclude_pkgs[{i}] must be a mapping")
                    continue
                for k in ("name", "category"):
                    if not isinstance(entry.get(k), str) or not entry.get(k):
                        issues.append(f"list.exclude_pkgs[{i}].{k} must be a non-empty string")
                ver = entry.get("version")
                if ver is not None and not isinstance(ver, (str, int, float)):
                    issues.append(f"list.exclude_pkgs[{i}].version must be a string")

    log = cfg.get("logging")
    if not isinstance(log, dict):
        issues.append("logging must be a mapping")
    else:
        if not isinstance(log.get("module_levels", {}), dict):
            issues.append("logging.module_levels must be a mapping")
        if not isinstance(log.get("jsonl", {}), dict):
            issues.append("logging.jsonl must be a mapping")
    return issues


# ----------------------------
# Loading
# ----------------------------
def _find_path(explicit: Optional[str] = None) -> Optional[Path]:
    if explicit:
        p = Path(explicit).expanduser()
        if not p.exists():
            raise ConfigError(f"specs file not found: {p}")
        return p
    env = os.environ.get(ENV_SPECS)
    if env:
        p = Path(env).expanduser()
        if not p.exists():
            raise ConfigError(f"specs file from ${ENV_SPECS} not found: {p}")
        return p
    return None


def load(explicit_path: Optional[str] = None) -> Config:
    """
    Load and merge the specs file. Without any file the defaults apply.
    Raises ConfigError on unreadable files, invalid YAML, wrong types or bad regexes.
    """
    cfg_path = _find_path(explicit_path)
    raw: Dict[str, Any] = _load_file(cfg_path) if cfg_path else {}
    merged = _deep_merge(DEFAULTS, raw)
    issues = _validate_structure(merged)
    if issues:
        raise ConfigError("specs validation failed: " + "; ".join(issues))
    logger.debug("config: loaded specs (from=%s)", str(cfg_path) if cfg_path else "<defaults>")
    return Config(raw=raw, merged=merged, path=cfg_path)


def from_dict(data: Dict[str, Any]) -> Config:
    """Build a validated Config from an in-memory mapping."""
    merged = _deep_merge(DEFAULTS, data or {})
    issues = _validate_structure(merged)
    if issues:
        raise ConfigError("specs validation failed: " + "; ".join(issues))
    return Config(raw=deepcopy(data or {}), merged=merged)
