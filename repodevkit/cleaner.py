# repodevkit/cleaner.py
# -*- coding: utf-8 -*-
"""
cleaner.py - remove the files the knife marked as obsolete

Features:
- Runs a fresh analysis, then removes every candidate through the backend
- Dry-run mode only reports what would be removed
- A failed removal is logged and the loop goes on; analysis errors propagate
- Returns a run report dict (ok, dry_run, removed, failed, candidates)
"""

from __future__ import annotations
import time
import uuid
from typing import Any, Dict, List

from .errors import BackendError
from .knife import RepoKnife
from .logging import get_logger

logger = get_logger("cleaner")


def _now_ts() -> int:
    return int(time.time())


class RepoCleaner:
    def __init__(self, knife: RepoKnife, dry_run: bool = False):
        self.knife = knife
        self.dry_run = dry_run

    def run(self) -> Dict[str, Any]:
        run_id = str(uuid.uuid4())
        start = _now_ts()
        logger.debug("cleaner: starting run %s (dry_run=%s)", run_id, self.dry_run)

        self.knife.analyze()
        candidates = list(self.knife.to_remove)
        removed: List[str] = []
        failed: List[Dict[str, str]] = []

        for key in candidates:
            if self.dry_run:
                logger.info("[dry-run] would remove %s", key)
                removed.append(key)
                continue
            try:
                self.knife.backend.remove(key)
            except BackendError as e:
                logger.warning("cleaner: failed to remove %s: %s", key, e)
                failed.append({"key": key, "reason": str(e)})
                continue
            logger.info("cleaner: removed %s", key)
            removed.append(key)

        if not candidates:
            logger.info("cleaner: nothing to remove")
        else:
            logger.info("cleaner: %d candidate(s), %d %s, %d failed",
                        len(candidates), len(removed), "to remove" if self.dry_run else "removed", len(failed))
        return {
            "ok": True,
            "run_id": run_id,
            "dry_run": self.dry_run,
            "candidates": candidates,
            "removed": removed,
            "failed": failed,
            "summary": self.knife.summary(),
            "duration": _now_ts() - start,
        }
