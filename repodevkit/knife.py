# repodevkit/knife.py
# -*- coding: utf-8 -*-
"""
knife.py - reconcile the artifact store against the recipe trees

Features:
- Classify every key: repository index (ignored), metadata, payload, stray
- Operator excludes applied before classification (excluded keys are invisible)
- Pairing: metadata without its payload and payloads without their metadata are removal candidates
- Tree membership: metadata (and payloads) of packages no longer in the trees are stale
- Classification rebuilt from scratch on every analyze(); summary() for reporting
"""

from __future__ import annotations
import os
import re
from typing import Dict, List, Set

from .artifact import PackageArtifact
from .backends import Backend
from .config import Config
from .logging import get_logger
from .tree import RecipeTree

logger = get_logger("knife")

REPOSITORY_INDEX_RE = re.compile(
    r"repository\.meta\.yaml\.tar\..*|repository\.meta\.yaml|repository\.yaml"
    r"|tree\.tar\..*|tree\.tar|compilertree\.tar\..*|compilertree\.tar"
)
METADATA_RE = re.compile(r".*metadata\.yaml")
PAYLOAD_RE = re.compile(r".*package\.tar(\..*)?")
PAYLOAD_SUFFIX_RE = re.compile(r"\.package\.tar(\.gz|\.zst)?$")

KIND_INDEX = "index"
KIND_METADATA = "metadata"
KIND_PAYLOAD = "payload"
KIND_STRAY = "stray"


def classify(key: str) -> str:
    """Return the structural kind of a store key, decided on its base name."""
    base = os.path.basename(key)
    if REPOSITORY_INDEX_RE.fullmatch(base):
        return KIND_INDEX
    if METADATA_RE.fullmatch(base):
        return KIND_METADATA
    if PAYLOAD_RE.fullmatch(base):
        return KIND_PAYLOAD
    return KIND_STRAY


def sibling_metadata(payload_key: str) -> str:
    """a-1.0.package.tar.zst -> a-1.0.metadata.yaml"""
    return PAYLOAD_SUFFIX_RE.sub(".metadata.yaml", payload_key)


class RepoKnife:
    """
    Classified view of one backend: metadata_map, payload_map and to_remove.
    """

    def __init__(self, specs: Config, backend: Backend, tree: RecipeTree, verbose: bool = False):
        self.specs = specs
        self.backend = backend
        self.tree = tree
        self.verbose = verbose
        self.excludes = specs.cleaner_excludes()

        self.metadata_map: Dict[str, PackageArtifact] = {}
        self.payload_map: Dict[str, str] = {}
        self.to_remove: List[str] = []
        self.ignored: List[str] = []
        self.excluded: List[str] = []
        self.processed_files = 0
        self._removed: Set[str] = set()

    # -----------------------
    # helpers
    # -----------------------
    def _decision(self, msg: str, *args):
        if self.verbose:
            logger.info(msg, *args)
        else:
            logger.debug(msg, *args)

    def _mark(self, key: str):
        if key not in self._removed:
            self._removed.add(key)
            self.to_remove.append(key)
        self.metadata_map.pop(key, None)
        self.payload_map.pop(key, None)

    def is_excluded(self, key: str) -> bool:
        return any(r.search(key) for r in self.excludes)

    # -----------------------
    # analysis
    # -----------------------
    def analyze(self) -> "RepoKnife":
        self.metadata_map = {}
        self.payload_map = {}
        self.to_remove = []
        self.ignored = []
        self.excluded = []
        self._removed = set()

        keys = self.backend.list()
        self.processed_files = len(keys)

        for key in keys:
            if self.excludes and self.is_excluded(key):
                logger.debug("knife: [%s] excluded", key)
                self.excluded.append(key)
                continue

            kind = classify(key)
            if kind == KIND_INDEX:
                logger.debug("knife: ignoring repository file %s", key)
                self.ignored.append(key)
                continue

            self._decision("knife: [%s] analyzing...", key)
            if kind == KIND_METADATA:
                self.metadata_map[key] = self.backend.fetch_metadata(key)
            elif kind == KIND_PAYLOAD:
                self.payload_map[key] = sibling_metadata(key)
            else:
                self._decision("knife: [%s] stray file, removal candidate", key)
                self._mark(key)

        self._check_pairing()
        self._check_trees()
        logger.debug("knife: analysis done %s", self.summary())
        return self

    def _check_pairing(self):
        # metadata whose payload is not present (or belongs to another sidecar)
        for meta_key, art in list(self.metadata_map.items()):
            if self.payload_map.get(art.payload) != meta_key:
                self._decision("knife: no tarball found for metafile %s, removing metafile", meta_key)
                self._mark(meta_key)

        # payloads whose sidecar is not in the map
        for payload_key, meta_key in list(self.payload_map.items()):
            if meta_key not in self.metadata_map:
                self._decision("knife: no metafile available for tarball %s, removing tarball", payload_key)
                self._mark(payload_key)

    def _check_trees(self):
        for meta_key, art in list(self.metadata_map.items()):
            if self.tree.find_all(art.search_category, art.name):
                continue
            self._decision("knife: [%s] no more available in the trees, removing it", art.fingerprint)
            payloads = [p for p, m in self.payload_map.items() if m == meta_key]
            self._mark(meta_key)
            for p in payloads:
                self._mark(p)

    # -----------------------
    # reporting
    # -----------------------
    def availables(self) -> List[PackageArtifact]:
        return list(self.metadata_map.values())

    def summary(self) -> Dict[str, int]:
        return {
            "processed": self.processed_files,
            "excluded": len(self.excluded),
            "ignored": len(self.ignored),
            "metadata": len(self.metadata_map),
            "payloads": len(self.payload_map),
            "to_remove": len(self.to_remove),
        }

