# repodevkit/lister.py
# -*- coding: utf-8 -*-
"""
lister.py - packages available in the store and packages still to build

Features:
- availables(): packages whose metadata survived the analysis
- missings(): tree world minus availables minus the operator ignore list
- missings_ordered(): missing packages in build order (optionally compacted)
"""

from __future__ import annotations
from typing import List, Optional

from .artifact import PackageArtifact
from .config import PackageFilter
from .errors import VersionError
from .knife import RepoKnife
from .logging import get_logger
from .resolver import BuildOrderResolver
from .tree import PackageDefinition
from .version import package_admit, parse_selector, parse_version

logger = get_logger("lister")


class RepoList:
    def __init__(self, knife: RepoKnife, filters: Optional[List[PackageFilter]] = None):
        self.knife = knife
        self.filters = filters if filters is not None else knife.specs.exclude_pkgs()

    @property
    def tree(self):
        return self.knife.tree

    def to_ignore(self, pkg: PackageDefinition) -> bool:
        """
        True when an exclude_pkgs entry with the same name and category admits the
        package version. A version or selector that cannot be parsed counts as ignored.
        """
        for f in self.filters:
            if f.name != pkg.name or f.category != pkg.category:
                continue
            try:
                candidate = parse_version(pkg.version)
            except VersionError as e:
                logger.warning("lister: cannot parse version of %s: %s", pkg.fingerprint, e)
                return True
            try:
                selector = parse_selector(f.version)
            except VersionError as e:
                logger.warning("lister: cannot parse selector %s for %s/%s: %s", f.version, f.category, f.name, e)
                return True
            if package_admit(selector, candidate):
                return True
        return False

    def availables(self) -> List[PackageArtifact]:
        self.knife.analyze()
        return sorted(self.knife.availables(), key=lambda a: a.fingerprint)

    def missings(self) -> List[PackageDefinition]:
        available = {a.search_fingerprint for a in self.availables()}
        for fp in sorted(available):
            logger.debug("lister: found %s", fp)

        out: List[PackageDefinition] = []
        for d in self.tree.world():
            logger.debug("lister: checking %s", d.fingerprint)
            if d.fingerprint in available:
                continue
            if self.filters and self.to_ignore(d):
                logger.debug("lister: ignoring package %s", d.fingerprint)
                continue
            out.append(d)
        return sorted(out, key=lambda d: d.fingerprint)

    def missings_ordered(self, with_resolve: bool = False) -> List[PackageDefinition]:
        missing = self.missings()
        roots: List[PackageDefinition] = []
        for d in missing:
            b = self.tree.build.find_exact(d.category, d.name, d.version)
            if b is None:
                logger.warning("lister: %s not found in the build tree, skipped", d.fingerprint)
                continue
            roots.append(b)

        resolver = BuildOrderResolver(self.tree.build, name="missings", quiet=not self.knife.verbose)
        ordered = resolver.order(roots, with_resolve=with_resolve)
        by_fp = {d.fingerprint: d for d in missing}
        return [by_fp[b.fingerprint] for b in ordered]
