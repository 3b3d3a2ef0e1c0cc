# repodevkit/resolver.py
# -*- coding: utf-8 -*-
"""
resolver.py - build order of the missing packages (level structure)

Features:
- Level construction: every missing package at level 1, its build requires one level
  deeper, identity by category/name, cycle guard on the descent stack
- Level 1 alignment: every reachable node is also present in level 1
- Compaction: shared leaves get their fathers serialized into a chain, edges are only
  re-parented when the insertion cannot introduce a cycle, rescan until stable
- Emission from the deepest level upward, keyed by category/name
- Final stable topological pass over the original build edges (plan_installation style)
  so the emitted order is valid even when compaction gives up
"""

from __future__ import annotations
import heapq
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import ResolverError
from .logging import get_logger
from .tree import Catalog, PackageDefinition, PackageRef

logger = get_logger("resolver")


def _key(category: str, name: str) -> str:
    return f"{category}/{name}"


# -----------------------
# Graph nodes
# -----------------------
class Node:
    """A package of the build graph. requires is the forward (owning) edge list."""

    def __init__(self, category: str, name: str, version: str = ">=0", requires: Optional[Iterable[PackageRef]] = None):
        self.category = category
        self.name = name
        self.version = version
        self.requires: List[PackageRef] = list(requires or [])
        # snapshot of the catalog edges, never touched by compaction
        self.original_requires: Tuple[PackageRef, ...] = tuple(self.requires)

    @property
    def key(self) -> str:
        return _key(self.category, self.name)

    def requires_keys(self) -> List[str]:
        seen: "OrderedDict[str, None]" = OrderedDict()
        for r in self.requires:
            seen.setdefault(r.key, None)
        return list(seen)

    def remove_dependency(self, dep_key: str) -> bool:
        for idx, r in enumerate(self.requires):
            if r.key == dep_key:
                del self.requires[idx]
                logger.debug("resolver: removed dep %s from %s", dep_key, self.key)
                return True
        logger.debug("resolver: dep %s not found on %s", dep_key, self.key)
        return False

    def add_dependency(self, dep: "Node"):
        if dep.key in self.requires_keys():
            return
        self.requires.append(PackageRef(dep.category, dep.name, ">=0"))
        logger.debug("resolver: added dep %s to %s", dep.key, self.key)

    def __repr__(self):
        return f"Node({self.key})"


class Leaf:
    """Occurrence of a node inside one level, with its recorded fathers (reverse edges)."""

    def __init__(self, node: Node, father: Optional[Node], position: int):
        self.node = node
        self.fathers: List[Node] = [father] if father is not None else []
        self.position = position
        self.counter = 1

    def add_father(self, father: Optional[Node]):
        if father is None:
            return
        if any(f.key == father.key for f in self.fathers):
            return
        self.fathers.append(father)
        self.counter += 1

    def del_father(self, father: Node):
        for idx, f in enumerate(self.fathers):
            if f.key == father.key:
                del self.fathers[idx]
                self.counter -= 1
                logger.debug("resolver: from leaf %s delete father %s (%d)", self.node.key, father.key, self.counter)
                return

    def __str__(self):
        fathers = ", ".join(f.key for f in self.fathers)
        return f"{self.node.key} ({self.position}, {self.counter}) father: [{fathers}]"


class LevelTree:
    def __init__(self, tid: int):
        self.id = tid
        self.leaves: "OrderedDict[str, Leaf]" = OrderedDict()
        self.deps: List[Node] = []

    def add_dependency(self, node: Node, father: Optional[Node]):
        leaf = self.leaves.get(node.key)
        if leaf is not None:
            leaf.add_father(father)
            return
        self.leaves[node.key] = Leaf(node, father, len(self.deps))
        self.deps.append(node)

    def drop_dependency(self, node: Node):
        leaf = self.leaves.get(node.key)
        if leaf is None:
            return
        if leaf.counter > 1:
            leaf.counter -= 1
            return
        logger.debug("resolver: [%d] dropping dependency %s", self.id, node.key)
        del self.leaves[node.key]
        self.deps = [d for d in self.deps if d.key != node.key]
        for idx, d in enumerate(self.deps):
            self.leaves[d.key].position = idx

    def dump(self) -> str:
        leaves = ", ".join(f"{k}-{v.counter} ({', '.join(f.key for f in v.fathers)})" for k, v in self.leaves.items())
        deps = ", ".join(
            d.key + (f" ({', '.join(d.requires_keys())})" if d.requires else "") for d in self.deps
        )
        return f"[{self.id}] Map: [ {leaves} ]\n[{self.id}] Deps: [ {deps} ]\n"


# -----------------------
# Levels
# -----------------------
class Levels:
    def __init__(self, name: str = "", size: int = 1, quiet: bool = True, max_rescans: Optional[int] = None):
        self.name = name
        self.trees: List[LevelTree] = []
        self.nodes: Dict[str, Node] = {}
        self.changed: Dict[str, Node] = {}
        self.quiet = quiet
        self.max_rescans = max_rescans
        self._broken: Set[str] = set()
        self.ensure(size)

    def ensure(self, n: int):
        while len(self.trees) < n:
            self.trees.append(LevelTree(len(self.trees) + 1))

    def dump(self) -> str:
        return "".join(t.dump() for t in self.trees)

    def add_changed(self, node: Node):
        self.changed[node.key] = node

    def reaches(self, src: str, dst: str) -> bool:
        """True if dst is reachable from src following the current requires."""
        if src == dst:
            return True
        stack = [src]
        seen = {src}
        while stack:
            cur = self.nodes.get(stack.pop())
            if cur is None:
                continue
            for k in cur.requires_keys():
                if k == dst:
                    return True
                if k not in seen:
                    seen.add(k)
                    stack.append(k)
        return False

    def add_dependency_recursive(self, node: Node, father: Optional[Node], stack: List[str], level: int,
                                 seen: Optional[Set[Tuple[str, int]]] = None) -> bool:
        """
        Insert node at level (0-based) with father, and its requires below it.
        Re-entering a node of the descent stack records nothing more and stops there.
        """
        if node.key not in self.nodes:
            raise ResolverError(f"on add dependency not found package {node.key}")
        if node.key in stack:
            return True
        self.ensure(level + 1)
        seen = seen if seen is not None else set()
        if (node.key, level) in seen:
            self.trees[level].add_dependency(node, father)
            return True
        seen.add((node.key, level))

        stack = stack + [node.key]
        to_insert = True
        for dep_key in node.requires_keys():
            dep = self.nodes.get(dep_key)
            if dep is None:
                raise ResolverError(f"for package {node.key} not found dependency {dep_key}")
            to_insert = self.add_dependency_recursive(dep, node, stack, level + 1, seen)
            if not to_insert:
                break
        if to_insert:
            self.trees[level].add_dependency(node, father)
        else:
            logger.debug("resolver: for package %s break cycle", node.key)
        return to_insert

    # -----------------------
    # compaction
    # -----------------------
    def _reparent(self, child: Node, target: Node, level: int) -> bool:
        """Make child require target instead of the analyzed leaf, if acyclic."""
        if self.reaches(target.key, child.key):
            logger.debug("resolver: %s -> %s would create a cycle, not re-parenting", child.key, target.key)
            return False
        self.add_dependency_recursive(target, child, [], level)
        child.add_dependency(target)
        self.add_changed(child)
        return True

    def analyze_leaf(self, pos: int, leaf: Leaf) -> bool:
        rescan = False
        first_father: Optional[Node] = None
        last_father: Optional[Node] = None
        handled: Dict[str, Node] = {}
        key = leaf.node.key
        logger.debug("resolver: [P%d] processing leaf %s", pos, leaf)

        if not leaf.fathers and pos != 0:
            raise ResolverError(f"unexpected leaf without father at level {pos} for package {key}")

        if leaf.fathers:
            first_father = leaf.fathers[0]
            last_father = leaf.fathers[0]

        if leaf.counter > 1 and leaf.fathers:
            # serialize the fathers sharing this leaf into a chain
            to_remove: List[Node] = []
            fathers = list(leaf.fathers)
            for idx in range(1, len(fathers)):
                father, prev = fathers[idx], fathers[idx - 1]
                if self.reaches(prev.key, father.key):
                    logger.debug("resolver: %s -> %s would create a cycle, not re-parenting", father.key, prev.key)
                    continue
                father.remove_dependency(key)
                self._reparent(father, prev, pos)
                handled[father.key] = prev
                last_father = father
                to_remove.append(father)
                rescan = True
            for f in to_remove:
                leaf.del_father(f)

        next_level = pos - 1
        while next_level >= 0:
            upper = self.trees[next_level]
            l2 = upper.leaves.get(key)
            if l2 is not None:
                if not l2.fathers:
                    if next_level == 0:
                        upper.drop_dependency(leaf.node)
                else:
                    to_remove = []
                    for f in list(l2.fathers):
                        if first_father is not None and f.key == first_father.key:
                            upper.drop_dependency(leaf.node)
                        elif last_father is not None and f.key == last_father.key:
                            pass
                        elif f.key in handled:
                            to_remove.append(f)
                        elif last_father is not None and not self.reaches(last_father.key, f.key):
                            f.remove_dependency(key)
                            self._reparent(f, last_father, next_level)
                            handled[f.key] = last_father
                            last_father = f
                            to_remove.append(f)
                            rescan = True
                    for f in to_remove:
                        l2.del_father(f)
                    if next_level > 0:
                        upper.drop_dependency(leaf.node)
            next_level -= 1
        return rescan

    def _analyze_level(self, pos: int) -> bool:
        tree = self.trees[pos]
        logger.debug("resolver: [%d-%d] tree:\n%s", tree.id, pos, tree.dump())
        for key, leaf in list(tree.leaves.items()):
            if tree.leaves.get(key) is not leaf:
                continue
            try:
                if self.analyze_leaf(pos, leaf):
                    return True
            except ResolverError as e:
                if key not in self._broken:
                    self._broken.add(key)
                    logger.warning("resolver: %s", e)
        return False

    def resolve(self) -> int:
        """Compact the levels. Returns the number of rescans performed."""
        self.ensure(len(self.trees[0].leaves))
        initial = len(self.trees)
        total = len(self.trees[0].leaves)
        bound = self.max_rescans if self.max_rescans is not None else max(1000, 10 * len(self.nodes))
        rescans = 0

        pos = initial
        while pos > 0:
            pos -= 1
            if self._analyze_level(pos):
                rescans += 1
                if not self.quiet:
                    logger.info("%s analyzed packages %2d/%2d ...", self.name,
                                total - len(self.trees[0].leaves), total)
                if rescans >= bound:
                    logger.warning("resolver: compaction stopped after %d rescans", rescans)
                    break
                pos = initial
        return rescans


# -----------------------
# Resolver
# -----------------------
class BuildOrderResolver:
    """
    Order packages so that build dependencies come first.
    """

    def __init__(self, build: Catalog, name: str = "missings", quiet: bool = True, max_rescans: Optional[int] = None):
        self.build = build
        self.name = name
        self.quiet = quiet
        self.max_rescans = max_rescans
        self.levels = Levels(name=name, size=1, quiet=quiet, max_rescans=max_rescans)
        self._visited: Set[Tuple[str, int]] = set()

    def _node_for(self, ref_category: str, ref_name: str, exact: Optional[PackageDefinition] = None) -> Node:
        key = _key(ref_category, ref_name)
        node = self.levels.nodes.get(key)
        if node is not None:
            return node
        d = exact
        if d is None:
            found = self.build.find_all(ref_category, ref_name)
            d = found[0] if found else None
        if d is None:
            logger.debug("resolver: no packages found on build tree for %s", key)
            node = Node(ref_category, ref_name)
        else:
            node = Node(d.category, d.name, d.version, d.requires)
        self.levels.nodes[key] = node
        return node

    def add_deps(self, node: Node, father: Optional[Node], level: int, stack: List[str]):
        """Place node at level (1-based) and its build requires one level deeper."""
        if node.key in stack:
            logger.debug("resolver: cycle for package %s: %s", node.key, stack)
            return
        self.levels.ensure(level)
        self.levels.trees[level - 1].add_dependency(node, father)
        if (node.key, level) in self._visited:
            return
        self._visited.add((node.key, level))

        stack = stack + [node.key]
        for dep_key in node.requires_keys():
            cat, _, name = dep_key.partition("/")
            dep = self._node_for(cat, name)
            self.add_deps(dep, node, level + 1, stack)

    def align_level1(self):
        for key, node in list(self.levels.nodes.items()):
            if key in self.levels.trees[0].leaves:
                continue
            logger.debug("resolver: adding package %s to level 1", key)
            try:
                self.levels.add_dependency_recursive(node, None, [], 0)
            except ResolverError as e:
                logger.warning("resolver: %s", e)

    def order(self, packages: List[PackageDefinition], with_resolve: bool = False) -> List[PackageDefinition]:
        by_key: "OrderedDict[str, List[PackageDefinition]]" = OrderedDict()
        for p in packages:
            by_key.setdefault(p.key, []).append(p)

        for key, pkgs in by_key.items():
            root = pkgs[0]
            try:
                node = self._node_for(root.category, root.name, exact=root)
                self.add_deps(node, None, 1, [])
            except ResolverError as e:
                logger.warning("resolver: skipping %s: %s", root.fingerprint, e)

        logger.debug("resolver: levels after construction:\n%s", self.levels.dump())

        if with_resolve:
            self.align_level1()
            rescans = self.levels.resolve()
            logger.debug("resolver: compaction done after %d rescans, %d changed packages",
                         rescans, len(self.levels.changed))
            logger.debug("resolver: levels after compaction:\n%s", self.levels.dump())

        emitted = self._emit(by_key)
        return self._topological(emitted, by_key)

    def _emit(self, by_key: "OrderedDict[str, List[PackageDefinition]]") -> List[str]:
        processed: Set[str] = set()
        out: List[str] = []
        for tree in reversed(self.levels.trees):
            for dep in tree.deps:
                if dep.key in processed:
                    continue
                processed.add(dep.key)
                if dep.key in by_key:
                    out.append(dep.key)
        for key in by_key:
            if key not in processed:
                logger.debug("resolver: %s not placed in any level, appending", key)
                out.append(key)
        return out

    def _missing_deps(self, key: str, missing: Set[str]) -> Set[str]:
        """Missing keys reached from key through the original edges, crossing non-missing nodes."""
        out: Set[str] = set()
        node = self.levels.nodes.get(key)
        if node is None:
            return out
        stack = [r.key for r in node.original_requires]
        seen = set(stack)
        while stack:
            k = stack.pop()
            if k == key:
                continue
            if k in missing:
                out.add(k)
                continue
            n = self.levels.nodes.get(k)
            if n is None:
                continue
            for r in n.original_requires:
                if r.key not in seen:
                    seen.add(r.key)
                    stack.append(r.key)
        return out

    def _topological(self, emitted: List[str], by_key: "OrderedDict[str, List[PackageDefinition]]") -> List[PackageDefinition]:
        missing = set(emitted)
        index = {k: i for i, k in enumerate(emitted)}
        deps = {k: self._missing_deps(k, missing) for k in emitted}

        dependents: Dict[str, List[str]] = {k: [] for k in emitted}
        indegree: Dict[str, int] = {}
        for k in emitted:
            indegree[k] = len(deps[k])
            for d in deps[k]:
                dependents[d].append(k)

        # ready keys, smallest level index first
        ready = [index[k] for k in emitted if not indegree[k]]
        heapq.heapify(ready)

        done: Set[str] = set()
        order: List[str] = []
        cursor = 0
        while len(order) < len(emitted):
            if ready:
                pick = emitted[heapq.heappop(ready)]
                if pick in done:
                    continue
            else:
                # only cycles left: take the first in level order
                while emitted[cursor] in done:
                    cursor += 1
                pick = emitted[cursor]
                logger.debug("resolver: cycle among %s, emitting %s first",
                             [k for k in emitted if k not in done], pick)
            done.add(pick)
            order.append(pick)
            for k in dependents[pick]:
                indegree[k] -= 1
                if not indegree[k] and k not in done:
                    heapq.heappush(ready, index[k])

        if order != emitted:
            logger.debug("resolver: level order adjusted by the topological pass")
        out: List[PackageDefinition] = []
        for k in order:
            out.extend(by_key[k])
        return out
