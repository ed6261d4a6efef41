"""Dependency graph helpers: completeness checks and implementation ordering."""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter, defaultdict

from core.errors import IncompleteGraphError
from core.state import DependencyFile, FolderNode

logger = logging.getLogger(__name__)


def validate_completeness(root_folder: FolderNode, files: list[DependencyFile]):
    """Raise IncompleteGraphError unless tree and graph describe the same files."""
    tree_paths = set(root_folder.file_paths())
    counts = Counter(f.key for f in files)
    duplicates = sorted(k for k, n in counts.items() if n > 1)
    if duplicates:
        raise IncompleteGraphError(
            f"Dependency tree lists file(s) more than once: {', '.join(duplicates)}",
        )

    graph_paths = set(counts)
    missing_from_graph = sorted(tree_paths - graph_paths)
    missing_from_tree = sorted(graph_paths - tree_paths)
    if not missing_from_graph and not missing_from_tree:
        return

    parts = []
    if missing_from_graph:
        parts.append(f"missing from dependency tree: {', '.join(missing_from_graph)}")
    if missing_from_tree:
        parts.append(f"missing from folder structure: {', '.join(missing_from_tree)}")
    raise IncompleteGraphError(
        "Dependency tree does not match folder structure (" + "; ".join(parts) + ")",
        missing_from_graph=missing_from_graph,
        missing_from_tree=missing_from_tree,
    )


def _reaches(start, target, deps, remaining):
    """True if target is reachable from start following unresolved dependency edges."""
    stack = [start]
    seen = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(d for d in deps[node] if d in remaining)
    return False


def order_dependency_tree(files: list[DependencyFile]):
    """Return (ordered_files, notes) with a cycle-free order assigned.

    Kahn's algorithm, ready files taken by (declared order, path). A cycle is
    broken at the lowest-ranked file on it: its edges back into the cycle
    become advisory. implementation_order is then 1 + the longest dependency
    chain, and dependents are recomputed from the kept edges.
    """
    by_key = {f.key: f for f in files}
    notes = []
    deps = {}
    for f in files:
        clean = []
        for d in f.dependencies:
            if d == f.key:
                logger.info("Dropping self-dependency of %s", f.key)
                continue
            if d not in by_key:
                logger.warning("Dropping unknown dependency %s of %s", d, f.key)
                notes.append(f"Ignored dependency of {f.key} on unknown file {d}.")
                continue
            if d not in clean:
                clean.append(d)
        deps[f.key] = clean

    def rank(key):
        return (by_key[key].implementation_order, key)

    advisory = defaultdict(list)
    remaining = set(by_key)
    resolved = set()
    topo = []
    while remaining:
        ready = sorted((k for k in remaining if all(d in resolved for d in deps[k])), key=rank)
        if ready:
            for k in ready:
                topo.append(k)
                resolved.add(k)
                remaining.discard(k)
            continue

        for k in sorted(remaining, key=rank):
            closing = [d for d in deps[k] if d in remaining and _reaches(d, k, deps, remaining)]
            if closing:
                deps[k] = [d for d in deps[k] if d not in closing]
                advisory[k].extend(closing)
                logger.warning("Breaking dependency cycle: %s -> %s made advisory", k, closing)
                notes.append(
                    f"Dependency cycle broken: {k} no longer waits for {', '.join(closing)} "
                    f"(kept as advisory)."
                )
                break

    level = {}
    for k in topo:
        level[k] = 1 + max((level[d] for d in deps[k]), default=0)

    dependents = defaultdict(list)
    for k in topo:
        for d in deps[k]:
            dependents[d].append(k)

    ordered = [
        dataclasses.replace(
            by_key[k],
            dependencies=list(deps[k]),
            dependents=sorted(dependents[k]),
            implementation_order=level[k],
            advisory_dependencies=list(advisory[k]),
        )
        for k in topo
    ]
    ordered.sort(key=synthesis_sort_key)
    return ordered, notes


def synthesis_sort_key(f: DependencyFile):
    return (f.implementation_order, f.path, f.name)


def is_topologically_sound(files: list[DependencyFile]):
    """Every dependency must point at a file with a strictly smaller order."""
    order = {f.key: f.implementation_order for f in files}
    for f in files:
        if f.implementation_order < 1:
            return False
        for d in f.dependencies:
            if d not in order or order[d] >= f.implementation_order:
                return False
    return True
