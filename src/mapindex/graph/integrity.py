"""Integrity checks over the forward graph.

  detect_cycles()          circular imports (warning)
  detect_broken_imports()  internal imports with no target file (error)
  detect_unused_files()    source files nothing imports (warning)
  analyze_integrity()      the checks merged into one IssuesReport
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, Mapping

from mapindex.core.config import GraphConfig
from mapindex.graph.dependency_graph import internal_targets
from mapindex.graph.models import (
    BrokenImport,
    Cycle,
    FileRecord,
    ImportEdge,
    IssuesReport,
    UnusedFile,
)

logger = logging.getLogger(__name__)


def detect_cycles(forward: Mapping[str, list[ImportEdge]]) -> list[Cycle]:
    """Find circular imports with an iterative depth-first search.

    Roots are visited in path order.  A recursion stack tracks the current
    path; a visited set guarantees termination and stops a cycle from being
    reported again from another root.  Every back edge produces one cycle,
    listed from the target's first occurrence on the path back to itself.
    """
    cycles: list[Cycle] = []
    visited: set[str] = set()

    for root in sorted(forward):
        if root in visited:
            continue

        path: list[str] = [root]
        on_stack: dict[str, int] = {root: 0}   # node -> index in path
        visited.add(root)
        frames = [(root, iter(internal_targets(forward, root)))]

        while frames:
            node, targets = frames[-1]
            descended = False
            for target in targets:
                if target in on_stack:
                    cycle = tuple(path[on_stack[target]:]) + (target,)
                    cycles.append(Cycle(path=cycle))
                    continue
                if target in visited:
                    continue
                visited.add(target)
                on_stack[target] = len(path)
                path.append(target)
                frames.append((target, iter(internal_targets(forward, target))))
                descended = True
                break
            if not descended:
                frames.pop()
                path.pop()
                del on_stack[node]

    return cycles


def detect_broken_imports(
    forward: Mapping[str, list[ImportEdge]],
    known_paths: Iterable[str],
    suffixes: Iterable[str] = (".js", ".ts"),
) -> list[BrokenImport]:
    """Internal edges whose target (or target + any suffix) is not a known file."""
    known = set(known_paths)
    suffix_list = list(suffixes)
    broken: list[BrokenImport] = []
    for path in sorted(forward):
        for edge in forward[path]:
            if not edge.is_internal:
                continue
            candidates = [edge.source] + [edge.source + s for s in suffix_list]
            if not any(c in known for c in candidates):
                broken.append(
                    BrokenImport(file=path, specifier=edge.raw_source, resolved_to=edge.source)
                )
    return broken


def is_entry_point(path: str, entry_points: Iterable[str]) -> bool:
    name = PurePosixPath(path).name.lower()
    return name in {e.lower() for e in entry_points}


def detect_unused_files(
    records: Iterable[FileRecord],
    forward: Mapping[str, list[ImportEdge]],
    entry_points: Iterable[str],
) -> list[UnusedFile]:
    """Source files with no incoming internal edge, entry points excepted."""
    imported = {
        edge.source
        for edges in forward.values()
        for edge in edges
        if edge.is_internal
    }
    entries = list(entry_points)
    return [
        UnusedFile(file=r.path)
        for r in sorted(records, key=lambda r: r.path)
        if r.role == "source"
        and r.path not in imported
        and not is_entry_point(r.path, entries)
    ]


def analyze_integrity(
    records: Iterable[FileRecord],
    forward: Mapping[str, list[ImportEdge]],
    config: GraphConfig | None = None,
) -> IssuesReport:
    """Run every integrity check and merge the results."""
    cfg = config or GraphConfig()
    record_list = list(records)

    report = IssuesReport(
        broken_imports=tuple(
            detect_broken_imports(
                forward, (r.path for r in record_list), cfg.broken_import_suffixes
            )
        ),
        cycles=tuple(detect_cycles(forward)),
        unused_files=tuple(detect_unused_files(record_list, forward, cfg.entry_points)),
    )
    logger.info(
        "Integrity: %d broken imports, %d cycles, %d unused files",
        len(report.broken_imports), len(report.cycles), len(report.unused_files),
    )
    return report
