"""File-granular import graph: forward construction and derived views.

The forward graph is authoritative.  The reverse graph is *always* recomputed
from it as the transpose of its internal edges; it is never patched in place,
so any two runs that end with the same forward graph produce the same reverse
graph, byte for byte.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from mapindex.graph.models import FileRecord, ImportEdge, ParseResult, ReverseEntry

logger = logging.getLogger(__name__)

ForwardGraph = dict[str, list[ImportEdge]]
ReverseGraph = dict[str, list[ReverseEntry]]

DEFAULT_GRAPH_ROLES = ("source", "test")


@dataclass
class GraphBuildResult:
    """Forward graph plus bookkeeping from one build."""

    forward: ForwardGraph
    graph_files: list[str]                      # every source/test path considered
    skipped: list[str] = field(default_factory=list)


# ── Forward graph ─────────────────────────────────────────────────────────────

def build_forward_graph(
    records: Iterable[FileRecord],
    parse_results: Mapping[str, ParseResult],
    graph_roles: Iterable[str] = DEFAULT_GRAPH_ROLES,
) -> GraphBuildResult:
    """Build the forward graph from scanner records and parser output.

    Only files whose role is in *graph_roles* are considered.  Files with no
    parse result or a failed parse are skipped (and reported), files with no
    imports are left out of the graph.
    """
    roles = frozenset(graph_roles)
    forward: ForwardGraph = {}
    graph_files: list[str] = []
    skipped: list[str] = []

    for record in sorted(records, key=lambda r: r.path):
        if record.role not in roles:
            continue
        graph_files.append(record.path)
        result = parse_results.get(record.path)
        if result is None or result.error:
            reason = result.error if result is not None else "no parse result"
            logger.debug("Skipping %s: %s", record.path, reason)
            skipped.append(record.path)
            continue
        if result.imports:
            forward[record.path] = list(result.imports)

    if skipped:
        logger.info("Forward graph: %d files skipped (parse failures)", len(skipped))
    return GraphBuildResult(forward=forward, graph_files=graph_files, skipped=skipped)


def internal_targets(forward: Mapping[str, list[ImportEdge]], path: str) -> list[str]:
    """Distinct internal import targets of *path*, in import order."""
    edges = forward.get(path, ())
    return list(dict.fromkeys(e.source for e in edges if e.is_internal))


# ── Reverse graph ─────────────────────────────────────────────────────────────

def derive_reverse_graph(
    forward: Mapping[str, list[ImportEdge]],
    seed_paths: Iterable[str] = (),
) -> ReverseGraph:
    """Transpose the internal edges of *forward*.

    Every path in *seed_paths* gets an entry, even with no importers.  Keys are
    sorted and importers appear in (importer path, import position) order.
    """
    reverse: dict[str, list[ReverseEntry]] = {path: [] for path in seed_paths}
    for importer in sorted(forward):
        for edge in forward[importer]:
            if not edge.is_internal:
                continue
            reverse.setdefault(edge.source, []).append(
                ReverseEntry(importer=importer, symbols=edge.symbols, is_dynamic=edge.is_dynamic)
            )
    return {path: reverse[path] for path in sorted(reverse)}


# ── Metrics ───────────────────────────────────────────────────────────────────

def fan_out(forward: Mapping[str, list[ImportEdge]]) -> dict[str, int]:
    """Return {path: number of outgoing internal edges}."""
    return {
        path: sum(1 for e in forward[path] if e.is_internal)
        for path in sorted(forward)
    }


def most_dependent(
    forward: Mapping[str, list[ImportEdge]],
    limit: int = 20,
) -> list[tuple[str, int]]:
    """Files ranked by fan-out, highest first; ties broken by path."""
    ranked = sorted(fan_out(forward).items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit]


def import_stats(forward: Mapping[str, list[ImportEdge]]) -> dict[str, int]:
    """Count imports by kind, plus dynamic imports."""
    stats = {"internal": 0, "external": 0, "stdlib": 0, "dynamic": 0}
    for edges in forward.values():
        for edge in edges:
            if edge.kind in stats:
                stats[edge.kind] += 1
            if edge.is_dynamic:
                stats["dynamic"] += 1
    return stats


def import_chains(
    forward: Mapping[str, list[ImportEdge]],
    limit: int = 20,
) -> list[list[str]]:
    """Three-file transitive chains ``a -> b -> c`` over internal edges."""
    chains: list[list[str]] = []
    for path in sorted(forward):
        for middle in internal_targets(forward, path):
            if middle not in forward:
                continue
            for end in internal_targets(forward, middle):
                if end not in (path, middle):
                    chains.append([path, middle, end])
                    if len(chains) >= limit:
                        return chains
    return chains


# ── Map document (de)serialization ────────────────────────────────────────────

def forward_to_map(forward: Mapping[str, list[ImportEdge]]) -> dict[str, Any]:
    """Serialize the forward graph as ``{path: {"imports": [...]}}``, sorted."""
    return {
        path: {"imports": [edge.to_dict() for edge in forward[path]]}
        for path in sorted(forward)
    }


def forward_from_map(dependencies: Mapping[str, Any]) -> ForwardGraph:
    forward: ForwardGraph = {}
    for path, entry in dependencies.items():
        imports = entry.get("imports") if isinstance(entry, dict) else None
        forward[path] = [ImportEdge.from_dict(i) for i in imports or ()]
    return forward


def reverse_to_map(reverse: Mapping[str, list[ReverseEntry]]) -> dict[str, Any]:
    return {
        path: {"importedBy": [entry.to_dict() for entry in entries]}
        for path, entries in reverse.items()
    }
