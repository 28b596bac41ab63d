"""Dependency graph model and integrity analysis."""

from mapindex.graph.dependency_graph import (
    ForwardGraph,
    ReverseGraph,
    build_forward_graph,
    derive_reverse_graph,
    fan_out,
    most_dependent,
)
from mapindex.graph.integrity import analyze_integrity, detect_cycles
from mapindex.graph.models import FileRecord, ImportEdge, IssuesReport, ParseResult

__all__ = [
    "FileRecord",
    "ForwardGraph",
    "ImportEdge",
    "IssuesReport",
    "ParseResult",
    "ReverseGraph",
    "analyze_integrity",
    "build_forward_graph",
    "derive_reverse_graph",
    "detect_cycles",
    "fan_out",
    "most_dependent",
]
