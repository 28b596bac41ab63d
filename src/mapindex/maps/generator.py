"""MapGenerator: full (re)generation of a project's map set.

A full run scans every file, parses every source/test file, and renders the
core maps from the resulting ``ProjectState``.  The incremental updater patches
a ``ProjectState`` loaded from disk and renders it with the same
``render_maps`` function, so both paths produce the same documents for the
same file state.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from mapindex.core.config import GraphConfig, MapIndexConfig
from mapindex.core.errors import ArtifactCorruptError
from mapindex.graph.dependency_graph import (
    ForwardGraph,
    build_forward_graph,
    derive_reverse_graph,
    fan_out,
    forward_from_map,
    forward_to_map,
    import_chains,
    import_stats,
    most_dependent,
    reverse_to_map,
)
from mapindex.graph.integrity import analyze_integrity
from mapindex.graph.models import FileRecord, ParseResult
from mapindex.maps import store as maps
from mapindex.maps.changes import current_git_hash
from mapindex.maps.scanner import FileScanner, ImportParser, parse_files
from mapindex.maps.store import MapStore

logger = logging.getLogger(__name__)

MAP_VERSION = "1.0.0"


@dataclass
class ProjectState:
    """Everything the core maps are rendered from."""

    records: list[FileRecord]
    forward: ForwardGraph
    exports: dict[str, list[Any]] = field(default_factory=dict)

    def sorted_records(self) -> list[FileRecord]:
        return sorted(self.records, key=lambda r: r.path)

    @classmethod
    def from_maps(
        cls,
        metadata: Mapping[str, Any],
        forward_map: Mapping[str, Any],
        content_map: Mapping[str, Any] | None = None,
    ) -> ProjectState:
        """Rebuild state from decompressed metadata / forward / content maps.

        Raises ``ArtifactCorruptError`` when a map does not have the shape a
        render produces, rather than treating the missing parts as empty.
        """
        files = metadata.get("files") if isinstance(metadata, dict) else None
        if not isinstance(files, list) or not all(
            isinstance(f, dict) and isinstance(f.get("path"), str) for f in files
        ):
            raise ArtifactCorruptError("Metadata map has no valid file list", maps.METADATA)
        dependencies = forward_map.get("dependencies") if isinstance(forward_map, dict) else None
        if not isinstance(dependencies, dict):
            raise ArtifactCorruptError(
                "Forward dependency map has no dependencies table", maps.DEPENDENCIES_FORWARD
            )
        if content_map is not None and not isinstance(content_map, dict):
            raise ArtifactCorruptError("Content map is not an object", maps.CONTENT_SUMMARIES)

        records = [FileRecord.from_dict(f) for f in files]
        forward = forward_from_map(dependencies)
        summaries = (content_map or {}).get("summaries", {})
        if not isinstance(summaries, dict):
            raise ArtifactCorruptError("Content map has no summaries table", maps.CONTENT_SUMMARIES)
        exports = {
            path: list(entry.get("exports", []))
            for path, entry in summaries.items()
            if isinstance(entry, dict)
        }
        return cls(records=records, forward=forward, exports=exports)


@dataclass(frozen=True)
class GenerationResult:
    """Summary returned after a full generation run."""

    files_scanned: int
    files_skipped: int
    parse_skipped: int
    maps_written: tuple[str, ...]
    failed_maps: tuple[str, ...]
    generation_time_ms: int

    @property
    def success(self) -> bool:
        return not self.failed_maps


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _header(map_type: str, generated: str) -> dict[str, Any]:
    return {"version": MAP_VERSION, "generated": generated, "mapType": map_type}


def _primary_languages(records: list[FileRecord], limit: int = 3) -> list[dict[str, Any]]:
    counts = Counter(r.language for r in records)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"language": language, "files": count} for language, count in ranked[:limit]]


def render_maps(
    state: ProjectState,
    graph_config: GraphConfig | None = None,
    git_hash: str | None = None,
    generated: str | None = None,
) -> dict[str, dict[str, Any]]:
    """Render every core map document from *state*.

    All aggregates are recomputed from the record set and the reverse graph is
    derived from scratch; nothing is carried over from a previous render.
    """
    cfg = graph_config or GraphConfig()
    now = generated or _utc_now()
    records = state.sorted_records()
    roles = frozenset(cfg.graph_roles)
    graph_files = [r.path for r in records if r.role in roles]

    staleness = {
        "gitHash": git_hash,
        "fileCount": len(records),
        "lastRefresh": now,
        "isStale": False,
    }

    summary = {
        **_header(maps.SUMMARY, now),
        "statistics": {
            "totalFiles": len(records),
            "totalSize": sum(r.size for r in records),
            "totalLines": sum(r.lines for r in records),
            "filesByRole": dict(sorted(Counter(r.role for r in records).items())),
            "primaryLanguages": _primary_languages(records),
            "lastUpdate": now,
        },
        "staleness": staleness,
    }

    metadata = {
        **_header(maps.METADATA, now),
        "staleness": staleness,
        "files": [r.to_dict() for r in records],
    }

    content = {
        **_header(maps.CONTENT_SUMMARIES, now),
        "summaries": {
            path: {"exports": state.exports[path]} for path in sorted(state.exports)
        },
    }

    forward = state.forward
    with_deps = len(forward)
    forward_doc = {
        **_header(maps.DEPENDENCIES_FORWARD, now),
        "coverage": {
            "totalSourceFiles": len(graph_files),
            "filesWithDependencies": with_deps,
            "coveragePercent": round(with_deps / len(graph_files) * 100) if graph_files else 0,
        },
        "dependencies": forward_to_map(forward),
    }

    reverse = derive_reverse_graph(forward, seed_paths=graph_files)
    reverse_doc = {
        **_header(maps.DEPENDENCIES_REVERSE, now),
        "statistics": {
            "totalFiles": len(reverse),
            "filesWithImporters": sum(1 for entries in reverse.values() if entries),
        },
        "dependencies": reverse_to_map(reverse),
    }

    stats = import_stats(forward)
    relationships = {
        **_header(maps.RELATIONSHIPS, now),
        "statistics": {
            "totalFiles": len(graph_files),
            "filesWithDependencies": with_deps,
            "totalImports": stats["internal"] + stats["external"] + stats["stdlib"],
            "internalImports": stats["internal"],
            "externalImports": stats["external"],
            "stdlibImports": stats["stdlib"],
            "dynamicImports": stats["dynamic"],
        },
        "depthAnalysis": {
            "byFile": fan_out(forward),
            "mostDependent": [
                {"file": path, "depth": depth} for path, depth in most_dependent(forward)
            ],
        },
        "importChains": [
            {"chain": chain, "length": len(chain)} for chain in import_chains(forward)
        ],
    }

    issues = {
        **_header(maps.ISSUES, now),
        **analyze_integrity(records, forward, cfg).to_dict(),
    }

    return {
        maps.SUMMARY: summary,
        maps.METADATA: metadata,
        maps.CONTENT_SUMMARIES: content,
        maps.DEPENDENCIES_FORWARD: forward_doc,
        maps.DEPENDENCIES_REVERSE: reverse_doc,
        maps.RELATIONSHIPS: relationships,
        maps.ISSUES: issues,
    }


def save_maps(store: MapStore, documents: Mapping[str, Any]) -> tuple[list[str], list[str]]:
    """Save each document; a failure aborts only that category.

    Returns ``(written, failed)`` category lists.
    """
    written: list[str] = []
    failed: list[str] = []
    for category, document in documents.items():
        try:
            store.save(category, document)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write %s map: %s", category, exc)
            failed.append(category)
            continue
        written.append(category)
    return written, failed


class MapGenerator:
    """Build the full map set for a project from scratch.

    Parameters
    ----------
    store:
        Destination ``MapStore`` (caller owns lifecycle).
    scanner:
        Produces the file records.
    parser:
        External import/export extractor.
    config:
        Root configuration.
    """

    def __init__(
        self,
        store: MapStore,
        scanner: FileScanner,
        parser: ImportParser | Callable[[Path], Any],
        config: MapIndexConfig | None = None,
    ) -> None:
        self._store = store
        self._scanner = scanner
        self._parser = parser
        self._config = config or MapIndexConfig()

    def build_state(self) -> tuple[ProjectState, int, int]:
        """Scan and parse the project.  Returns ``(state, skipped, parse_skipped)``."""
        workers = self._config.updater.max_workers
        rel_paths = [
            p.relative_to(self._scanner.project_dir).as_posix()
            for p in self._scanner.collect_files()
        ]
        records, skipped = self._scanner.scan_paths(
            rel_paths, max_workers=workers, git_timeout=self._config.updater.git_timeout
        )
        state, parse_skipped = self.state_from_records(records)
        return state, len(skipped), parse_skipped

    def state_from_records(
        self,
        records: list[FileRecord],
        parse_results: Mapping[str, ParseResult] | None = None,
    ) -> tuple[ProjectState, int]:
        """Parse the graph-role files of *records* (unless already parsed)."""
        roles = frozenset(self._config.graph.graph_roles)
        parsed = parse_results
        if parsed is None:
            parsed = parse_files(
                self._parser,
                self._scanner.project_dir,
                [r.path for r in records if r.role in roles],
                max_workers=self._config.updater.max_workers,
            )
        built = build_forward_graph(records, parsed, roles)
        return (
            ProjectState(
                records=records,
                forward=built.forward,
                exports=_exports_of(parsed, built.graph_files),
            ),
            len(built.skipped),
        )

    def generate_all(
        self,
        records: list[FileRecord] | None = None,
        parse_results: Mapping[str, ParseResult] | None = None,
    ) -> GenerationResult:
        """Scan, parse and write every core map.

        Precomputed *records* and *parse_results* skip the matching stage.
        """
        start = time.monotonic()
        if records is None:
            state, skipped, parse_skipped = self.build_state()
        else:
            state, parse_skipped = self.state_from_records(records, parse_results)
            skipped = 0

        git_hash = current_git_hash(
            self._scanner.project_dir, timeout=self._config.updater.git_timeout
        )
        documents = render_maps(state, self._config.graph, git_hash=git_hash)
        written, failed = save_maps(self._store, documents)

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(
            "Full generation: %d files scanned, %d skipped, %d parse failures, %d/%d maps written",
            len(state.records), skipped, parse_skipped, len(written), len(documents),
        )
        return GenerationResult(
            files_scanned=len(state.records),
            files_skipped=skipped,
            parse_skipped=parse_skipped,
            maps_written=tuple(written),
            failed_maps=tuple(failed),
            generation_time_ms=elapsed,
        )


def _exports_of(parsed: Mapping[str, ParseResult], paths: list[str]) -> dict[str, list[Any]]:
    exports: dict[str, list[Any]] = {}
    for path in paths:
        result = parsed.get(path)
        if result is not None and not result.error:
            exports[path] = list(result.exports)
    return exports
