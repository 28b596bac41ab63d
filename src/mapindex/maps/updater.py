"""IncrementalUpdater: patch an existing map set from a ChangeSet.

Only added, modified and renamed-to files are rescanned and reparsed.  Their
records and forward entries are spliced into the state loaded from disk,
deleted and renamed-from files are dropped, and every derived map (reverse
graph, relationships, issues, summary statistics) is rendered again from the
patched state.  The result equals what a full rescan of the same file state
would have written.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from mapindex.core.config import MapIndexConfig
from mapindex.core.errors import ArtifactCorruptError, EscalationRequired
from mapindex.maps import store as maps
from mapindex.maps.changes import NO_GIT, ChangeSet, current_git_hash, detect_changes
from mapindex.maps.generator import ProjectState, render_maps, save_maps
from mapindex.maps.scanner import FileScanner, ImportParser, parse_files
from mapindex.maps.store import MapStore

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "No changes detected, maps are up to date"


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of one update pass."""

    success: bool
    files_scanned: int = 0
    files_skipped: int = 0
    maps_updated: tuple[str, ...] = ()
    update_time_ms: int = 0
    message: str = ""
    escalate: bool = False
    failed_maps: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "filesScanned": self.files_scanned,
            "filesSkipped": self.files_skipped,
            "mapsUpdated": list(self.maps_updated),
            "updateTime": self.update_time_ms,
        }
        if self.message:
            data["message"] = self.message
        if self.escalate:
            data["escalate"] = True
        if self.failed_maps:
            data["failedMaps"] = list(self.failed_maps)
        return data


def needs_escalation(changed: int, previous_total: int, ratio: float = 0.30) -> bool:
    """True when *changed* exceeds *ratio* of *previous_total* (strictly)."""
    if changed <= 0:
        return False
    if previous_total <= 0:
        return True
    return changed > previous_total * ratio


class IncrementalUpdater:
    """Keep a project's maps current without a full rescan.

    Parameters
    ----------
    store:
        MapStore holding the current map set.
    scanner:
        Used to rescan changed files only.
    parser:
        External import/export extractor.
    config:
        Root configuration (escalation ratio, git timeout, worker count).
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

    # ── Decisions ─────────────────────────────────────────────────────────────

    def check_escalation(self, changes: ChangeSet, previous_total: int) -> None:
        """Raise EscalationRequired when the change set is too large to patch."""
        if needs_escalation(changes.total, previous_total, self._config.updater.escalation_ratio):
            raise EscalationRequired(changes.total, previous_total)

    def previous_total(self) -> int:
        """File count recorded by the last refresh (0 when unknown)."""
        summary = self._store.load_optional(maps.SUMMARY)
        if isinstance(summary, dict):
            total = summary.get("statistics", {}).get("totalFiles")
            if isinstance(total, int):
                return total
        metadata = self._store.load_optional(maps.METADATA)
        if isinstance(metadata, dict):
            return len(metadata.get("files", []))
        return 0

    def recorded_reference(self) -> str | None:
        """Git hash stored by the last refresh, or None when there is none to diff from."""
        for category in (maps.SUMMARY, maps.METADATA):
            document = self._store.load_optional(category)
            staleness = document.get("staleness") if isinstance(document, dict) else None
            git_hash = staleness.get("gitHash") if isinstance(staleness, dict) else None
            if isinstance(git_hash, str) and git_hash and git_hash != NO_GIT:
                return git_hash
        return None

    # ── Patching ──────────────────────────────────────────────────────────────

    def apply(self, changes: ChangeSet) -> UpdateResult:
        """Patch the stored maps with *changes* and write every map back."""
        start = time.monotonic()
        try:
            state = ProjectState.from_maps(
                self._store.load(maps.METADATA),
                self._store.load(maps.DEPENDENCIES_FORWARD),
                self._store.load_optional(maps.CONTENT_SUMMARIES),
            )
        except (FileNotFoundError, ArtifactCorruptError) as exc:
            logger.error("Cannot patch maps: %s", exc)
            return UpdateResult(
                success=False,
                message=f"Existing maps unusable ({exc}), full rescan recommended",
                escalate=True,
            )

        records = {r.path: r for r in state.records}
        forward = state.forward
        exports = state.exports

        for path in changes.removed_paths():
            records.pop(path, None)
            forward.pop(path, None)
            exports.pop(path, None)

        rescan = [p for p in changes.rescan_paths() if not self._scanner.is_excluded(p)]
        workers = self._config.updater.max_workers
        scanned, skipped = self._scanner.scan_paths(
            rescan, max_workers=workers, git_timeout=self._config.updater.git_timeout
        )

        # A changed file that can no longer be scanned is gone from the tree
        for path in skipped:
            records.pop(path, None)
            forward.pop(path, None)
            exports.pop(path, None)

        roles = frozenset(self._config.graph.graph_roles)
        to_parse: list[str] = []
        for record in scanned:
            records[record.path] = record
            if record.role in roles:
                to_parse.append(record.path)
            else:
                forward.pop(record.path, None)
                exports.pop(record.path, None)

        parse_skipped = 0
        parsed = parse_files(self._parser, self._scanner.project_dir, to_parse, max_workers=workers)
        for path, result in parsed.items():
            if result.error:
                parse_skipped += 1
                forward.pop(path, None)
                exports.pop(path, None)
                continue
            if result.imports:
                forward[path] = list(result.imports)
            else:
                forward.pop(path, None)
            exports[path] = list(result.exports)

        patched = ProjectState(records=list(records.values()), forward=forward, exports=exports)
        git_hash = current_git_hash(
            self._scanner.project_dir, timeout=self._config.updater.git_timeout
        )
        documents = render_maps(patched, self._config.graph, git_hash=git_hash)
        written, failed = save_maps(self._store, documents)

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(
            "Incremental update: %d files rescanned, %d skipped, %d parse failures, "
            "%d removed, %d/%d maps written",
            len(scanned), len(skipped), parse_skipped, len(changes.removed_paths()),
            len(written), len(documents),
        )
        return UpdateResult(
            success=not failed,
            files_scanned=len(scanned),
            files_skipped=len(skipped) + parse_skipped,
            maps_updated=tuple(f"{category}.json" for category in written),
            update_time_ms=elapsed,
            message="" if not failed else f"Failed to write: {', '.join(failed)}",
            failed_maps=tuple(failed),
        )

    def perform_update(self, reference: str | None = None) -> UpdateResult:
        """Detect changes since *reference*, then patch or escalate.

        Without *reference* the diff starts at the commit recorded by the last
        refresh, so every commit landed since then is included.
        """
        ref = reference or self.recorded_reference()
        if ref is None:
            logger.warning("No git hash recorded by the last refresh")
            return UpdateResult(
                success=False,
                message="No recorded git hash for the last refresh, full rescan recommended",
                escalate=True,
            )
        changes = detect_changes(
            self._scanner.project_dir, ref, timeout=self._config.updater.git_timeout
        )
        if changes.error:
            return UpdateResult(
                success=False,
                message=f"Change detection unavailable ({changes.error}), full rescan recommended",
                escalate=True,
            )
        if changes.is_empty():
            logger.info(NO_CHANGES_MESSAGE)
            return UpdateResult(success=True, message=NO_CHANGES_MESSAGE)

        try:
            self.check_escalation(changes, self.previous_total())
        except EscalationRequired as exc:
            logger.warning("%s", exc)
            return UpdateResult(success=False, message=str(exc), escalate=True)

        return self.apply(changes)
