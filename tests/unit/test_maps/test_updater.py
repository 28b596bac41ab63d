"""Tests for IncrementalUpdater."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from mapindex.codec.compressor import MapCodec
from mapindex.core.config import MapIndexConfig, UpdaterConfig
from mapindex.core.errors import EscalationRequired
from mapindex.maps import store as maps
from mapindex.maps.changes import ChangeSet, Rename
from mapindex.maps.generator import MapGenerator
from mapindex.maps.scanner import FileScanner
from mapindex.maps.store import CORE_MAPS, MapStore
from mapindex.maps.updater import (
    NO_CHANGES_MESSAGE,
    IncrementalUpdater,
    UpdateResult,
    needs_escalation,
)

PROJECT = {
    "src/a.js": "import ./b.js\nexport a\n",
    "src/b.js": "import ./c.js\nexport b\n",
    "src/c.js": "import ./a.js\n",
    "src/index.js": "import ./a.js\n",
    "README.md": "# demo\n",
}

_VOLATILE = frozenset({"generated", "lastRefresh", "lastUpdate"})


def _stable(value: Any) -> Any:
    """Drop timestamps so two renders of the same state compare equal."""
    if isinstance(value, dict):
        return {k: _stable(v) for k, v in value.items() if k not in _VOLATILE}
    if isinstance(value, list):
        return [_stable(v) for v in value]
    return value


def _documents(store: MapStore) -> dict[str, Any]:
    return {category: _stable(store.load(category)) for category in CORE_MAPS}


@pytest.fixture()
def project(tmp_path: Path, write_files) -> Path:
    return write_files(tmp_path / "project", PROJECT)


@pytest.fixture()
def store(project: Path, codec: MapCodec) -> MapStore:
    return MapStore(project / ".mapindex" / "maps", codec)


@pytest.fixture()
def updater(project: Path, store: MapStore, line_parser) -> IncrementalUpdater:
    return IncrementalUpdater(store, FileScanner(project), line_parser(project), MapIndexConfig())


def _full_generate(project: Path, store: MapStore, line_parser) -> None:
    result = MapGenerator(store, FileScanner(project), line_parser(project), MapIndexConfig()).generate_all()
    assert result.success


# ── Escalation ────────────────────────────────────────────────────────────────


class TestEscalation:
    @pytest.mark.parametrize(
        ("changed", "total", "expected"),
        [
            (31, 100, True),
            (30, 100, False),
            (0, 100, False),
            (1, 0, True),
            (0, 0, False),
        ],
    )
    def test_threshold_is_strict(self, changed: int, total: int, expected: bool) -> None:
        assert needs_escalation(changed, total) is expected

    def test_custom_ratio(self) -> None:
        assert needs_escalation(11, 100, ratio=0.10)
        assert not needs_escalation(10, 100, ratio=0.10)

    def test_check_escalation_raises(self, updater: IncrementalUpdater) -> None:
        changes = ChangeSet(modified=("a.js", "b.js"))
        with pytest.raises(EscalationRequired) as excinfo:
            updater.check_escalation(changes, previous_total=5)
        assert excinfo.value.changed == 2
        assert "40.0%" in str(excinfo.value)

    def test_check_escalation_passes_small_change(self, updater: IncrementalUpdater) -> None:
        updater.check_escalation(ChangeSet(modified=("a.js",)), previous_total=5)

    def test_previous_total(self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser) -> None:
        assert updater.previous_total() == 0
        _full_generate(project, store, line_parser)
        assert updater.previous_total() == len(PROJECT)

    def test_previous_total_falls_back_to_metadata(self, store: MapStore, updater: IncrementalUpdater) -> None:
        store.save(maps.METADATA, {"files": [{"path": "a.js"}, {"path": "b.js"}]})
        assert updater.previous_total() == 2

    def test_recorded_reference(self, store: MapStore, updater: IncrementalUpdater) -> None:
        assert updater.recorded_reference() is None
        store.save(maps.METADATA, {"staleness": {"gitHash": "1111111"}, "files": []})
        assert updater.recorded_reference() == "1111111"
        store.save(maps.SUMMARY, {"staleness": {"gitHash": "2222222"}})
        assert updater.recorded_reference() == "2222222"

    def test_no_git_is_not_a_reference(self, store: MapStore, updater: IncrementalUpdater) -> None:
        store.save(maps.SUMMARY, {"staleness": {"gitHash": "no-git"}})
        assert updater.recorded_reference() is None


# ── apply ─────────────────────────────────────────────────────────────────────


class TestApply:
    def test_matches_full_generation(
        self, tmp_path: Path, project: Path, store: MapStore, updater: IncrementalUpdater,
        codec: MapCodec, write_files, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)

        write_files(project, {"src/b.js": "import lodash\nexport b\n", "src/d.js": "import ./b.js\n"})
        (project / "src/c.js").unlink()
        (project / "src/a.js").rename(project / "src/app.js")
        changes = ChangeSet(
            modified=("src/b.js",),
            added=("src/d.js",),
            deleted=("src/c.js",),
            renamed=(Rename("src/a.js", "src/app.js"),),
        )
        result = updater.apply(changes)
        assert result.success
        assert result.files_scanned == 3
        assert set(result.maps_updated) == {f"{c}.json" for c in CORE_MAPS}

        fresh = MapStore(tmp_path / "fresh", codec)
        _full_generate(project, fresh, line_parser)
        assert _documents(store) == _documents(fresh)

    def test_reverse_graph_follows_forward(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, write_files, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        write_files(project, {"src/a.js": "export a\n"})
        updater.apply(ChangeSet(modified=("src/a.js",)))

        reverse = store.load(maps.DEPENDENCIES_REVERSE)["dependencies"]
        assert reverse["src/b.js"]["importedBy"] == []
        assert [e["file"] for e in reverse["src/a.js"]["importedBy"]] == ["src/c.js", "src/index.js"]
        issues = store.load(maps.ISSUES)
        assert issues["summary"]["circularDependencies"] == 0
        assert [u["file"] for u in issues["issues"]["unusedFiles"]] == ["src/b.js"]

    def test_deleted_import_target_becomes_broken(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        (project / "src/c.js").unlink()
        updater.apply(ChangeSet(deleted=("src/c.js",)))

        broken = store.load(maps.ISSUES)["issues"]["brokenImports"]
        assert [(b["file"], b["resolvedTo"]) for b in broken] == [("src/b.js", "src/c.js")]
        assert store.load(maps.SUMMARY)["statistics"]["totalFiles"] == len(PROJECT) - 1

    def test_parse_failure_drops_forward_entry(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, write_files, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        write_files(project, {"src/b.js": "!fail\n"})
        result = updater.apply(ChangeSet(modified=("src/b.js",)))

        assert result.success
        assert result.files_skipped == 1
        forward = store.load(maps.DEPENDENCIES_FORWARD)["dependencies"]
        assert "src/b.js" not in forward
        paths = [f["path"] for f in store.load(maps.METADATA)["files"]]
        assert "src/b.js" in paths

    def test_vanished_file_is_removed(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        (project / "src/b.js").unlink()
        result = updater.apply(ChangeSet(modified=("src/b.js",)))
        assert result.files_skipped == 1
        paths = [f["path"] for f in store.load(maps.METADATA)["files"]]
        assert "src/b.js" not in paths

    def test_excluded_paths_ignored(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        result = updater.apply(ChangeSet(added=(".mapindex/maps/summary.json",)))
        assert result.files_scanned == 0
        assert store.load(maps.SUMMARY)["statistics"]["totalFiles"] == len(PROJECT)

    def test_incomplete_metadata_escalates(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        store.path_for(maps.METADATA).write_text(json.dumps({"version": "1.0"}), encoding="utf-8")
        result = updater.apply(ChangeSet(modified=("src/a.js",)))
        assert not result.success
        assert result.escalate
        assert store.load(maps.SUMMARY)["statistics"]["totalFiles"] == len(PROJECT)

    def test_non_object_metadata_escalates(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        store.path_for(maps.METADATA).write_text(
            json.dumps({"compressed": False, "data": "junk"}), encoding="utf-8"
        )
        result = updater.apply(ChangeSet(modified=("src/a.js",)))
        assert result.escalate
        assert "Existing maps unusable" in result.message

    def test_missing_maps_escalate(self, updater: IncrementalUpdater) -> None:
        result = updater.apply(ChangeSet(modified=("src/a.js",)))
        assert not result.success
        assert result.escalate
        assert "full rescan recommended" in result.message

    def test_corrupt_maps_escalate(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        _full_generate(project, store, line_parser)
        store.path_for(maps.METADATA).write_text("{broken", encoding="utf-8")
        result = updater.apply(ChangeSet(modified=("src/a.js",)))
        assert result.escalate
        assert "Existing maps unusable" in result.message


# ── perform_update ────────────────────────────────────────────────────────────


class TestPerformUpdate:
    def test_without_git_escalates(self, updater: IncrementalUpdater, git) -> None:
        result = updater.perform_update("HEAD")
        assert not result.success
        assert result.escalate
        assert result.message.startswith("Change detection unavailable")

    def _committed(self, git_repo: Path, git, write_files, codec: MapCodec, line_parser):
        write_files(git_repo, PROJECT)
        git(git_repo, "add", ".")
        git(git_repo, "commit", "-qm", "init")
        store = MapStore(git_repo / ".mapindex" / "maps", codec)
        _full_generate(git_repo, store, line_parser)
        updater = IncrementalUpdater(store, FileScanner(git_repo), line_parser(git_repo), MapIndexConfig())
        return store, updater

    def test_without_recorded_hash_escalates(
        self, project: Path, store: MapStore, updater: IncrementalUpdater, line_parser,
    ) -> None:
        assert updater.perform_update().escalate
        _full_generate(project, store, line_parser)
        result = updater.perform_update()
        assert not result.success
        assert result.escalate
        assert result.message.startswith("No recorded git hash")

    def test_default_reference_covers_every_commit_since_refresh(
        self, git_repo: Path, git, write_files, codec: MapCodec, line_parser,
    ) -> None:
        store, _ = self._committed(git_repo, git, write_files, codec, line_parser)
        write_files(git_repo, {"src/index.js": "import ./a.js\nimport ./c.js\n"})
        git(git_repo, "commit", "-qam", "first")
        write_files(git_repo, {"README.md": "# demo, edited\n"})
        git(git_repo, "commit", "-qam", "second")

        config = MapIndexConfig(updater=UpdaterConfig(escalation_ratio=0.5))
        updater = IncrementalUpdater(store, FileScanner(git_repo), line_parser(git_repo), config)
        result = updater.perform_update()
        assert result.success, result.message
        assert result.files_scanned == 2

        forward = store.load(maps.DEPENDENCIES_FORWARD)["dependencies"]
        assert [e["source"] for e in forward["src/index.js"]["imports"]] == ["src/a.js", "src/c.js"]
        head = git(git_repo, "rev-parse", "--short", "HEAD").strip()
        assert updater.recorded_reference() == head

    def test_no_changes(self, git_repo: Path, git, write_files, codec: MapCodec, line_parser) -> None:
        _, updater = self._committed(git_repo, git, write_files, codec, line_parser)
        result = updater.perform_update()
        assert result.success
        assert result.message == NO_CHANGES_MESSAGE
        assert result.maps_updated == ()

    def test_small_change_is_patched(self, git_repo: Path, git, write_files, codec: MapCodec, line_parser) -> None:
        store, updater = self._committed(git_repo, git, write_files, codec, line_parser)
        write_files(git_repo, {"src/c.js": "export c\n"})
        result = updater.perform_update("HEAD")
        assert result.success
        assert result.files_scanned == 1
        assert store.load(maps.ISSUES)["summary"]["circularDependencies"] == 0

    def test_large_change_escalates(self, git_repo: Path, git, write_files, codec: MapCodec, line_parser) -> None:
        _, updater = self._committed(git_repo, git, write_files, codec, line_parser)
        write_files(git_repo, {"src/a.js": "x\n", "src/b.js": "y\n"})
        result = updater.perform_update("HEAD")
        assert not result.success
        assert result.escalate
        assert "Too many changes (40.0%)" in result.message


class TestUpdateResult:
    def test_to_dict_minimal(self) -> None:
        assert UpdateResult(success=True).to_dict() == {
            "success": True, "filesScanned": 0, "filesSkipped": 0, "mapsUpdated": [], "updateTime": 0,
        }

    def test_to_dict_optional_fields(self) -> None:
        data = UpdateResult(success=False, message="m", escalate=True, failed_maps=("issues",)).to_dict()
        assert data["message"] == "m"
        assert data["escalate"] is True
        assert data["failedMaps"] == ["issues"]
