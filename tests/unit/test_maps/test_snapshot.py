"""Tests for MapSnapshot."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from mapindex.codec.artifact import compress_and_save
from mapindex.codec.compressor import MapCodec
from mapindex.core.errors import ArtifactCorruptError
from mapindex.maps.snapshot import SNAPSHOT_VERSION, MapSnapshot
from mapindex.maps.store import DEPENDENCIES_FORWARD, METADATA, MapStore


@pytest.fixture()
def snapshots(tmp_path: Path, codec: MapCodec) -> MapSnapshot:
    return MapSnapshot(tmp_path / "snapshots", codec)


class TestSaveLoad:
    def test_save_and_load(self, snapshots: MapSnapshot) -> None:
        maps = {METADATA: {"files": [{"path": "a.js", "size": 1}]}}
        path = snapshots.save(maps, "before")
        assert path.name == "before.json"

        data = snapshots.load("before")
        assert data["version"] == SNAPSHOT_VERSION
        assert data["snapshotName"] == "before"
        assert data["maps"] == maps
        assert snapshots.maps("before.json") == maps

    def test_invalid_names_rejected(self, snapshots: MapSnapshot) -> None:
        for name in ("", "..", "a/b", "a\\b", ".json"):
            with pytest.raises(ValueError):
                snapshots.path_for(name)

    def test_missing_snapshot(self, snapshots: MapSnapshot) -> None:
        assert not snapshots.has("nope")
        with pytest.raises(FileNotFoundError):
            snapshots.load("nope")

    def test_snapshot_without_maps_is_corrupt(self, snapshots: MapSnapshot, codec: MapCodec) -> None:
        compress_and_save(codec, {"version": "1.0"}, snapshots.path_for("broken"))
        with pytest.raises(ArtifactCorruptError, match="missing maps"):
            snapshots.load("broken")

    def test_capture_skips_absent_maps(self, tmp_path: Path, snapshots: MapSnapshot, codec: MapCodec) -> None:
        store = MapStore(tmp_path / "maps", codec)
        store.save(METADATA, {"files": []})
        snapshots.capture(store, "now")
        assert snapshots.maps("now") == {METADATA: {"files": []}}
        assert DEPENDENCIES_FORWARD not in snapshots.maps("now")


class TestHousekeeping:
    def test_list_and_delete(self, snapshots: MapSnapshot) -> None:
        assert snapshots.list_snapshots() == []
        snapshots.save({}, "b")
        snapshots.save({}, "a")
        assert snapshots.list_snapshots() == ["a", "b"]
        assert snapshots.delete("a") is True
        assert snapshots.delete("a") is False
        assert snapshots.list_snapshots() == ["b"]

    def test_cleanup_removes_only_old(self, snapshots: MapSnapshot) -> None:
        old = snapshots.save({}, "old")
        snapshots.save({}, "fresh")
        week_ago = time.time() - 7 * 24 * 3600
        os.utime(old, (week_ago, week_ago))

        assert snapshots.cleanup(max_age_seconds=24 * 3600) == 1
        assert snapshots.list_snapshots() == ["fresh"]

    def test_cleanup_with_explicit_clock(self, snapshots: MapSnapshot) -> None:
        snapshots.save({}, "one")
        assert snapshots.cleanup(max_age_seconds=60, now=time.time() + 3600) == 1
        assert snapshots.cleanup() == 0
