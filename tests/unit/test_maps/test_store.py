"""Tests for MapStore."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mapindex.codec.compressor import MapCodec
from mapindex.core.errors import ArtifactCorruptError
from mapindex.maps.store import METADATA, SUMMARY, MapStore


@pytest.fixture()
def store(tmp_path: Path, codec: MapCodec) -> MapStore:
    return MapStore(tmp_path / "maps", codec)


class TestMapStore:
    def test_save_and_load(self, store: MapStore) -> None:
        store.save(SUMMARY, {"statistics": {"totalFiles": 3}})
        assert store.exists(SUMMARY)
        assert store.load(SUMMARY) == {"statistics": {"totalFiles": 3}}

    def test_metadata_always_deduplicated(self, store: MapStore) -> None:
        metadata = store.save(METADATA, {"files": []})
        assert metadata["compressionLevel"] == 3

    def test_explicit_options_override_defaults(self, store: MapStore) -> None:
        assert store.save(SUMMARY, {"a": 1}, level=2)["compressionLevel"] == 2

    def test_list_categories(self, store: MapStore) -> None:
        assert store.list_categories() == []
        store.save(SUMMARY, {})
        store.save(METADATA, {"files": []})
        assert store.list_categories() == [METADATA, SUMMARY]

    def test_load_missing_raises(self, store: MapStore) -> None:
        with pytest.raises(FileNotFoundError):
            store.load(SUMMARY)

    def test_load_optional_missing(self, store: MapStore) -> None:
        assert store.load_optional(SUMMARY) is None

    def test_load_optional_corrupt_is_none(self, store: MapStore) -> None:
        store.save(SUMMARY, {"a": 1})
        store.path_for(SUMMARY).write_text("{oops", encoding="utf-8")
        assert store.load_optional(SUMMARY) is None
        with pytest.raises(ArtifactCorruptError):
            store.load(SUMMARY)

    def test_corrupt_map_does_not_affect_others(self, store: MapStore) -> None:
        store.save(SUMMARY, {"a": 1})
        store.save(METADATA, {"files": []})
        envelope = json.loads(store.path_for(METADATA).read_text(encoding="utf-8"))
        envelope["metadata"] = {}
        store.path_for(METADATA).write_text(json.dumps(envelope), encoding="utf-8")
        loaded = store.load_many([SUMMARY, METADATA])
        assert loaded == {SUMMARY: {"a": 1}, METADATA: None}

    def test_non_object_document_is_corrupt(self, store: MapStore) -> None:
        store.path_for(METADATA).parent.mkdir(parents=True, exist_ok=True)
        store.path_for(METADATA).write_text(
            json.dumps({"compressed": False, "data": "junk"}), encoding="utf-8"
        )
        with pytest.raises(ArtifactCorruptError, match="not a JSON object"):
            store.load(METADATA)
        assert store.load_optional(METADATA) is None

    def test_delete(self, store: MapStore) -> None:
        store.save(SUMMARY, {})
        assert store.delete(SUMMARY) is True
        assert store.delete(SUMMARY) is False
