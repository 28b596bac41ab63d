"""Named snapshots of a map set, kept for before/after diffing around a refresh."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from mapindex.codec.artifact import compress_and_save, read_artifact
from mapindex.codec.compressor import MapCodec
from mapindex.core.errors import ArtifactCorruptError
from mapindex.maps.store import DIFFABLE_MAPS, MapStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"
DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60


class MapSnapshot:
    """Save, load and prune snapshots stored as codec artifacts.

    Parameters
    ----------
    snapshots_dir:
        Directory holding one ``<name>.json`` artifact per snapshot.
    codec:
        Codec used for every read and write.
    """

    def __init__(self, snapshots_dir: Path, codec: MapCodec) -> None:
        self._dir = snapshots_dir
        self._codec = codec

    def path_for(self, name: str) -> Path:
        stem = name[:-5] if name.endswith(".json") else name
        if not stem or "/" in stem or "\\" in stem or stem in (".", ".."):
            raise ValueError(f"Invalid snapshot name: {name!r}")
        return self._dir / f"{stem}.json"

    def save(self, maps: dict[str, Any], name: str) -> Path:
        """Write *maps* (category -> document) as snapshot *name*."""
        path = self.path_for(name)
        data = {
            "version": SNAPSHOT_VERSION,
            "snapshotName": path.stem,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "maps": maps,
        }
        compress_and_save(self._codec, data, path)
        logger.info("Saved snapshot %s (%d maps)", path.stem, len(maps))
        return path

    def capture(
        self,
        store: MapStore,
        name: str,
        categories: Iterable[str] = DIFFABLE_MAPS,
    ) -> Path:
        """Snapshot the current maps of *store*; unusable maps are left out."""
        maps = {
            category: document
            for category, document in store.load_many(list(categories)).items()
            if document is not None
        }
        return self.save(maps, name)

    def load(self, name: str) -> dict[str, Any]:
        """Return the snapshot envelope.  Raises FileNotFoundError / ArtifactCorruptError."""
        path = self.path_for(name)
        data = read_artifact(path, self._codec)
        if not isinstance(data, dict) or not isinstance(data.get("maps"), dict):
            raise ArtifactCorruptError("invalid snapshot format: missing maps data", path.name)
        return data

    def maps(self, name: str) -> dict[str, Any]:
        return self.load(name)["maps"]

    def has(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def delete(self, name: str) -> bool:
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            return False
        return True

    def list_snapshots(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def cleanup(self, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS, now: float | None = None) -> int:
        """Delete snapshots whose file is older than *max_age_seconds*."""
        current = time.time() if now is None else now
        deleted = 0
        for name in self.list_snapshots():
            try:
                age = current - self.path_for(name).stat().st_mtime
            except FileNotFoundError:
                continue
            if age > max_age_seconds and self.delete(name):
                deleted += 1
        if deleted:
            logger.info("Removed %d old snapshots", deleted)
        return deleted
