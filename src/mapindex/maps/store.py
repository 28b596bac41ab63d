"""MapStore: persistence layer for one project's map set.

Every map is one compressed artifact file in the maps directory.  MapStore
only moves documents between memory and disk through the codec; it never
touches compressed bytes itself and holds no business logic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from mapindex.codec.artifact import compress_and_save, read_artifact
from mapindex.codec.compressor import MapCodec
from mapindex.core.errors import ArtifactCorruptError

logger = logging.getLogger(__name__)

# ── Map categories ────────────────────────────────────────────────────────────

SUMMARY = "summary"
METADATA = "metadata"
CONTENT_SUMMARIES = "content-summaries"
DEPENDENCIES_FORWARD = "dependencies-forward"
DEPENDENCIES_REVERSE = "dependencies-reverse"
RELATIONSHIPS = "relationships"
ISSUES = "issues"
FRONTEND_COMPONENTS = "frontend-components"
MODULES = "modules"

CORE_MAPS: tuple[str, ...] = (
    SUMMARY,
    METADATA,
    CONTENT_SUMMARIES,
    DEPENDENCIES_FORWARD,
    DEPENDENCIES_REVERSE,
    RELATIONSHIPS,
    ISSUES,
)

# Maps compared by the differ (components/modules come from external detectors)
DIFFABLE_MAPS: tuple[str, ...] = (METADATA, DEPENDENCIES_FORWARD, FRONTEND_COMPONENTS, MODULES)

# Per-category codec options; everything else is size-triggered.
COMPRESSION_OPTIONS: dict[str, dict[str, Any]] = {
    METADATA: {"force_deduplication": True},
}


class MapStore:
    """Load and save map documents for one maps directory.

    Parameters
    ----------
    maps_dir:
        Directory holding one ``<category>.json`` artifact per map.
    codec:
        Codec used for every read and write.
    """

    def __init__(self, maps_dir: Path, codec: MapCodec) -> None:
        self._maps_dir = maps_dir
        self._codec = codec

    @property
    def maps_dir(self) -> Path:
        return self._maps_dir

    @property
    def codec(self) -> MapCodec:
        return self._codec

    def path_for(self, category: str) -> Path:
        return self._maps_dir / f"{category}.json"

    def exists(self, category: str = SUMMARY) -> bool:
        return self.path_for(category).is_file()

    def list_categories(self) -> list[str]:
        """Return the categories that have an artifact on disk."""
        if not self._maps_dir.is_dir():
            return []
        return sorted(p.stem for p in self._maps_dir.glob("*.json"))

    # ── Reads ─────────────────────────────────────────────────────────────────

    def load(self, category: str) -> Any:
        """Decompress one map.  Raises FileNotFoundError / ArtifactCorruptError."""
        path = self.path_for(category)
        document = read_artifact(path, self._codec)
        if not isinstance(document, dict):
            raise ArtifactCorruptError("Map document is not a JSON object", path.name)
        return document

    def load_optional(self, category: str) -> Any | None:
        """Return the map, or None when it is missing or unusable.

        A corrupt map is logged and treated as absent; it must be regenerated,
        never repaired.
        """
        try:
            return self.load(category)
        except FileNotFoundError:
            return None
        except ArtifactCorruptError as exc:
            logger.warning("Unusable map %s (regenerate it): %s", category, exc)
            return None

    def load_many(self, categories: tuple[str, ...] | list[str]) -> dict[str, Any]:
        return {category: self.load_optional(category) for category in categories}

    # ── Writes ────────────────────────────────────────────────────────────────

    def save(self, category: str, document: Any, **options: Any) -> dict[str, Any]:
        """Compress and atomically write one map.  Returns its codec metadata."""
        merged = {**COMPRESSION_OPTIONS.get(category, {}), **options}
        metadata = compress_and_save(self._codec, document, self.path_for(category), **merged)
        logger.info(
            "Saved %s.json (%d bytes, %s reduction)",
            category, metadata["compressedSize"], metadata["compressionRatio"],
        )
        return metadata

    def delete(self, category: str) -> bool:
        try:
            self.path_for(category).unlink()
        except FileNotFoundError:
            return False
        return True
