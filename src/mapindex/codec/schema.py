"""Compression schema: the bidirectional key-abbreviation table.

The schema is process-wide configuration, not per-document data.  It is loaded
once by the caller and handed to ``MapCodec``; a missing or inconsistent schema
is fatal (``SchemaLoadError``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from mapindex.core.errors import SchemaLoadError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).parent / "data" / "compression_schema.yaml"

# Prefix marking a document key that must not be expanded on decompression.
KEY_ESCAPE = "~"

# Reference table name -> semantic key whose string values it deduplicates.
DEFAULT_VALUE_REFERENCES: dict[str, str] = {
    "fileTypes": "type",
    "fileRoles": "role",
    "commonPaths": "path",
    "frequentImports": "import",
}


@dataclass(frozen=True)
class CompressionSchema:
    """Immutable key-abbreviation table plus the deduplication categories.

    ``mappings`` maps short code -> full key.  Encoding is injective for every
    possible key: keys that would be mistaken for a short code on the way back
    are escaped with ``KEY_ESCAPE``.
    """

    version: str
    mappings: Mapping[str, str]
    value_references: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_VALUE_REFERENCES))
    )
    _abbreviations: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for short in self.mappings:
            if not short:
                raise SchemaLoadError("Empty short code in key mappings")
            if short.startswith(KEY_ESCAPE):
                raise SchemaLoadError(
                    f"Short code {short!r} uses reserved prefix {KEY_ESCAPE!r}"
                )
        reverse: dict[str, str] = {}
        for short, full in self.mappings.items():
            if full in reverse:
                raise SchemaLoadError(
                    f"Key {full!r} mapped by both {reverse[full]!r} and {short!r}"
                )
            reverse[full] = short
        object.__setattr__(self, "mappings", MappingProxyType(dict(self.mappings)))
        object.__setattr__(
            self, "value_references", MappingProxyType(dict(self.value_references))
        )
        object.__setattr__(self, "_abbreviations", MappingProxyType(reverse))

    # ── Key translation ───────────────────────────────────────────────────────

    def abbreviate(self, key: str) -> str:
        """Return the compressed form of a full document key."""
        short = self._abbreviations.get(key)
        if short is not None:
            return short
        if key in self.mappings or key.startswith(KEY_ESCAPE):
            return KEY_ESCAPE + key
        return key

    def expand(self, key: str) -> str:
        """Invert ``abbreviate``."""
        if key.startswith(KEY_ESCAPE):
            return key[len(KEY_ESCAPE):]
        return self.mappings.get(key, key)

    def category_keys(self) -> dict[str, str]:
        """Return {compressed key: table name} for value deduplication."""
        return {
            self.abbreviate(full_key): table
            for table, full_key in self.value_references.items()
        }

    @classmethod
    def from_dict(cls, data: Any) -> CompressionSchema:
        """Build a schema from its parsed document form."""
        if not isinstance(data, dict):
            raise SchemaLoadError("Compression schema must be a mapping")
        key_mappings = data.get("keyMappings")
        if not isinstance(key_mappings, dict) or not isinstance(
            key_mappings.get("mappings"), dict
        ):
            raise SchemaLoadError("Compression schema has no keyMappings.mappings table")
        mappings = key_mappings["mappings"]
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in mappings.items()):
            raise SchemaLoadError("Key mappings must map strings to strings")

        refs = data.get("valueReferences")
        value_references = dict(DEFAULT_VALUE_REFERENCES)
        if isinstance(refs, dict):
            # Older schema files list empty tables here; only string entries
            # override the category key.
            for table, full_key in refs.items():
                if isinstance(full_key, str):
                    value_references[str(table)] = full_key

        return cls(
            version=str(data.get("version", "1.0")),
            mappings=mappings,
            value_references=value_references,
        )


def load_schema(path: Path | None = None) -> CompressionSchema:
    """Load the compression schema from *path* (default: the packaged schema).

    Raises ``SchemaLoadError`` when the file is missing or unparsable; callers
    must treat this as fatal.
    """
    schema_path = path or DEFAULT_SCHEMA_PATH
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise SchemaLoadError(f"Failed to load compression schema: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SchemaLoadError(f"Failed to parse compression schema {schema_path}: {exc}") from exc

    schema = CompressionSchema.from_dict(data)
    logger.debug(
        "Loaded compression schema %s (%d key mappings)", schema_path, len(schema.mappings)
    )
    return schema
