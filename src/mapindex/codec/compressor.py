"""MapCodec: multi-level compression for map documents.

Three cumulative levels, each triggered by the canonical size of the input
document or forced by the caller:

  1. Minification (always): compact, whitespace-free JSON.
  2. Key abbreviation (> 5 KB): full keys replaced by schema short codes.
  3. Value deduplication (> 20 KB): repeated category values moved into
     reference tables and replaced by ``@<table>:<index>`` tokens.

Decompression undoes level 3 first, then level 2.  ``decompress(compress(d))``
is structurally equal to ``d`` for every JSON document and every level.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mapindex.codec.schema import CompressionSchema, load_schema
from mapindex.codec.walk import iter_leaves, transform
from mapindex.core.config import CodecConfig
from mapindex.core.errors import ArtifactCorruptError

logger = logging.getLogger(__name__)

LEVEL_METHODS: dict[int, str] = {
    1: "minification",
    2: "key-abbreviation",
    3: "value-deduplication",
}

_REQUIRED_METADATA = ("originalSize", "compressedSize", "compressionLevel", "method")

_REFERENCE_TOKEN = re.compile(r"@([^:@]+):(\d+)")

# Category values starting with this are escaped by doubling it.
_REF_PREFIX = "@"


@dataclass(frozen=True)
class CompressionResult:
    """Output of ``MapCodec.compress``."""

    payload: str
    metadata: dict[str, Any]
    references: dict[str, list[str]] | None

    @property
    def level(self) -> int:
        return int(self.metadata["compressionLevel"])


def canonicalize(data: Any) -> str:
    """Serialize *data* as compact JSON (level 1)."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class MapCodec:
    """Compress and decompress map documents against one ``CompressionSchema``.

    Parameters
    ----------
    schema:
        Loaded, immutable key-abbreviation schema.
    abbreviation_threshold / deduplication_threshold:
        Original sizes (bytes) above which levels 2 and 3 are applied.
    min_occurrences:
        A value enters a reference table once it occurs this many times.
    min_value_length:
        Only strings strictly longer than this are counted.
    """

    def __init__(
        self,
        schema: CompressionSchema,
        abbreviation_threshold: int = 5120,
        deduplication_threshold: int = 20480,
        min_occurrences: int = 3,
        min_value_length: int = 3,
    ) -> None:
        self._schema = schema
        self._abbreviation_threshold = abbreviation_threshold
        self._deduplication_threshold = deduplication_threshold
        self._min_occurrences = min_occurrences
        self._min_value_length = min_value_length
        self._category_keys = schema.category_keys()

    @classmethod
    def from_config(cls, config: CodecConfig) -> MapCodec:
        """Load the configured schema and build a codec (schema errors are fatal)."""
        schema = load_schema(Path(config.schema_path) if config.schema_path else None)
        return cls(
            schema,
            abbreviation_threshold=config.abbreviation_threshold,
            deduplication_threshold=config.deduplication_threshold,
            min_occurrences=config.min_occurrences,
            min_value_length=config.min_value_length,
        )

    @property
    def schema(self) -> CompressionSchema:
        return self._schema

    # ── Level 2: keys ─────────────────────────────────────────────────────────

    def abbreviate_keys(self, tree: Any) -> Any:
        return transform(tree, key_fn=self._schema.abbreviate)

    def expand_keys(self, tree: Any) -> Any:
        return transform(tree, key_fn=self._schema.expand)

    # ── Level 3: values ───────────────────────────────────────────────────────

    def build_reference_tables(self, tree: Any) -> dict[str, list[str]]:
        """Pass A: count category values and keep the frequent ones.

        Tables are ordered by descending count; equal counts keep the order in
        which values were first seen during a pre-order walk of the document.
        """
        counters: dict[str, Counter[str]] = {
            table: Counter() for table in self._schema.value_references
        }
        for leaf, parent_key in iter_leaves(tree):
            if not isinstance(leaf, str) or len(leaf) <= self._min_value_length:
                continue
            table = self._category_keys.get(parent_key) if parent_key is not None else None
            if table is not None:
                counters[table][leaf] += 1

        tables: dict[str, list[str]] = {}
        for table, counter in counters.items():
            frequent = [
                (value, count)
                for value, count in counter.items()
                if count >= self._min_occurrences
            ]
            # sorted() is stable: ties stay in first-seen order
            frequent = sorted(frequent, key=lambda item: -item[1])
            tables[table] = [value for value, _ in frequent]
        return tables

    def deduplicate_values(self, tree: Any) -> tuple[Any, dict[str, list[str]]]:
        """Replace frequent category values with reference tokens (pass A + B)."""
        tables = self.build_reference_tables(tree)
        index = {
            table: {value: i for i, value in enumerate(values)}
            for table, values in tables.items()
        }

        def replace(leaf: Any, parent_key: str | None) -> Any:
            if not isinstance(leaf, str) or parent_key is None:
                return leaf
            table = self._category_keys.get(parent_key)
            if table is None:
                return leaf
            position = index[table].get(leaf)
            if position is not None:
                return f"{_REF_PREFIX}{table}:{position}"
            if leaf.startswith(_REF_PREFIX):
                return _REF_PREFIX + leaf
            return leaf

        return transform(tree, leaf_fn=replace), tables

    def restore_values(self, tree: Any, references: dict[str, list[str]]) -> Any:
        def restore(leaf: Any, parent_key: str | None) -> Any:
            if not isinstance(leaf, str) or parent_key not in self._category_keys:
                return leaf
            if not leaf.startswith(_REF_PREFIX):
                return leaf
            if leaf.startswith(_REF_PREFIX * 2):
                return leaf[1:]
            match = _REFERENCE_TOKEN.fullmatch(leaf)
            if match is None:
                raise ArtifactCorruptError(f"Malformed value reference {leaf!r}")
            table_name, raw_index = match.group(1), int(match.group(2))
            table = references.get(table_name)
            if not isinstance(table, list):
                raise ArtifactCorruptError(f"Unknown reference table {table_name!r}")
            if raw_index >= len(table):
                raise ArtifactCorruptError(
                    f"Reference {leaf!r} out of range (table has {len(table)} entries)"
                )
            return table[raw_index]

        return transform(tree, leaf_fn=restore)

    # ── Public API ────────────────────────────────────────────────────────────

    def compress(
        self,
        document: Any,
        level: int | None = None,
        force_abbreviation: bool = False,
        force_deduplication: bool = False,
    ) -> CompressionResult:
        """Compress *document*.

        ``level`` forces at least that level; the force flags force levels 2
        and 3 individually.  Level 3 always includes level 2.
        """
        if level is not None and level not in LEVEL_METHODS:
            raise ValueError(f"Compression level must be 1, 2 or 3 (got {level})")
        forced = level or 1

        canonical = canonicalize(document)
        original_size = len(canonical.encode("utf-8"))

        dedupe = (
            forced >= 3
            or force_deduplication
            or original_size > self._deduplication_threshold
        )
        abbreviate = (
            dedupe
            or forced >= 2
            or force_abbreviation
            or original_size > self._abbreviation_threshold
        )

        compression_level = 1
        payload = canonical
        references: dict[str, list[str]] | None = None

        if abbreviate:
            tree = self.abbreviate_keys(document)
            compression_level = 2
            if dedupe:
                tree, references = self.deduplicate_values(tree)
                compression_level = 3
            payload = canonicalize(tree)

        compressed_size = len(payload.encode("utf-8"))
        ratio = (
            (original_size - compressed_size) / original_size * 100
            if original_size
            else 0.0
        )

        metadata = {
            "originalSize": original_size,
            "compressedSize": compressed_size,
            "compressionRatio": f"{ratio:.1f}%",
            "compressionLevel": compression_level,
            "method": LEVEL_METHODS[compression_level],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        logger.debug(
            "Compressed %d -> %d bytes (level %d)",
            original_size, compressed_size, compression_level,
        )
        return CompressionResult(payload=payload, metadata=metadata, references=references)

    def decompress(
        self,
        payload: str | Any,
        metadata: dict[str, Any],
        references: dict[str, list[str]] | None = None,
    ) -> Any:
        """Invert ``compress``.  Raises ``ArtifactCorruptError`` on bad input."""
        if not isinstance(metadata, dict):
            raise ArtifactCorruptError("Artifact metadata is missing")
        missing = [name for name in _REQUIRED_METADATA if name not in metadata]
        if missing:
            raise ArtifactCorruptError(f"Artifact metadata missing {', '.join(missing)}")
        level = metadata["compressionLevel"]
        if level not in LEVEL_METHODS:
            raise ArtifactCorruptError(f"Unknown compression level {level!r}")

        if isinstance(payload, str):
            try:
                data = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise ArtifactCorruptError(f"Payload is not valid JSON: {exc}") from exc
        else:
            data = payload

        if level >= 3:
            if not isinstance(references, dict):
                raise ArtifactCorruptError("Level 3 artifact has no reference tables")
            data = self.restore_values(data, references)
        if level >= 2:
            data = self.expand_keys(data)
        return data
