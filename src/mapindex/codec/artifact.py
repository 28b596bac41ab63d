"""On-disk artifact envelope for compressed map documents.

Layout (one JSON file per map category)::

    {"version": "1.0", "compressed": true,
     "metadata": {...}, "references": {...} | null, "data": "<payload>"}

Writes go to a temporary file in the target directory followed by an atomic
rename, so a crash mid-write never leaves a half-written map behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from mapindex.codec.compressor import CompressionResult, MapCodec
from mapindex.core.errors import ArtifactCorruptError

logger = logging.getLogger(__name__)

ARTIFACT_VERSION = "1.0"


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via write-temp-then-rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def build_envelope(result: CompressionResult) -> dict[str, Any]:
    return {
        "version": ARTIFACT_VERSION,
        "compressed": True,
        "metadata": result.metadata,
        "references": result.references,
        "data": result.payload,
    }


def write_artifact(path: Path, result: CompressionResult) -> dict[str, Any]:
    """Persist a compression result atomically.  Returns its metadata."""
    atomic_write_text(path, json.dumps(build_envelope(result), separators=(",", ":")))
    logger.debug(
        "Wrote %s (%d bytes, %s reduction)",
        path.name, result.metadata["compressedSize"], result.metadata["compressionRatio"],
    )
    return result.metadata


def compress_and_save(
    codec: MapCodec,
    document: Any,
    path: Path,
    **options: Any,
) -> dict[str, Any]:
    """Compress *document* and write it to *path*.  Returns the metadata."""
    return write_artifact(path, codec.compress(document, **options))


def decode_envelope(envelope: Any, codec: MapCodec, artifact: str = "") -> Any:
    """Decode an already-parsed artifact envelope."""
    if not isinstance(envelope, dict):
        raise ArtifactCorruptError("Artifact is not a JSON object", artifact)
    compressed = envelope.get("compressed")
    if not isinstance(compressed, bool):
        raise ArtifactCorruptError("Artifact has no boolean compressed flag", artifact)
    if "data" not in envelope:
        raise ArtifactCorruptError("Artifact has no data payload", artifact)
    if not compressed:
        return envelope["data"]
    try:
        return codec.decompress(
            envelope["data"], envelope.get("metadata"), envelope.get("references")
        )
    except ArtifactCorruptError as exc:
        raise ArtifactCorruptError(str(exc), artifact) from exc


def read_artifact(path: Path, codec: MapCodec) -> Any:
    """Load and decompress the artifact at *path*.

    Raises ``FileNotFoundError`` when the file does not exist and
    ``ArtifactCorruptError`` when it exists but cannot be decoded.
    """
    text = path.read_text(encoding="utf-8")
    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ArtifactCorruptError(f"Artifact is not valid JSON: {exc}", path.name) from exc
    return decode_envelope(envelope, codec, artifact=path.name)
