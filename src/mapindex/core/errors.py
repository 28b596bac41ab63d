"""Error taxonomy for the map index engine.

Only configuration failures (``SchemaLoadError``) are process-fatal.  Everything
else is scoped to one artifact, one file or one update pass.
"""

from __future__ import annotations


class MapIndexError(Exception):
    """Base class for all mapindex errors."""


class SchemaLoadError(MapIndexError):
    """The compression schema is missing, unparsable or inconsistent."""


class ArtifactCorruptError(MapIndexError):
    """A single map artifact cannot be decoded and must be regenerated."""

    def __init__(self, message: str, artifact: str = "") -> None:
        super().__init__(message)
        self.artifact = artifact

    def __str__(self) -> str:
        base = super().__str__()
        return f"{self.artifact}: {base}" if self.artifact else base


class ParseSkipped(MapIndexError):
    """One file was excluded from the graph (unreadable or unparsable)."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class VCSUnavailable(MapIndexError):
    """The version-control diff could not be computed."""


class EscalationRequired(MapIndexError):
    """Too many files changed for an incremental update to be trusted."""

    def __init__(self, changed: int, total: int) -> None:
        self.changed = changed
        self.total = total
        super().__init__(
            f"Too many changes ({self.percentage:.1f}%), full rescan recommended"
        )

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.changed / self.total * 100
