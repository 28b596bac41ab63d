"""Immutable dataclass models for file records, import edges and issues."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


# ── Scanner / parser facts ────────────────────────────────────────────────────

@dataclass(frozen=True)
class FileRecord:
    """Immutable representation of one scanned file."""

    path: str           # posix path relative to the project root
    name: str
    extension: str      # without the leading dot
    type: str
    language: str
    role: str           # one of the configured scanner roles
    size: int
    lines: int
    modified: str       # ISO-8601, UTC
    git_status: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "type": self.type,
            "extension": self.extension,
            "language": self.language,
            "role": self.role,
            "size": self.size,
            "lines": self.lines,
            "modified": self.modified,
            "gitStatus": self.git_status,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> FileRecord:
        path = data["path"]
        return FileRecord(
            path=path,
            name=data.get("name") or path.rsplit("/", 1)[-1],
            extension=data.get("extension", ""),
            type=data.get("type", "unknown"),
            language=data.get("language", "unknown"),
            role=data.get("role", "other"),
            size=data.get("size", 0),
            lines=data.get("lines", 0),
            modified=data.get("modified", ""),
            git_status=data.get("gitStatus", "unknown"),
        )


@dataclass(frozen=True)
class ImportEdge:
    """One import statement, as resolved by the parser."""

    source: str         # resolved target path, or the raw specifier
    raw_source: str
    symbols: tuple[str, ...] = ()
    kind: str = "external"  # only "internal" edges are resolved against the tree
    is_dynamic: bool = False

    @property
    def is_internal(self) -> bool:
        return self.kind == "internal"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "rawSource": self.raw_source,
            "symbols": list(self.symbols),
            "type": self.kind,
            "isDynamic": self.is_dynamic,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ImportEdge:
        source = data.get("source") or data.get("module") or ""
        return ImportEdge(
            source=source,
            raw_source=data.get("rawSource", source),
            symbols=tuple(data.get("symbols") or ()),
            kind=data.get("type", data.get("kind", "external")),
            is_dynamic=bool(data.get("isDynamic", False)),
        )


@dataclass(frozen=True)
class ParseResult:
    """Per-file output of the external import/export parser."""

    imports: tuple[ImportEdge, ...] = ()
    exports: tuple[Any, ...] = ()
    error: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ParseResult:
        return ParseResult(
            imports=tuple(ImportEdge.from_dict(i) for i in data.get("imports") or ()),
            exports=tuple(data.get("exports") or ()),
            error=data.get("error"),
        )


# ── Derived graph entries ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReverseEntry:
    """One importer of a file in the reverse graph."""

    importer: str
    symbols: tuple[str, ...] = ()
    is_dynamic: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.importer,
            "symbols": list(self.symbols),
            "isDynamic": self.is_dynamic,
        }


# ── Integrity issues ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Cycle:
    """A circular import chain; ``path`` starts and ends on the same file."""

    path: tuple[str, ...]
    severity: str = SEVERITY_WARNING

    @property
    def length(self) -> int:
        return len(self.path) - 1

    def to_dict(self) -> dict[str, Any]:
        return {"cycle": list(self.path), "length": self.length, "severity": self.severity}


@dataclass(frozen=True)
class BrokenImport:
    """An internal import whose target is not in the snapshot."""

    file: str
    specifier: str
    resolved_to: str
    severity: str = SEVERITY_ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "import": self.specifier,
            "resolvedTo": self.resolved_to,
            "severity": self.severity,
        }


@dataclass(frozen=True)
class UnusedFile:
    """A non-entry-point source file nothing imports."""

    file: str
    severity: str = SEVERITY_WARNING
    suggestion: str = (
        "This file is never imported. Consider removing it if it's not an entry point."
    )

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "severity": self.severity, "suggestion": self.suggestion}


@dataclass(frozen=True)
class IssuesReport:
    """Merged output of the integrity checks."""

    broken_imports: tuple[BrokenImport, ...] = ()
    cycles: tuple[Cycle, ...] = ()
    unused_files: tuple[UnusedFile, ...] = ()

    @property
    def total(self) -> int:
        return len(self.broken_imports) + len(self.cycles) + len(self.unused_files)

    def summary(self) -> dict[str, int]:
        return {
            "brokenImports": len(self.broken_imports),
            "circularDependencies": len(self.cycles),
            "unusedFiles": len(self.unused_files),
            "totalIssues": self.total,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "issues": {
                "brokenImports": [b.to_dict() for b in self.broken_imports],
                "circularDependencies": [c.to_dict() for c in self.cycles],
                "unusedFiles": [u.to_dict() for u in self.unused_files],
                "missingDependencies": [],
            },
        }
