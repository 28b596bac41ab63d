"""Default filesystem scanner and the parser protocol.

The scanner produces ``FileRecord`` objects: size, line count, mtime, role
and git status per file.  Import extraction is *not* done here; callers supply
an ``ImportParser`` (any object with a ``parse(path)`` method, or a plain
callable) that returns a ``ParseResult`` or its dict form.
"""

from __future__ import annotations

import importlib
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from mapindex.core.config import ScannerConfig
from mapindex.core.errors import ParseSkipped
from mapindex.graph.models import FileRecord, ParseResult

logger = logging.getLogger(__name__)

EXTENSION_TO_TYPE: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript-react",
    "ts": "typescript",
    "tsx": "typescript-react",
    "mjs": "javascript-module",
    "cjs": "javascript-commonjs",
    "py": "python",
    "pyi": "python-interface",
    "java": "java",
    "kt": "kotlin",
    "c": "c",
    "cpp": "cpp",
    "h": "c-header",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "php": "php",
    "swift": "swift",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "md": "markdown",
    "css": "css",
    "scss": "scss",
    "html": "html",
    "sql": "sql",
    "sh": "shell",
}

# type -> language, for types whose language differs from the type name
_TYPE_TO_LANGUAGE: dict[str, str] = {
    "javascript-react": "javascript",
    "javascript-module": "javascript",
    "javascript-commonjs": "javascript",
    "typescript-react": "typescript",
    "python-interface": "python",
    "c-header": "c",
}

TEXT_EXTENSIONS = frozenset(EXTENSION_TO_TYPE) | {"txt", "rst", "adoc", "ini", "xml", "vue"}

_PORCELAIN_STATUS: dict[str, str] = {
    "M ": "modified-staged",
    " M": "modified-unstaged",
    "MM": "modified-both",
    "A ": "added",
    "AM": "added",
    "D ": "deleted",
    "R ": "renamed",
    "C ": "copied",
    "??": "untracked",
    "!!": "ignored",
}


@runtime_checkable
class ImportParser(Protocol):
    """External per-language import/export extractor."""

    def parse(self, path: Path) -> ParseResult | dict[str, Any]:
        ...


def coerce_parse_result(raw: ParseResult | dict[str, Any] | None) -> ParseResult:
    if isinstance(raw, ParseResult):
        return raw
    if isinstance(raw, dict):
        return ParseResult.from_dict(raw)
    return ParseResult(error="parser returned no result")


def load_parser(spec: str) -> ImportParser | Callable[[Path], Any]:
    """Resolve a ``module:attribute`` reference to a parser object."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Parser must be given as 'module:attribute' (got {spec!r})")
    target = getattr(importlib.import_module(module_name), attr)
    return target() if isinstance(target, type) else target


class FileScanner:
    """Collect and describe the files of a project directory.

    Parameters
    ----------
    project_dir:
        Root of the project to scan.
    config:
        Size limit, skipped directories and role patterns.
    """

    def __init__(self, project_dir: Path, config: ScannerConfig | None = None) -> None:
        self._project_dir = project_dir.resolve()
        self._config = config or ScannerConfig()
        self._max_bytes = self._config.max_file_size_kb * 1024
        self._skip_dirs = frozenset(self._config.skip_dirs)

    @property
    def project_dir(self) -> Path:
        return self._project_dir

    # ── Public: scanning ──────────────────────────────────────────────────────

    def collect_files(self) -> list[Path]:
        """Return all scannable files under project_dir, sorted for reproducibility."""
        result: list[Path] = []
        try:
            for path in sorted(self._project_dir.rglob("*")):
                if self.is_excluded(path.relative_to(self._project_dir).as_posix()):
                    continue
                if not path.is_file():
                    continue
                try:
                    if path.stat().st_size > self._max_bytes:
                        logger.debug("Skipping large file: %s", path)
                        continue
                except OSError:
                    continue
                result.append(path)
        except OSError as exc:
            logger.warning("Error scanning project dir: %s", exc)
        return result

    def is_excluded(self, rel_path: str) -> bool:
        """True when *rel_path* lies under a skipped directory."""
        return any(part in self._skip_dirs for part in PurePosixPath(rel_path).parts)

    def scan_paths(
        self,
        rel_paths: Iterable[str],
        max_workers: int = 4,
        git_timeout: float = 30.0,
    ) -> tuple[list[FileRecord], list[str]]:
        """Scan *rel_paths* concurrently; results come back sorted by path.

        Returns ``(records, skipped_paths)``.  One file failing never aborts
        the batch.
        """
        ordered = sorted(set(rel_paths))
        statuses = self.git_statuses(timeout=git_timeout)

        def scan_one(rel: str) -> FileRecord | None:
            try:
                return self.scan_file(rel, statuses)
            except (OSError, ParseSkipped) as exc:
                logger.debug("Skipping %s: %s", rel, exc)
                return None

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            results = list(pool.map(scan_one, ordered))

        records = [r for r in results if r is not None]
        skipped = [rel for rel, r in zip(ordered, results) if r is None]
        return records, skipped

    def scan_file(self, rel_path: str, statuses: dict[str, str] | None = None) -> FileRecord:
        """Build the record for one file.  Raises OSError / ParseSkipped."""
        abs_path = self._project_dir / rel_path
        stat = abs_path.stat()
        if not abs_path.is_file():
            raise ParseSkipped(rel_path, "not a regular file")
        if stat.st_size > self._max_bytes:
            raise ParseSkipped(rel_path, "file too large")

        name = PurePosixPath(rel_path).name
        ext = PurePosixPath(rel_path).suffix[1:].lower()
        file_type = EXTENSION_TO_TYPE.get(ext, ext or "unknown")

        lines = 0
        if ext in TEXT_EXTENSIONS:
            lines = self._count_lines(abs_path)

        return FileRecord(
            path=rel_path,
            name=name,
            extension=ext,
            type=file_type,
            language=_TYPE_TO_LANGUAGE.get(file_type, file_type),
            role=self.classify_role(name, ext),
            size=stat.st_size,
            lines=lines,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            git_status="unknown" if statuses is None else statuses.get(rel_path, "tracked"),
        )

    def classify_role(self, name: str, ext: str) -> str:
        """Return the file role: test patterns first, then the other roles in order."""
        roles = self._config.file_roles
        for pattern in roles.get("test", ()):
            if pattern in name:
                return "test"
        for role, patterns in roles.items():
            if role == "test":
                continue
            for pattern in patterns:
                if ext == pattern or name == pattern or name.endswith(pattern):
                    return role
        return "other"

    def git_statuses(self, timeout: float = 30.0) -> dict[str, str] | None:
        """Return {path: status} from ``git status --porcelain``; None outside a repo.

        Files absent from the result but inside a repository are ``tracked``.
        """
        try:
            proc = subprocess.run(
                ["git", "status", "--porcelain", "--untracked-files=all"],
                cwd=self._project_dir,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("git status unavailable: %s", exc)
            return None
        if proc.returncode != 0:
            return None

        statuses: dict[str, str] = {}
        for line in proc.stdout.splitlines():
            if len(line) < 4:
                continue
            code, rest = line[:2], line[3:]
            if " -> " in rest:
                rest = rest.split(" -> ", 1)[1]
            statuses[rest.strip('"')] = _PORCELAIN_STATUS.get(code, "unknown")
        return statuses

    # ── Internal helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _count_lines(path: Path) -> int:
        try:
            with path.open(encoding="utf-8", errors="replace") as f:
                return sum(1 for _ in f)
        except OSError:
            return 0


def parse_files(
    parser: ImportParser | Callable[[Path], Any],
    project_dir: Path,
    rel_paths: Iterable[str],
    max_workers: int = 4,
) -> dict[str, ParseResult]:
    """Run *parser* over *rel_paths* concurrently, keyed and ordered by path.

    A parser exception is isolated to its file and recorded as a failed
    ``ParseResult``.
    """
    parse = parser.parse if isinstance(parser, ImportParser) else parser
    ordered = sorted(set(rel_paths))

    def parse_one(rel: str) -> ParseResult:
        try:
            return coerce_parse_result(parse(project_dir / rel))
        except Exception as exc:
            logger.warning("Parser failed on %s: %s", rel, exc)
            return ParseResult(error=str(exc))

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        results = list(pool.map(parse_one, ordered))
    return dict(zip(ordered, results))
