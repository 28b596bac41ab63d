"""Change detection: which files moved since the maps were last refreshed.

Three ``git diff --name-status`` views are unioned (reference..HEAD, unstaged,
staged) and folded into one ``ChangeSet``.  Any git failure yields an empty
change set carrying the error text, never a partial one.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from mapindex.core.errors import VCSUnavailable

logger = logging.getLogger(__name__)

# Recorded in staleness.gitHash when the project is not a git checkout
NO_GIT = "no-git"

_GIT = ("git", "-c", "core.quotepath=off")


@dataclass(frozen=True)
class Rename:
    from_path: str
    to_path: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_path, "to": self.to_path}


@dataclass(frozen=True)
class ChangeSet:
    """Paths touched since the reference point, one bucket per kind."""

    modified: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    renamed: tuple[Rename, ...] = ()
    error: str | None = None

    @property
    def total(self) -> int:
        return len(self.modified) + len(self.added) + len(self.deleted) + len(self.renamed)

    def is_empty(self) -> bool:
        return self.total == 0

    def rescan_paths(self) -> list[str]:
        """Paths whose records must be recomputed, sorted."""
        paths = set(self.modified) | set(self.added) | {r.to_path for r in self.renamed}
        return sorted(paths)

    def removed_paths(self) -> list[str]:
        """Paths whose records must be dropped, sorted."""
        return sorted(set(self.deleted) | {r.from_path for r in self.renamed})

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "modified": list(self.modified),
            "added": list(self.added),
            "deleted": list(self.deleted),
            "renamed": [r.to_dict() for r in self.renamed],
        }
        if self.error:
            data["error"] = self.error
        return data


# ── Parsing & merging ─────────────────────────────────────────────────────────

def parse_name_status(text: str) -> list[tuple[str, ...]]:
    """Split ``--name-status`` output into ``(status, path[, new_path])`` tuples.

    Status letters are normalized: ``R087`` becomes ``R``, ``T`` (type change)
    becomes ``M``.  Lines without a path are dropped.
    """
    entries: list[tuple[str, ...]] = []
    for line in text.splitlines():
        parts = line.rstrip("\r").split("\t")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        status = parts[0][0]
        if status == "T":
            status = "M"
        if status in ("R", "C"):
            if len(parts) < 3:
                continue
            entries.append((status, parts[1], parts[2]))
        elif status in ("M", "A", "D"):
            entries.append((status, parts[1]))
    return entries


def merge(entries: Iterable[tuple[str, ...]]) -> ChangeSet:
    """Fold observations in order into one ChangeSet.

    Later observations win, except that an add followed by a modify stays an
    add and a delete followed by an add becomes a modify.  A rename removes
    its source path from every other bucket.
    """
    state: dict[str, str] = {}
    renames: dict[str, str] = {}          # to_path -> from_path

    for entry in entries:
        status, path = entry[0], entry[1]
        if status == "R":
            new_path = entry[2]
            state.pop(path, None)
            state.pop(new_path, None)
            # a chained rename keeps the original source
            origin = renames.pop(path, path)
            renames[new_path] = origin
            continue
        if status == "C":
            new_path = entry[2]
            if new_path not in renames:
                state[new_path] = "A"
            continue
        if path in renames:
            if status == "D":
                state[renames.pop(path)] = "D"
            continue
        previous = state.get(path)
        if status == "M" and previous == "A":
            continue
        if status == "A" and previous == "D":
            state[path] = "M"
            continue
        state[path] = status

    def bucket(letter: str) -> tuple[str, ...]:
        return tuple(sorted(p for p, s in state.items() if s == letter))

    return ChangeSet(
        modified=bucket("M"),
        added=bucket("A"),
        deleted=bucket("D"),
        renamed=tuple(
            Rename(from_path=src, to_path=dst)
            for dst, src in sorted(renames.items())
        ),
    )


# ── Git ───────────────────────────────────────────────────────────────────────

def _run_git(project_root: Path, args: list[str], timeout: float) -> str:
    try:
        proc = subprocess.run(
            [*_GIT, *args],
            cwd=project_root,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise VCSUnavailable(f"git {args[0]} timed out after {timeout}s") from exc
    except OSError as exc:
        raise VCSUnavailable(f"git not available: {exc}") from exc
    if proc.returncode != 0:
        raise VCSUnavailable(proc.stderr.strip() or f"git {args[0]} exited {proc.returncode}")
    return proc.stdout


def detect_changes(
    project_root: Path,
    reference: str,
    timeout: float = 30.0,
) -> ChangeSet:
    """Return files changed since *reference*, including uncommitted work.

    Never raises: on any git failure the result is empty with ``error`` set.
    """
    diff = ["diff", "--name-status", "-M", "--relative"]
    try:
        outputs = [
            _run_git(project_root, [*diff, f"{reference}..HEAD"], timeout),
            _run_git(project_root, diff, timeout),
            _run_git(project_root, [*diff, "--cached"], timeout),
        ]
    except VCSUnavailable as exc:
        logger.warning("Change detection unavailable: %s", exc)
        return ChangeSet(error=str(exc))

    entries: list[tuple[str, ...]] = []
    for output in outputs:
        entries.extend(parse_name_status(output))
    changes = merge(entries)
    logger.info(
        "Changes since %s: %d modified, %d added, %d deleted, %d renamed",
        reference, len(changes.modified), len(changes.added),
        len(changes.deleted), len(changes.renamed),
    )
    return changes


def current_git_hash(project_root: Path, timeout: float = 30.0) -> str:
    """Short HEAD hash, or ``NO_GIT`` when it cannot be determined."""
    try:
        return _run_git(project_root, ["rev-parse", "--short", "HEAD"], timeout).strip()
    except VCSUnavailable:
        return NO_GIT
