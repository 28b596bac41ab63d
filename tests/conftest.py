"""Shared test fixtures for mapindex."""

from __future__ import annotations

import posixpath
import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from mapindex.codec.compressor import MapCodec
from mapindex.codec.schema import load_schema
from mapindex.graph.models import ImportEdge, ParseResult


class LineParser:
    """Tiny line-oriented parser used as the external extractor in tests.

    ``import ./x.js`` is an internal edge resolved against the file's
    directory, ``import name`` an external one, ``export name`` an export and a
    line ``!fail`` makes the parse raise.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir.resolve()

    def parse(self, path: Path) -> ParseResult:
        rel = path.resolve().relative_to(self.project_dir).as_posix()
        imports: list[ImportEdge] = []
        exports: list[str] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            words = line.split()
            if not words:
                continue
            if words[0] == "!fail":
                raise ValueError(f"cannot parse {rel}")
            if words[0] == "import" and len(words) >= 2:
                target = words[1]
                if target.startswith("."):
                    resolved = posixpath.normpath(posixpath.join(posixpath.dirname(rel), target))
                    imports.append(ImportEdge(source=resolved, raw_source=target,
                                              symbols=tuple(words[2:]), kind="internal"))
                else:
                    imports.append(ImportEdge(source=target, raw_source=target,
                                              symbols=tuple(words[2:]), kind="external"))
            elif words[0] == "export" and len(words) >= 2:
                exports.append(words[1])
        return ParseResult(imports=tuple(imports), exports=tuple(exports))


@pytest.fixture(scope="session")
def codec() -> MapCodec:
    return MapCodec(load_schema())


@pytest.fixture
def write_files() -> Callable[[Path, dict[str, str]], Path]:
    """Write ``{relative path: content}`` under a root directory."""

    def _write(root: Path, files: dict[str, str]) -> Path:
        for rel, content in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def line_parser() -> Callable[[Path], LineParser]:
    return LineParser


@pytest.fixture
def git() -> Callable[..., str]:
    """Run git in a directory; skips the test when git is not installed."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def _git(cwd: Path, *args: str) -> str:
        proc = subprocess.run(
            ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com",
             "-c", "commit.gpgsign=false", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
        return proc.stdout

    return _git


@pytest.fixture
def git_repo(tmp_path: Path, git: Callable[..., str]) -> Path:
    """An empty git repository in tmp_path."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    return repo
