"""Tests for mapindex.__main__: CLI entry point dispatch and sub-commands."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from mapindex.__main__ import EXIT_RESCAN, _split_options, main

PARSER_MODULE = '''\
def parse(path):
    imports = []
    for line in path.read_text(encoding="utf-8").splitlines():
        words = line.split()
        if len(words) == 2 and words[0] == "import":
            imports.append({"source": words[1], "type": "internal"})
    return {"imports": imports, "exports": []}
'''


def _run(*argv: str) -> int:
    with patch("sys.argv", ["mapindex", *argv]):
        with pytest.raises(SystemExit) as exc_info:
            main()
    return exc_info.value.code


@pytest.fixture
def workspace(tmp_path, monkeypatch, write_files):
    """A project dir plus an importable ``cli_test_parser`` module."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("MAPINDEX_MAPS_DIR", raising=False)
    monkeypatch.chdir(tmp_path)

    modules = tmp_path / "modules"
    write_files(modules, {"cli_test_parser.py": PARSER_MODULE})
    monkeypatch.syspath_prepend(str(modules))

    return write_files(tmp_path / "project", {
        "src/a.js": "import src/b.js\n",
        "src/b.js": "import src/a.js\n",
    })


# ── main() dispatch ───────────────────────────────────────────────────────────


class TestMainDispatch:
    def test_help_exits_zero(self, capsys) -> None:
        assert _run("--help") == 0
        assert "Usage: mapindex" in capsys.readouterr().out

    def test_no_args_prints_help(self, capsys) -> None:
        assert _run() == 0
        assert "Commands:" in capsys.readouterr().out

    def test_unknown_command(self, capsys) -> None:
        assert _run("frobnicate") == 1
        assert "Unknown command: frobnicate" in capsys.readouterr().out

    @pytest.mark.parametrize(
        ("command", "handler"),
        [("generate", "_run_generate"), ("update", "_run_update"), ("diff", "_run_diff")],
    )
    def test_dispatch_passes_remaining_args(self, command: str, handler: str) -> None:
        with patch(f"mapindex.__main__.{handler}", return_value=0) as mock_handler:
            assert _run(command, "--dir", "x") == 0
        mock_handler.assert_called_once_with(["--dir", "x"])


class TestSplitOptions:
    def test_positionals_and_options(self) -> None:
        positionals, options = _split_options(
            ["in.json", "--level", "3", "out", "--meta"], {"--level"}, {"--meta"}
        )
        assert positionals == ["in.json", "out"]
        assert options == {"--level": "3", "--meta": ""}

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ValueError, match="--bogus"):
            _split_options(["--bogus"], {"--level"})


# ── compress / show ───────────────────────────────────────────────────────────


class TestCompressShow:
    def test_compress_then_show(self, workspace: Path, tmp_path: Path, capsys) -> None:
        source = tmp_path / "doc.json"
        document = {"files": [{"path": f"src/{i}.js", "type": "javascript"} for i in range(5)]}
        source.write_text(json.dumps(document), encoding="utf-8")
        target = tmp_path / "doc.map.json"

        assert _run("compress", str(source), str(target), "--level", "3") == 0
        assert "value-deduplication" in capsys.readouterr().out

        assert _run("show", str(target)) == 0
        assert json.loads(capsys.readouterr().out) == document

        assert _run("show", str(target), "--meta") == 0
        assert "compressionLevel" in capsys.readouterr().out

    def test_bad_level(self, workspace: Path, capsys) -> None:
        assert _run("compress", "a.json", "b.json", "--level", "high") == 1

    def test_show_missing_artifact(self, workspace: Path, tmp_path: Path, capsys) -> None:
        assert _run("show", str(tmp_path / "missing.json")) == 1
        assert "No such artifact" in capsys.readouterr().out


# ── generate / update / issues ────────────────────────────────────────────────


class TestMapCommands:
    def test_generate_requires_parser(self, workspace: Path, capsys) -> None:
        assert _run("generate", "--dir", str(workspace)) == 1
        assert "--parser" in capsys.readouterr().out

    def test_generate_then_issues(self, workspace: Path, capsys) -> None:
        assert _run("generate", "--dir", str(workspace), "--parser", "cli_test_parser:parse") == 0
        assert (workspace / ".mapindex" / "maps" / "issues.json").is_file()
        capsys.readouterr()

        assert _run("issues", "--dir", str(workspace)) == 0
        out = capsys.readouterr().out
        assert "Circular dependencies: 1" in out
        assert "src/a.js" in out

    def test_issues_without_maps(self, workspace: Path, capsys) -> None:
        assert _run("issues", "--dir", str(workspace)) == 1
        assert "No issues map" in capsys.readouterr().out

    def test_corrupt_issues_map_recommends_rescan(self, workspace: Path) -> None:
        maps_dir = workspace / ".mapindex" / "maps"
        maps_dir.mkdir(parents=True)
        (maps_dir / "issues.json").write_text("{oops", encoding="utf-8")
        assert _run("issues", "--dir", str(workspace)) == EXIT_RESCAN

    def test_update_outside_git_recommends_rescan(self, workspace: Path, capsys) -> None:
        code = _run("update", "--dir", str(workspace), "--parser", "cli_test_parser:parse")
        assert code == EXIT_RESCAN
        assert "Update failed" in capsys.readouterr().out


# ── diff / snapshot ───────────────────────────────────────────────────────────


class TestDiffSnapshot:
    def test_diff_unknown_type(self, workspace: Path, tmp_path: Path) -> None:
        assert _run("diff", str(tmp_path), str(tmp_path), "colours") == 1

    def test_diff_identical_dirs(self, workspace: Path, capsys) -> None:
        _run("generate", "--dir", str(workspace), "--parser", "cli_test_parser:parse")
        capsys.readouterr()
        maps_dir = str(workspace / ".mapindex" / "maps")
        assert _run("diff", maps_dir, maps_dir) == 0
        assert "No changes" in capsys.readouterr().out

    def test_snapshot_lifecycle(self, workspace: Path, capsys) -> None:
        _run("generate", "--dir", str(workspace), "--parser", "cli_test_parser:parse")
        assert _run("snapshot", "save", "before", "--dir", str(workspace)) == 0
        capsys.readouterr()

        assert _run("snapshot", "list", "--dir", str(workspace)) == 0
        assert "before" in capsys.readouterr().out

        assert _run("snapshot", "diff", "before", "--dir", str(workspace)) == 0
        assert "No changes" in capsys.readouterr().out

        assert _run("snapshot", "delete", "before", "--dir", str(workspace)) == 0
        assert _run("snapshot", "diff", "before", "--dir", str(workspace)) == 1

    def test_snapshot_unknown_action(self, workspace: Path) -> None:
        assert _run("snapshot", "explode", "--dir", str(workspace)) == 1
