"""mapindex - compressed project map index."""

import json
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_HELP = """\
Usage: mapindex <command> [OPTIONS]

Commands:
  compress <in.json> <out> [--level N]        Compress a JSON document into an artifact
  show <artifact> [--meta]                    Decompress and print an artifact
  generate --parser <module:attr> [--dir <path>]
                                              Full scan, writes every core map
  update --parser <module:attr> [--dir <path>] [--since <ref>]
                                              Incremental update since the last refresh commit
  issues [--dir <path>]                       Show the stored issues report
  diff <old-dir> <new-dir> [TYPE]             Compare two map directories
                                              TYPE: metadata|dependencies|components|modules|full
  snapshot list|save <name>|delete <name>|cleanup [hours] [--dir <path>]
  snapshot diff <name> [--dir <path>]         Compare a snapshot with the current maps

Exit codes: 0 success, 1 failure, 2 full rescan recommended.
"""

EXIT_RESCAN = 2


def main() -> None:
    """Entry point for the mapindex CLI."""
    args = sys.argv[1:]
    if not args or args[0] in ("--help", "-h"):
        print(_HELP)
        sys.exit(0)

    command, rest = args[0], args[1:]
    handlers = {
        "compress": _run_compress,
        "show": _run_show,
        "generate": _run_generate,
        "update": _run_update,
        "issues": _run_issues,
        "diff": _run_diff,
        "snapshot": _run_snapshot,
    }
    handler = handlers.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print("Run 'mapindex --help' for usage.")
        sys.exit(1)

    from mapindex.core.config import EnvSettings
    from mapindex.core.logging import setup_logging

    setup_logging(EnvSettings().log_level)
    sys.exit(handler(rest))


# ── Argument helpers ──────────────────────────────────────────────────────────

def _usage_error(message: str) -> int:
    print(message)
    print("Run 'mapindex --help' for usage.")
    return 1


def _split_options(
    args: list[str],
    valued: set[str],
    flags: frozenset[str] | set[str] = frozenset(),
) -> tuple[list[str], dict[str, str]]:
    """Separate positionals from ``--option value`` pairs and bare flags."""
    positionals: list[str] = []
    options: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in valued and i + 1 < len(args):
            options[arg] = args[i + 1]
            i += 2
        elif arg in flags:
            options[arg] = ""
            i += 1
        elif arg.startswith("--"):
            raise ValueError(f"Unknown argument: {arg}")
        else:
            positionals.append(arg)
            i += 1
    return positionals, options


def _project(options: dict[str, str]):
    """Resolve project dir, config, codec and store for a sub-command."""
    from mapindex.codec.compressor import MapCodec
    from mapindex.core.config import load_config
    from mapindex.maps.store import MapStore

    project_dir = Path(options.get("--dir", ".")).resolve()
    config = load_config(project_dir)
    codec = MapCodec.from_config(config.codec)
    store = MapStore(project_dir / config.maps_dir, codec)
    return project_dir, config, codec, store


# ── Sub-commands ──────────────────────────────────────────────────────────────

def _run_compress(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.codec.artifact import compress_and_save
    from mapindex.codec.compressor import MapCodec
    from mapindex.core.config import load_config

    try:
        positionals, options = _split_options(args, {"--level"})
        level = int(options["--level"]) if "--level" in options else None
    except ValueError as exc:
        return _usage_error(str(exc))
    if len(positionals) != 2:
        return _usage_error("Usage: mapindex compress <in.json> <out> [--level N]")

    renderer = Renderer()
    source, target = Path(positionals[0]), Path(positionals[1])

    codec = MapCodec.from_config(load_config().codec)
    try:
        document = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        renderer.error(f"Cannot read {source}: {exc}")
        return 1
    try:
        metadata = compress_and_save(codec, document, target, level=level)
    except ValueError as exc:
        renderer.error(str(exc))
        return 1
    renderer.compression_metadata(target.name, metadata)
    return 0


def _run_show(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.codec.artifact import read_artifact
    from mapindex.codec.compressor import MapCodec
    from mapindex.core.config import load_config
    from mapindex.core.errors import ArtifactCorruptError

    try:
        positionals, options = _split_options(args, set(), {"--meta"})
    except ValueError as exc:
        return _usage_error(str(exc))
    if len(positionals) != 1:
        return _usage_error("Usage: mapindex show <artifact> [--meta]")

    renderer = Renderer()
    path = Path(positionals[0])
    codec = MapCodec.from_config(load_config().codec)
    try:
        document = read_artifact(path, codec)
    except FileNotFoundError:
        renderer.error(f"No such artifact: {path}")
        return 1
    except ArtifactCorruptError as exc:
        renderer.error(str(exc))
        return 1

    if "--meta" in options:
        envelope = json.loads(path.read_text(encoding="utf-8"))
        renderer.compression_metadata(path.name, envelope.get("metadata") or {})
    else:
        renderer.json(document)
    return 0


def _load_parser(options: dict[str, str]):
    from mapindex.maps.scanner import load_parser

    spec = options.get("--parser")
    if not spec:
        raise ValueError("--parser <module:attr> is required")
    return load_parser(spec)


def _run_generate(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.maps.generator import MapGenerator
    from mapindex.maps.scanner import FileScanner

    try:
        _, options = _split_options(args, {"--dir", "--parser"})
        parser = _load_parser(options)
    except (ValueError, ImportError, AttributeError) as exc:
        return _usage_error(str(exc))

    renderer = Renderer()
    project_dir, config, _, store = _project(options)
    scanner = FileScanner(project_dir, config.scanner)
    result = MapGenerator(store, scanner, parser, config).generate_all()

    renderer.info(
        f"{result.files_scanned} files scanned, {result.files_skipped} skipped, "
        f"{result.parse_skipped} parse failures ({result.generation_time_ms}ms)"
    )
    if not result.success:
        renderer.error(f"Failed to write: {', '.join(result.failed_maps)}")
        return 1
    renderer.success(f"{len(result.maps_written)} maps written to {store.maps_dir}")
    return 0


def _run_update(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.maps.scanner import FileScanner
    from mapindex.maps.updater import IncrementalUpdater

    try:
        _, options = _split_options(args, {"--dir", "--parser", "--since"})
        parser = _load_parser(options)
    except (ValueError, ImportError, AttributeError) as exc:
        return _usage_error(str(exc))

    renderer = Renderer()
    project_dir, config, _, store = _project(options)
    scanner = FileScanner(project_dir, config.scanner)
    updater = IncrementalUpdater(store, scanner, parser, config)
    result = updater.perform_update(options.get("--since"))

    renderer.update_result(result.to_dict())
    if result.success:
        return 0
    return EXIT_RESCAN if result.escalate else 1


def _run_issues(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.core.errors import ArtifactCorruptError
    from mapindex.maps.store import ISSUES

    try:
        _, options = _split_options(args, {"--dir"})
    except ValueError as exc:
        return _usage_error(str(exc))

    renderer = Renderer()
    _, _, _, store = _project(options)
    try:
        report = store.load(ISSUES)
    except FileNotFoundError:
        renderer.error(f"No issues map in {store.maps_dir}; run 'mapindex generate' first")
        return 1
    except ArtifactCorruptError as exc:
        renderer.error(f"{exc}; regenerate the maps")
        return EXIT_RESCAN
    renderer.issues_report(report)
    return 0


def _run_diff(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.codec.compressor import MapCodec
    from mapindex.core.config import load_config
    from mapindex.maps.differ import DIFF_TYPES, MapDiffer
    from mapindex.maps.store import MapStore

    try:
        positionals, _ = _split_options(args, set())
    except ValueError as exc:
        return _usage_error(str(exc))
    if len(positionals) not in (2, 3):
        return _usage_error("Usage: mapindex diff <old-dir> <new-dir> [TYPE]")
    diff_type = positionals[2] if len(positionals) == 3 else "full"
    if diff_type != "full" and diff_type not in DIFF_TYPES:
        return _usage_error(f"Unknown map type: {diff_type}")

    renderer = Renderer()
    codec = MapCodec.from_config(load_config().codec)
    old_store = MapStore(Path(positionals[0]), codec)
    new_store = MapStore(Path(positionals[1]), codec)

    if diff_type == "full":
        categories = list(DIFF_TYPES.values())
        report = MapDiffer.full_diff(old_store.load_many(categories), new_store.load_many(categories))
        renderer.diff_report(report)
        return 0

    category = DIFF_TYPES[diff_type]
    renderer.json(MapDiffer.diff(
        old_store.load_optional(category), new_store.load_optional(category), diff_type
    ))
    return 0


def _run_snapshot(args: list[str]) -> int:
    from mapindex.cli.renderer import Renderer
    from mapindex.core.errors import ArtifactCorruptError
    from mapindex.maps.differ import DIFF_TYPES, MapDiffer
    from mapindex.maps.snapshot import DEFAULT_MAX_AGE_SECONDS, MapSnapshot

    try:
        positionals, options = _split_options(args, {"--dir"})
    except ValueError as exc:
        return _usage_error(str(exc))
    if not positionals:
        return _usage_error("Usage: mapindex snapshot list|save|delete|cleanup|diff ...")

    renderer = Renderer()
    project_dir, config, codec, store = _project(options)
    snapshots = MapSnapshot(project_dir / config.snapshots_dir, codec)
    action, params = positionals[0], positionals[1:]

    try:
        if action == "list":
            names = snapshots.list_snapshots()
            for name in names:
                print(name)
            if not names:
                renderer.info("No snapshots")
        elif action == "save" and len(params) == 1:
            path = snapshots.capture(store, params[0])
            renderer.success(f"Snapshot saved to {path}")
        elif action == "delete" and len(params) == 1:
            if snapshots.delete(params[0]):
                renderer.success(f"Deleted snapshot {params[0]}")
            else:
                renderer.info(f"No snapshot named {params[0]}")
        elif action == "cleanup" and len(params) <= 1:
            max_age = float(params[0]) * 3600 if params else DEFAULT_MAX_AGE_SECONDS
            renderer.info(f"Removed {snapshots.cleanup(max_age)} snapshots")
        elif action == "diff" and len(params) == 1:
            old_maps = snapshots.maps(params[0])
            new_maps = store.load_many(list(DIFF_TYPES.values()))
            renderer.diff_report(MapDiffer.full_diff(old_maps, new_maps))
        else:
            return _usage_error(f"Unknown snapshot action: {' '.join(positionals)}")
    except FileNotFoundError:
        renderer.error(f"No snapshot named {params[0]}")
        return 1
    except (ArtifactCorruptError, ValueError) as exc:
        renderer.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    main()
