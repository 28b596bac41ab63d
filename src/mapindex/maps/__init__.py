"""Map set persistence, generation, incremental update and diffing."""

from mapindex.maps.changes import ChangeSet, Rename, detect_changes
from mapindex.maps.differ import MapDiffer
from mapindex.maps.generator import MapGenerator, ProjectState, render_maps
from mapindex.maps.scanner import FileScanner, ImportParser, load_parser
from mapindex.maps.snapshot import MapSnapshot
from mapindex.maps.store import CORE_MAPS, MapStore
from mapindex.maps.updater import IncrementalUpdater, UpdateResult

__all__ = [
    "CORE_MAPS",
    "ChangeSet",
    "FileScanner",
    "ImportParser",
    "IncrementalUpdater",
    "MapDiffer",
    "MapGenerator",
    "MapSnapshot",
    "MapStore",
    "ProjectState",
    "Rename",
    "UpdateResult",
    "detect_changes",
    "load_parser",
    "render_maps",
]
