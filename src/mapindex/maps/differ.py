"""MapDiffer: structural comparison of two snapshots of one map category.

Every comparison keys the entities of each side, then reports keys only in
the new side as added, keys only in the old side as removed, and keys in both
whose tracked fields differ as modified.  A side whose map is absent reports
everything on the other side as wholly added or removed.  Inputs are never
mutated.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from mapindex.maps import store as maps

Entities = dict[str, Any]
Tracked = tuple[tuple[str, Callable[[Mapping[str, Any]], Any]], ...]

# diff type -> map category it reads
DIFF_TYPES: dict[str, str] = {
    "metadata": maps.METADATA,
    "dependencies": maps.DEPENDENCIES_FORWARD,
    "components": maps.FRONTEND_COMPONENTS,
    "modules": maps.MODULES,
}


def _sorted_copy(values: Any) -> list[Any]:
    if not isinstance(values, list):
        return []
    return sorted(values, key=lambda v: json.dumps(v, sort_keys=True))


def _stat(name: str) -> Callable[[Mapping[str, Any]], Any]:
    def get(entity: Mapping[str, Any]) -> Any:
        stats = entity.get("stats")
        return stats.get(name) if isinstance(stats, dict) else None
    return get


def _normalized_files(entity: Mapping[str, Any]) -> dict[str, list[Any]]:
    files = entity.get("files")
    if not isinstance(files, dict):
        return {}
    return {
        category: _sorted_copy(file_list)
        for category, file_list in sorted(files.items())
        if isinstance(file_list, list)
    }


def _field(name: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda entity: entity.get(name)


def _symbols(entity: Mapping[str, Any]) -> list[Any]:
    imp = entity.get("import", {})
    return _sorted_copy(imp.get("symbols", imp.get("names", [])))


def _import_field(name: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda entity: entity.get("import", {}).get(name)


_METADATA_FIELDS: Tracked = (
    ("size", _field("size")),
    ("lines", _field("lines")),
    ("modified", _field("modified")),
    ("gitStatus", _field("gitStatus")),
)

_DEPENDENCY_FIELDS: Tracked = (
    ("symbols", _symbols),
    ("rawSource", _import_field("rawSource")),
    ("type", _import_field("type")),
    ("isDynamic", _import_field("isDynamic")),
)

_COMPONENT_FIELDS: Tracked = (
    ("size", _field("size")),
    ("layer", _field("layer")),
    ("reusable", _field("reusable")),
    ("uses", lambda entity: _sorted_copy(entity.get("uses", []))),
    ("usedBy", lambda entity: _sorted_copy(entity.get("usedBy", []))),
)

_MODULE_FIELDS: Tracked = (
    ("fileCount", _stat("fileCount")),
    ("totalSize", _stat("totalSize")),
    ("totalLines", _stat("totalLines")),
    ("files", _normalized_files),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _changes(old: Mapping[str, Any], new: Mapping[str, Any], tracked: Tracked) -> list[dict[str, Any]]:
    changes: list[dict[str, Any]] = []
    for name, get in tracked:
        before, after = get(old), get(new)
        if before == after:
            continue
        change: dict[str, Any] = {"property": name, "old": before, "new": after}
        if _is_number(before) and _is_number(after):
            change["delta"] = after - before
        changes.append(change)
    return changes


def _compare(old: Entities | None, new: Entities | None, tracked: Tracked) -> dict[str, Any]:
    result: dict[str, Any] = {"added": [], "removed": [], "modified": []}
    unchanged = 0

    if old is None:
        result["added"] = list((new or {}).values())
    elif new is None:
        result["removed"] = list(old.values())
    else:
        for key, entity in new.items():
            if key not in old:
                result["added"].append(entity)
                continue
            changes = _changes(old[key], entity, tracked)
            if changes:
                result["modified"].append(
                    {"key": key, "changes": changes, "old": old[key], "new": entity}
                )
            else:
                unchanged += 1
        result["removed"] = [entity for key, entity in old.items() if key not in new]

    result["stats"] = {
        "totalAdded": len(result["added"]),
        "totalRemoved": len(result["removed"]),
        "totalModified": len(result["modified"]),
        "unchanged": unchanged,
    }
    return result


# ── Entity extraction ─────────────────────────────────────────────────────────

def _file_entities(document: Any) -> Entities | None:
    if not isinstance(document, dict) or not isinstance(document.get("files"), list):
        return None
    return {f["path"]: f for f in document["files"] if isinstance(f, dict) and "path" in f}


def _dependency_entities(document: Any) -> Entities | None:
    if not isinstance(document, dict) or not isinstance(document.get("dependencies"), dict):
        return None
    entities: Entities = {}
    for file, entry in document["dependencies"].items():
        imports = entry.get("imports") if isinstance(entry, dict) else None
        seen: Counter[str] = Counter()
        for imp in imports or ():
            if not isinstance(imp, dict):
                continue
            target = imp.get("source") or imp.get("module")
            key = f"{file}::{target}"
            seen[key] += 1
            # repeated imports of one target keep their own entity, by occurrence
            if seen[key] > 1:
                key = f"{key}#{seen[key]}"
            entities[key] = {"file": file, "import": imp}
    return entities


def _keyed_entities(section: str) -> Callable[[Any], Entities | None]:
    def extract(document: Any) -> Entities | None:
        if not isinstance(document, dict) or not isinstance(document.get(section), dict):
            return None
        return dict(document[section])
    return extract


_COMPARATORS: dict[str, tuple[Callable[[Any], Entities | None], Tracked]] = {
    "metadata": (_file_entities, _METADATA_FIELDS),
    "dependencies": (_dependency_entities, _DEPENDENCY_FIELDS),
    "components": (_keyed_entities("components"), _COMPONENT_FIELDS),
    "modules": (_keyed_entities("modules"), _MODULE_FIELDS),
}


class MapDiffer:
    """Pure comparisons between two map snapshots."""

    @staticmethod
    def compare_metadata(old: Any, new: Any) -> dict[str, Any]:
        """Files keyed by path; tracks size, lines, modified and gitStatus."""
        return MapDiffer.diff(old, new, "metadata")

    @staticmethod
    def compare_dependencies(old: Any, new: Any) -> dict[str, Any]:
        """Import edges keyed by ``file::source``, with ``#n`` on repeated targets.

        Tracks symbols, rawSource, type and isDynamic.
        """
        return MapDiffer.diff(old, new, "dependencies")

    @staticmethod
    def compare_components(old: Any, new: Any) -> dict[str, Any]:
        return MapDiffer.diff(old, new, "components")

    @staticmethod
    def compare_modules(old: Any, new: Any) -> dict[str, Any]:
        return MapDiffer.diff(old, new, "modules")

    @staticmethod
    def diff(old: Any, new: Any, category: str) -> dict[str, Any]:
        """Compare two documents of *category* (a diff type or map category name)."""
        diff_type = _diff_type(category)
        extract, tracked = _COMPARATORS[diff_type]
        return _compare(extract(old), extract(new), tracked)

    @staticmethod
    def full_diff(old_maps: Mapping[str, Any], new_maps: Mapping[str, Any]) -> dict[str, Any]:
        """Diff every category present on either side and roll up the totals.

        *old_maps* / *new_maps* are keyed by map category name.
        """
        report: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": {"hasChanges": False, "totalChanges": 0, "changesByType": {}},
        }
        by_type = report["summary"]["changesByType"]
        for diff_type, category in DIFF_TYPES.items():
            old, new = old_maps.get(category), new_maps.get(category)
            if old is None and new is None:
                report[diff_type] = None
                continue
            result = MapDiffer.diff(old, new, diff_type)
            stats = result["stats"]
            by_type[diff_type] = stats["totalAdded"] + stats["totalRemoved"] + stats["totalModified"]
            report[diff_type] = result

        total = sum(by_type.values())
        report["summary"]["totalChanges"] = total
        report["summary"]["hasChanges"] = total > 0
        return report


def _diff_type(category: str) -> str:
    if category in _COMPARATORS:
        return category
    for diff_type, map_category in DIFF_TYPES.items():
        if map_category == category:
            return diff_type
    raise ValueError(
        f"Unknown diff category {category!r}; expected one of {', '.join(DIFF_TYPES)}"
    )
