"""Configuration system for mapindex using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CodecConfig(BaseModel):
    """Compression thresholds and schema location."""

    schema_path: str = ""  # empty = packaged default schema
    abbreviation_threshold: int = 5120
    deduplication_threshold: int = 20480
    min_occurrences: int = 3
    min_value_length: int = 3


class GraphConfig(BaseModel):
    """Dependency graph and integrity analysis settings."""

    broken_import_suffixes: list[str] = Field(default_factory=lambda: [".js", ".ts"])
    entry_points: list[str] = Field(
        default_factory=lambda: [
            "index.js", "index.ts", "index.jsx", "index.tsx",
            "main.js", "main.ts",
            "app.js", "app.ts", "app.jsx", "app.tsx",
            "server.js", "server.ts",
        ]
    )
    graph_roles: list[str] = Field(default_factory=lambda: ["source", "test"])


class UpdaterConfig(BaseModel):
    """Incremental update behaviour."""

    escalation_ratio: float = 0.30
    git_timeout: float = 30.0
    max_workers: int = 4


class ScannerConfig(BaseModel):
    """Default filesystem scanner settings."""

    max_file_size_kb: int = 500
    skip_dirs: list[str] = Field(
        default_factory=lambda: [
            ".git", "node_modules", "__pycache__", "venv", ".venv",
            "dist", "build", ".tox", ".mypy_cache", ".pytest_cache",
            ".ruff_cache", ".eggs", ".mapindex",
        ]
    )
    # Test patterns are matched first; the remaining roles in listed order.
    file_roles: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "test": ["test.js", "test.ts", "spec.js", "spec.ts", "_test.go", "_test.py", "test_"],
            "source": ["js", "ts", "jsx", "tsx", "mjs", "cjs", "py", "java", "go", "rs",
                       "c", "cpp", "rb", "php", "swift", "kt"],
            "config": ["json", "yaml", "yml", "toml", "ini", "conf", "config.js", "config.ts"],
            "doc": ["md", "txt", "rst", "adoc"],
            "build": ["Makefile", "Dockerfile", "docker-compose.yml"],
            "style": ["css", "scss", "sass", "less", "styl"],
        }
    )


class MapIndexConfig(BaseModel):
    """Root configuration model."""

    maps_dir: str = ".mapindex/maps"
    snapshots_dir: str = ".mapindex/snapshots"
    codec: CodecConfig = Field(default_factory=CodecConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    updater: UpdaterConfig = Field(default_factory=UpdaterConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)


class EnvSettings(BaseSettings):
    """Environment variable overrides."""

    model_config = SettingsConfigDict(
        env_prefix="MAPINDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    maps_dir: str | None = None
    schema_path: str | None = None
    log_level: str = "INFO"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts, override wins on conflicts."""
    result = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, return empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def load_config(project_dir: Path | None = None) -> MapIndexConfig:
    """Load configuration with layered precedence.

    Order (later overrides earlier):
    1. Built-in defaults (Pydantic defaults)
    2. configs/default.yaml (shipped with the source tree)
    3. ~/.mapindex/config.yaml (global user config)
    4. .mapindex/config.yaml (project-level config)
    5. Environment variables
    """
    package_config_dir = Path(__file__).parent.parent.parent.parent / "configs"
    global_config_dir = Path.home() / ".mapindex"
    project_config_dir = (project_dir or Path.cwd()) / ".mapindex"

    merged: dict[str, Any] = {}

    for config_path in [
        package_config_dir / "default.yaml",
        global_config_dir / "config.yaml",
        project_config_dir / "config.yaml",
    ]:
        layer = load_yaml_config(config_path)
        merged = _deep_merge(merged, layer)

    config = MapIndexConfig(**merged)

    env = EnvSettings()
    if env.maps_dir:
        config = config.model_copy(update={"maps_dir": env.maps_dir})
    if env.schema_path:
        config = config.model_copy(
            update={"codec": config.codec.model_copy(update={"schema_path": env.schema_path})}
        )

    return config
