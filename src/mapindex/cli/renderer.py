"""Rich-based output rendering for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


class Renderer:
    """Renders map index results to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def error(self, message: str) -> None:
        """Display an error message."""
        self.console.print(Text(f"Error: {message}", style="bold red"))

    def info(self, message: str) -> None:
        """Display an info message."""
        self.console.print(Text(message, style="dim"))

    def success(self, message: str) -> None:
        """Display a success message."""
        self.console.print(Text(message, style="bold green"))

    def warning(self, message: str) -> None:
        """Display a warning."""
        self.console.print(Text(f"Warning: {message}", style="yellow"))

    def json(self, data: Any) -> None:
        """Pretty-print a JSON-compatible value."""
        self.console.print_json(json.dumps(data, ensure_ascii=False))

    def compression_metadata(self, title: str, metadata: dict[str, Any]) -> None:
        """Two-column table of codec metadata for one artifact."""
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for key in (
            "originalSize", "compressedSize", "compressionRatio",
            "compressionLevel", "method", "timestamp",
        ):
            if key in metadata:
                table.add_row(key, str(metadata[key]))
        self.console.print(table)

    def issues_report(self, report: dict[str, Any]) -> None:
        """Summary panel plus one table per non-empty issue kind."""
        summary = report.get("summary", {})
        issues = report.get("issues", {})
        total = summary.get("totalIssues", 0)
        lines = [
            f"Broken imports:        {summary.get('brokenImports', 0)}",
            f"Circular dependencies: {summary.get('circularDependencies', 0)}",
            f"Unused files:          {summary.get('unusedFiles', 0)}",
        ]
        self.console.print(Panel(
            "\n".join(lines),
            title=f"Issues ({total})",
            border_style="red" if summary.get("brokenImports") else ("yellow" if total else "green"),
            expand=False,
        ))

        broken = issues.get("brokenImports") or []
        if broken:
            table = Table(title="Broken imports", header_style="bold red")
            table.add_column("File", style="cyan")
            table.add_column("Import")
            table.add_column("Resolved to", style="dim")
            for item in broken:
                table.add_row(item.get("file", ""), item.get("import", ""), str(item.get("resolvedTo", "")))
            self.console.print(table)

        cycles = issues.get("circularDependencies") or []
        if cycles:
            table = Table(title="Circular dependencies", header_style="bold yellow")
            table.add_column("Length", justify="right")
            table.add_column("Cycle", style="cyan")
            for item in cycles:
                table.add_row(str(item.get("length", "")), " → ".join(item.get("cycle", [])))
            self.console.print(table)

        unused = issues.get("unusedFiles") or []
        if unused:
            table = Table(title="Unused files", header_style="bold yellow")
            table.add_column("File", style="cyan")
            table.add_column("Suggestion", style="dim")
            for item in unused:
                table.add_row(item.get("file", ""), item.get("suggestion", ""))
            self.console.print(table)

    def diff_report(self, report: dict[str, Any]) -> None:
        """Per-category change counts from a full diff."""
        summary = report.get("summary", {})
        table = Table(title="Map diff", show_header=True, header_style="bold cyan")
        table.add_column("Category", style="cyan")
        table.add_column("Added", justify="right", style="green")
        table.add_column("Removed", justify="right", style="red")
        table.add_column("Modified", justify="right", style="yellow")
        table.add_column("Unchanged", justify="right", style="dim")
        for category in ("metadata", "dependencies", "components", "modules"):
            result = report.get(category)
            if result is None:
                continue
            stats = result["stats"]
            table.add_row(
                category,
                str(stats["totalAdded"]),
                str(stats["totalRemoved"]),
                str(stats["totalModified"]),
                str(stats["unchanged"]),
            )
        self.console.print(table)
        if summary.get("hasChanges"):
            self.warning(f"{summary.get('totalChanges', 0)} changes")
        else:
            self.success("No changes")

    def update_result(self, result: dict[str, Any]) -> None:
        """Outcome of an incremental update (``UpdateResult.to_dict()`` shape)."""
        if result.get("success"):
            lines = [
                f"Files scanned: {result.get('filesScanned', 0)}",
                f"Files skipped: {result.get('filesSkipped', 0)}",
                f"Maps updated:  {len(result.get('mapsUpdated', []))}",
                f"Time:          {result.get('updateTime', 0)}ms",
            ]
            if result.get("message"):
                lines.insert(0, result["message"])
            self.console.print(Panel("\n".join(lines), title="Update", border_style="green", expand=False))
        else:
            self.console.print(Panel(
                result.get("message", "Update failed"),
                title="Update failed",
                border_style="yellow" if result.get("escalate") else "red",
                expand=False,
            ))
