"""
Rendering of collection responses for the terminal.

Every function returns a string; the CLI decides where it goes. Output
modes:
  task:    one line per task ([P1] [open] Title) plus tags
  generic: title, path, a few frontmatter fields and a body preview
  table:   aligned path / types / title columns
  json:    the full response, verbatim
"""

import json
from datetime import datetime
from typing import Any, Optional

from .query_spec import QueryView
from .types import Document, QueryMeta, QueryResult, ValidationReport, format_relative_time, parse_timestamp

RULE = "─" * 60
DOUBLE_RULE = "═" * 60

GENERIC_FIELD_LIMIT = 5
GENERIC_SKIP_FIELDS = ("title", "type")
BODY_PREVIEW_CHARS = 60
INBOX_PREVIEW_CHARS = 50
TABLE_TITLE_WIDTH = 50


def display_value(value: Any) -> str:
    """Stringify a frontmatter value: lists comma-joined, true/false/null spelled out."""
    if isinstance(value, list):
        return ", ".join(display_value(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _first_line_preview(body: Optional[str], width: int) -> str:
    line = (body or "").split("\n")[0]
    if len(line) > width:
        return line[:width] + "..."
    return line


def _types_label(doc: Document) -> str:
    return f"({', '.join(doc.types)})" if doc.types else "(untyped)"


def total_line(count: int, meta: Optional[QueryMeta], noun: str = "results") -> str:
    """``Total: N results``, or ``Total: N of M results`` when more exist."""
    if meta is not None and meta.has_more:
        total = meta.total_count if meta.total_count is not None else count
        return f"Total: {count} of {total} {noun}"
    return f"Total: {count} {noun}"


def render_json(result: QueryResult) -> str:
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


def _task_lines(doc: Document) -> list[str]:
    fm = doc.frontmatter
    priority = display_value(fm["priority"]) if fm.get("priority") is not None else "?"
    status = display_value(fm["status"]) if fm.get("status") is not None else "unknown"
    lines = [f"[P{priority}] [{status}] {doc.title}"]
    tags = fm.get("tags")
    if tags:
        lines.append(f"       Tags: {display_value(tags)}")
    return lines


def _generic_lines(doc: Document) -> list[str]:
    lines = [f"{doc.title} {_types_label(doc)}", f"  Path: {doc.path}"]
    shown = [(k, v) for k, v in doc.frontmatter.items() if k not in GENERIC_SKIP_FIELDS]
    for key, value in shown[:GENERIC_FIELD_LIMIT]:
        lines.append(f"  {key}: {display_value(value)}")
    if doc.body:
        lines.append(f"  Body: {_first_line_preview(doc.body, BODY_PREVIEW_CHARS)}")
    lines.append("")
    return lines


def render_query_results(
    results: list[Document],
    meta: Optional[QueryMeta] = None,
    view: QueryView = QueryView.EXPLICIT,
) -> str:
    """Render query results as a task list (default view) or generic list."""
    task_mode = view is QueryView.DEFAULT_TASKS
    lines: list[str] = []
    if task_mode:
        lines += ["Open Tasks (by priority)", "", RULE]

    if not results:
        lines.append("  No results found.")
        return "\n".join(lines)

    for doc in results:
        lines += _task_lines(doc) if task_mode else _generic_lines(doc)
    lines += ["", total_line(len(results), meta)]
    return "\n".join(lines)


def render_table(results: list[Document], meta: Optional[QueryMeta] = None) -> str:
    """Render query results as aligned columns."""
    if not results:
        return "  No results found."

    rows = []
    for doc in results:
        title = doc.title if "title" in doc.frontmatter else ""
        if len(title) > TABLE_TITLE_WIDTH:
            title = title[:TABLE_TITLE_WIDTH - 3] + "..."
        rows.append((doc.path, ", ".join(doc.types) or "untyped", title))

    headers = ("PATH", "TYPES", "TITLE")
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

    def fmt(row) -> str:
        return "  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip()

    lines = [fmt(headers), fmt(tuple("-" * w for w in widths))]
    lines += [fmt(r) for r in rows]
    lines += ["", total_line(len(results), meta)]
    return "\n".join(lines)


def _relative_time(captured: Any, now: datetime) -> str:
    if not captured:
        return "unknown"
    try:
        return format_relative_time(parse_timestamp(str(captured)), now)
    except ValueError:
        return str(captured)


def render_inbox(result: QueryResult, now: datetime) -> str:
    """Render unprocessed fleeting notes, newest first as returned."""
    notes = result.results
    lines = ["Inbox (unprocessed)", "", RULE]

    if not notes:
        lines.append("  No unprocessed notes in inbox.")
    for doc in notes:
        fm = doc.frontmatter
        when = _relative_time(fm.get("captured"), now)
        short_id = str(fm.get("id") or "")[:8]
        preview = _first_line_preview(doc.body, INBOX_PREVIEW_CHARS)
        lines.append(f"[{when}] {short_id}: {preview}")
        if fm.get("context"):
            lines.append(f"         Context: {display_value(fm['context'])}")
        if fm.get("source"):
            lines.append(f"         Source: {display_value(fm['source'])}")

    lines += ["", total_line(len(notes), result.meta, "unprocessed notes")]
    return "\n".join(lines)


def render_file_list(result: QueryResult) -> str:
    lines = ["Files in vault:", ""]
    for doc in result.results:
        lines.append(f"  {doc.path} {_types_label(doc)}")
    lines += ["", f"Total: {len(result.results)} files"]
    return "\n".join(lines)


def render_validation(report: ValidationReport) -> str:
    lines = ["Validating vault...", ""]
    if report.issues:
        lines.append("Issues:")
        for issue in report.issues:
            lines.append(f"  ❌ {issue.path or 'unknown'}: {issue.message}")
    if report.warnings:
        if report.issues:
            lines.append("")
        lines.append("Warnings:")
        for warning in report.warnings:
            lines.append(f"  ⚠️  {warning}")
    if report.ok:
        lines.append("✅ All files valid!")
    return "\n".join(lines)


def _count_by(values: list[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for v in values:
        counts[v] = counts.get(v, 0) + 1
    return counts


def render_report(all_docs: QueryResult, tasks: QueryResult, validation: ValidationReport) -> str:
    """Summarize the vault: files per type, task statuses, validation counts."""
    by_type = _count_by([t for doc in all_docs.results for t in (doc.types or ["untyped"])])
    by_status = _count_by([display_value(doc.frontmatter.get("status") or "unknown")
                           for doc in tasks.results])

    lines = ["Vault Report", "", DOUBLE_RULE, "", "Files by Type:"]
    for name, count in sorted(by_type.items(), key=lambda kv: kv[1], reverse=True):
        lines.append(f"  {name}: {count}")

    lines += ["", "Task Status:"]
    for status, count in by_status.items():
        lines.append(f"  {status}: {count}")

    lines += [
        "",
        "Validation:",
        f"  Issues: {len(validation.issues)}",
        f"  Warnings: {len(validation.warnings)}",
        "",
        DOUBLE_RULE,
        f"Total files: {len(all_docs.results)}",
    ]
    return "\n".join(lines)


HELP_TEXT = """\
obsidian-tools - Vault management CLI

Usage: obsidian-tools <command> [options]

Commands:
  query        Query vault with filters (inline or default: open tasks)
  run <file>   Run a query from a YAML file
  capture      Quick capture a fleeting note to inbox
  inbox        List unprocessed inbox notes
  add <type>   Create a new document
  report       Generate a vault status report
  validate     Validate all files against type schemas
  list         List all files with their types
  help         Show this help

Query Command:
  obsidian-tools query [options]

  Without options, shows open tasks by priority.

  Options:
    --type, -t      Filter by type (can repeat: -t task -t note)
    --where, -w     Filter expression (mdbase expression syntax)
    --order, -o     Sort by field:direction (e.g., priority:asc, due_date:desc)
    --limit, -l     Limit results
    --offset        Skip N results (for pagination)
    --folder, -f    Filter to folder prefix
    --body          Include body content in output
    --json          Output as JSON
    --format        Output format: table, list, json (default: list)

  Examples:
    obsidian-tools query
    obsidian-tools query -t task -w 'status == "open"'
    obsidian-tools query -t task -w 'priority >= 3' -o priority:desc
    obsidian-tools query -t task -t note -w 'tags.contains("urgent")'
    obsidian-tools query --where 'types.contains("actionable")' --limit 10
    obsidian-tools query -f projects/alpha -o file.mtime:desc

Run Command:
  obsidian-tools run <query-file.yaml> [--json]

  Execute a query from a YAML file (mdbase query spec format).

  Example query file (queries/overdue.yaml):
    types: [task]
    where: 'due_date < today() && status != "done"'
    order_by:
      - field: due_date
        direction: asc
    limit: 20

Capture Command:
  obsidian-tools capture <content> [--context "..."] [--source "..."]

  Quick capture a thought to the inbox for later processing.
  Auto-generates a ULID id and capture timestamp.

  Options:
    --context   Additional context about the note
    --source    Source type (e.g., reading, meeting, thought)

  Examples:
    obsidian-tools capture "Check out Cilium for k8s networking"
    obsidian-tools capture "Auth needs refresh tokens" --context "PR review"

Add Command:
  obsidian-tools add <type> [--field value]...

  Options:
    --title     Document title (required for most types)
    --body      Markdown body content
    --tags      Comma-separated tags
    --priority  Priority level (for tasks)
    --status    Status (for tasks: open, in_progress, done)
    --path      Custom file path (optional)

  Examples:
    obsidian-tools add task --title "Fix bug" --priority 1 --status open
    obsidian-tools add note --title "Meeting notes" --body "# Summary..."

Global Options:
  --vault <path>   Override vault path (or use VAULT_PATH env var)
                   Current: {vault_path}
  --verbose, -v    Debug logging to stderr
"""


def render_help(vault_path: Any) -> str:
    return HELP_TEXT.replace("{vault_path}", str(vault_path))
