"""
Data types shared between the CLI and collection backends.

Responses mirror the collection contract: each operation returns a result
object carrying either its payload or a ``CollectionError``, never both.
``to_dict()`` gives the JSON shape printed by ``--json``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Union


# Closed value variant for frontmatter. Lists hold strings (tags, aliases)
# or nested mappings; mappings are passed through for serialization.
FrontmatterValue = Union[str, int, float, bool, list, dict, None]

Frontmatter = dict[str, FrontmatterValue]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(dt: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with milliseconds and a Z suffix.

    Example: 2026-01-15T09:30:00.000Z
    """
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware datetime.

    Accepts 'Z' or offset suffixes; naive values are taken as UTC.
    Raises ValueError for unparseable input.
    """
    ts = ts.strip().replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_relative_time(captured: datetime, now: datetime) -> str:
    """Short human description of how long ago *captured* was, seen from *now*.

    Under a minute is "just now"; then minutes, hours and days (floored)
    up to a week; older timestamps fall back to the locale's date format.
    Both arguments must be timezone-aware.
    """
    elapsed = (now - captured).total_seconds()
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return captured.astimezone().strftime("%x")


def normalize_value(value: Any) -> FrontmatterValue:
    """Coerce a YAML-loaded value into the frontmatter value variant.

    Dates become ISO strings at any depth. Scalar list items become
    strings; mappings, in lists or not, are normalized key by key.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.isoformat()
        return iso_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        items = []
        for v in value:
            v = normalize_value(v)
            items.append(v if isinstance(v, (str, dict)) else str(v))
        return items
    return value


@dataclass(frozen=True)
class CollectionError:
    """An error reported by the document collection."""
    message: str

    def to_dict(self) -> dict:
        return {"message": self.message}


@dataclass
class Document:
    """
    A typed markdown document as returned by a query.

    Attributes:
        path: Path relative to the vault root (e.g. "inbox/01J9....md")
        types: Type names the document matched (may be empty)
        frontmatter: Parsed YAML metadata
        body: Markdown body, None unless the query asked for bodies
        formulas: Computed values, present only when the query carried formulas
    """
    path: str
    types: list[str] = field(default_factory=list)
    frontmatter: Frontmatter = field(default_factory=dict)
    body: Optional[str] = None
    formulas: Optional[dict[str, Any]] = None

    @property
    def title(self) -> str:
        """Frontmatter title, falling back to the path."""
        title = self.frontmatter.get("title")
        return str(title) if title is not None else self.path

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "path": self.path,
            "types": list(self.types),
            "frontmatter": dict(self.frontmatter),
            "body": self.body,
        }
        if self.formulas is not None:
            d["formulas"] = dict(self.formulas)
        return d


@dataclass(frozen=True)
class QueryMeta:
    """Paging information for a query response."""
    total_count: Optional[int] = None
    has_more: bool = False

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"has_more": self.has_more}
        if self.total_count is not None:
            d["total_count"] = self.total_count
        return d


@dataclass
class QueryResult:
    results: list[Document] = field(default_factory=list)
    meta: Optional[QueryMeta] = None
    error: Optional[CollectionError] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"results": [doc.to_dict() for doc in self.results]}
        if self.meta is not None:
            d["meta"] = self.meta.to_dict()
        if self.error is not None:
            d["error"] = self.error.to_dict()
        return d


@dataclass
class CreateResult:
    path: Optional[str] = None
    error: Optional[CollectionError] = None


@dataclass(frozen=True)
class ValidationIssue:
    """A validation problem, optionally tied to a document path."""
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass
class ValidationReport:
    """Outcome of validating a collection.

    Issues are schema violations; warnings are non-fatal notices.
    Warnings may be plain strings or path-scoped ``ValidationIssue``s.
    """
    issues: list[ValidationIssue] = field(default_factory=list)
    warnings: list[Union[str, ValidationIssue]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues and not self.warnings
