"""
Local document collection over a folder of markdown files.

Each ``*.md`` file is a document: an optional YAML frontmatter block
between ``---`` lines, then a markdown body. Types are declared as
markdown files in the types folder (``_types/`` by default), whose
frontmatter describes fields, defaults, match rules and a path pattern:

    ---
    name: fleeting
    path_pattern: inbox/{id}.md
    match:
      fields_present: [captured]
    fields:
      status:
        type: enum
        values: [unprocessed, processed]
        default: unprocessed
    ---

The folder is rescanned on every query; there is no index.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from .config import CollectionSettings, load_collection_settings
from .errors import ExpressionError, VaultError
from .expressions import compile_expression, evaluate, matches
from .protocol import OpenResult
from .query_spec import CreateRequest, OrderBy, QueryRequest
from .types import (
    CollectionError,
    CreateResult,
    Document,
    Frontmatter,
    QueryMeta,
    QueryResult,
    ValidationIssue,
    ValidationReport,
    iso_timestamp,
    normalize_value,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_PATTERN_FIELD_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_SLUG_RE = re.compile(r"[^a-z0-9]+")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# -----------------------------------------------------------------------------
# Markdown files
# -----------------------------------------------------------------------------

def parse_markdown(text: str) -> tuple[Frontmatter, str]:
    """Split text into (frontmatter, body).

    Text without a leading ``---`` line has empty frontmatter.

    Raises:
        VaultError: The frontmatter block is unterminated, is not valid
            YAML, or is not a mapping.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != "---":
        return {}, text
    for i in range(1, len(lines)):
        if lines[i].rstrip() == "---":
            block = "".join(lines[1:i])
            body = "".join(lines[i + 1:])
            break
    else:
        raise VaultError("Unterminated frontmatter block")

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise VaultError(f"Frontmatter contains invalid YAML: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise VaultError("Frontmatter is not a mapping")
    frontmatter = {str(k): normalize_value(v) for k, v in data.items()}
    return frontmatter, body.lstrip("\n")


def render_markdown(frontmatter: Frontmatter, body: Optional[str]) -> str:
    """Serialize frontmatter and body back into a markdown document."""
    block = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True,
                           default_flow_style=False)
    text = f"---\n{block}---\n"
    if body:
        text += f"\n{body}"
        if not body.endswith("\n"):
            text += "\n"
    return text


def slugify(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-")


# -----------------------------------------------------------------------------
# Type schemas
# -----------------------------------------------------------------------------

@dataclass
class FieldSpec:
    type: Optional[str] = None
    required: bool = False
    values: Optional[list[Any]] = None
    default: Any = None


@dataclass
class TypeSchema:
    name: str
    path_pattern: Optional[str] = None
    fields_present: list[str] = field(default_factory=list)
    path_prefix: Optional[str] = None
    fields: dict[str, FieldSpec] = field(default_factory=dict)

    @property
    def has_match_rule(self) -> bool:
        return bool(self.fields_present or self.path_prefix)

    def matches(self, path: str, frontmatter: Frontmatter) -> bool:
        if not self.has_match_rule:
            return False
        if self.fields_present and not all(f in frontmatter for f in self.fields_present):
            return False
        if self.path_prefix and not path.startswith(self.path_prefix):
            return False
        return True

    @classmethod
    def from_frontmatter(cls, default_name: str, data: dict) -> "TypeSchema":
        match = data.get("match") or {}
        fields = {}
        for name, spec in (data.get("fields") or {}).items():
            spec = spec or {}
            fields[str(name)] = FieldSpec(
                type=spec.get("type"),
                required=bool(spec.get("required", False)),
                values=spec.get("values"),
                default=spec.get("default"),
            )
        return cls(
            name=str(data.get("name") or default_name),
            path_pattern=data.get("path_pattern"),
            fields_present=[str(f) for f in match.get("fields_present") or []],
            path_prefix=match.get("path_prefix"),
            fields=fields,
        )


def _type_problem(name: str, spec: FieldSpec, value: Any) -> Optional[str]:
    """Describe why *value* does not fit *spec*, or None if it does."""
    kind = spec.type
    if kind == "enum" or spec.values:
        if spec.values and value not in spec.values:
            allowed = ", ".join(str(v) for v in spec.values)
            return f"{name}: {value!r} is not one of {allowed}"
        return None
    if kind == "string" and not isinstance(value, str):
        return f"{name}: expected a string"
    if kind == "integer" and (isinstance(value, bool) or not isinstance(value, int)):
        return f"{name}: expected an integer"
    if kind == "number" and (isinstance(value, bool) or not isinstance(value, (int, float))):
        return f"{name}: expected a number"
    if kind == "boolean" and not isinstance(value, bool):
        return f"{name}: expected true or false"
    if kind == "list" and not isinstance(value, list):
        return f"{name}: expected a list"
    if kind == "date" and not (isinstance(value, str) and _DATE_RE.match(value)):
        return f"{name}: expected a date (YYYY-MM-DD)"
    if kind == "datetime":
        try:
            parse_timestamp(str(value))
        except ValueError:
            return f"{name}: expected a datetime"
    return None


def check_fields(schema: TypeSchema, frontmatter: Frontmatter) -> list[str]:
    """Schema problems for one document's frontmatter."""
    problems = []
    for name, spec in schema.fields.items():
        if name not in frontmatter or frontmatter[name] is None:
            if spec.required:
                problems.append(f"{name}: required field is missing")
            continue
        problem = _type_problem(name, spec, frontmatter[name])
        if problem:
            problems.append(problem)
    return problems


# -----------------------------------------------------------------------------
# Collection
# -----------------------------------------------------------------------------

@dataclass
class _Entry:
    path: str  # relative, posix separators
    file: Path
    frontmatter: Frontmatter
    body: str
    error: Optional[str] = None


def _explicit_types(frontmatter: Frontmatter) -> list[str]:
    found: list[str] = []
    single = frontmatter.get("type")
    if isinstance(single, str) and single:
        found.append(single)
    many = frontmatter.get("types")
    if isinstance(many, list):
        found.extend(t for t in many if t)
    elif isinstance(many, str) and many:
        found.append(many)
    return found


def _lookup(scope: dict[str, Any], dotted: str) -> Any:
    value: Any = scope
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _sort_key(value: Any) -> tuple:
    if isinstance(value, bool):
        return (0, int(value), "")
    if isinstance(value, (int, float)):
        return (0, value, "")
    if isinstance(value, list):
        return (1, 0, ", ".join(str(v) for v in value))
    return (1, 0, str(value))


class MarkdownCollection:
    """
    A vault folder opened as a document collection.

    Satisfies CollectionProtocol. Usable as a context manager.
    """

    def __init__(self, root: Path, settings: Optional[CollectionSettings] = None):
        self.root = Path(root)
        self.settings = settings or load_collection_settings(self.root)
        self._closed = False
        self.schemas = self._load_schemas()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.debug("Closed collection at %s", self.root)

    # -- Loading ---------------------------------------------------------

    def _load_schemas(self) -> dict[str, TypeSchema]:
        schemas: dict[str, TypeSchema] = {}
        types_dir = self.root / self.settings.types_folder
        if not types_dir.is_dir():
            return schemas
        for file in sorted(types_dir.glob("*.md")):
            try:
                data, _ = parse_markdown(file.read_text(encoding="utf-8"))
            except (OSError, VaultError) as e:
                logger.warning("Skipping type definition %s: %s", file.name, e)
                continue
            schema = TypeSchema.from_frontmatter(file.stem, data)
            schemas[schema.name] = schema
        return schemas

    def _skip_dir(self, rel: Path) -> bool:
        first = rel.parts[0] if rel.parts else ""
        if any(part.startswith(".") for part in rel.parts):
            return True
        skipped = {self.settings.types_folder, *self.settings.exclude}
        return first in skipped or rel.as_posix() in skipped

    def _files(self) -> Iterator[Path]:
        pattern = "**/*.md" if self.settings.include_subfolders else "*.md"
        for file in sorted(self.root.glob(pattern)):
            rel = file.relative_to(self.root)
            if rel.name.startswith(".") or self._skip_dir(rel.parent):
                continue
            if file.is_file():
                yield file

    def _entries(self) -> list[_Entry]:
        entries = []
        for file in self._files():
            rel = file.relative_to(self.root).as_posix()
            try:
                text = file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                entries.append(_Entry(rel, file, {}, "", error=f"Unreadable file: {e}"))
                continue
            try:
                frontmatter, body = parse_markdown(text)
            except VaultError as e:
                entries.append(_Entry(rel, file, {}, text, error=str(e)))
                continue
            entries.append(_Entry(rel, file, frontmatter, body))
        return entries

    def types_for(self, path: str, frontmatter: Frontmatter) -> list[str]:
        found = _explicit_types(frontmatter)
        for name, schema in self.schemas.items():
            if name not in found and schema.matches(path, frontmatter):
                found.append(name)
        return found

    def _scope(self, entry: _Entry, types: list[str]) -> dict[str, Any]:
        stat = entry.file.stat()
        folder = entry.path.rpartition("/")[0]
        file_info = {
            "path": entry.path,
            "name": entry.file.name,
            "basename": entry.file.stem,
            "ext": entry.file.suffix.lstrip("."),
            "folder": folder,
            "size": stat.st_size,
            "mtime": iso_timestamp(datetime.fromtimestamp(stat.st_mtime, timezone.utc)),
            "ctime": iso_timestamp(datetime.fromtimestamp(stat.st_ctime, timezone.utc)),
        }
        return {**entry.frontmatter, "types": types, "file": file_info}

    # -- Operations ------------------------------------------------------

    def create(self, request: CreateRequest) -> CreateResult:
        """Write a new document. Never overwrites an existing file."""
        if self._closed:
            return CreateResult(error=CollectionError("Collection is closed"))
        schema = self.schemas.get(request.type)
        if schema is None:
            known = ", ".join(sorted(self.schemas)) or "none defined"
            return CreateResult(error=CollectionError(
                f"Unknown type '{request.type}' (known types: {known})"
            ))

        frontmatter: Frontmatter = {}
        if not schema.has_match_rule:
            frontmatter["type"] = request.type
        for name, spec in schema.fields.items():
            if spec.default is not None and name not in request.frontmatter:
                frontmatter[name] = spec.default
        frontmatter.update(request.frontmatter)

        problems = check_fields(schema, frontmatter)
        if problems and self.settings.default_validation == "error":
            return CreateResult(error=CollectionError("; ".join(problems)))
        for problem in problems:
            logger.warning("%s: %s", request.type, problem)

        try:
            rel = self._target_path(request, schema, frontmatter)
        except VaultError as e:
            return CreateResult(error=CollectionError(str(e)))

        target = self.root / rel
        if target.exists():
            return CreateResult(error=CollectionError(f"File already exists: {rel}"))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "x", encoding="utf-8") as f:
                f.write(render_markdown(frontmatter, request.body))
        except OSError as e:
            return CreateResult(error=CollectionError(f"Could not write {rel}: {e}"))

        logger.info("Created %s %s", request.type, rel)
        return CreateResult(path=rel)

    def _target_path(self, request: CreateRequest, schema: TypeSchema,
                     frontmatter: Frontmatter) -> str:
        if request.path:
            rel = request.path
        elif schema.path_pattern:
            def substitute(m: re.Match) -> str:
                value = frontmatter.get(m.group(1))
                if value is None or value == "":
                    raise VaultError(
                        f"Cannot build path from {schema.path_pattern!r}: "
                        f"missing field '{m.group(1)}'"
                    )
                return str(value)
            rel = _PATTERN_FIELD_RE.sub(substitute, schema.path_pattern)
        else:
            title = frontmatter.get("title")
            slug = slugify(str(title)) if title else ""
            if not slug:
                raise VaultError(
                    f"Cannot choose a file name for '{request.type}': "
                    "give a title, a path, or a path_pattern in the type definition"
                )
            rel = f"{slug}.md"

        if not rel.endswith(".md"):
            rel += ".md"
        resolved = (self.root / rel).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise VaultError(f"Path escapes the vault: {rel}")
        return resolved.relative_to(self.root.resolve()).as_posix()

    def query(self, request: QueryRequest) -> QueryResult:
        """Filter, compute formulas, sort and page the vault's documents."""
        if self._closed:
            return QueryResult(error=CollectionError("Collection is closed"))
        try:
            where = compile_expression(request.where) if request.where else None
            formulas = {name: compile_expression(expr)
                        for name, expr in (request.formulas or {}).items()}
        except ExpressionError as e:
            return QueryResult(error=CollectionError(str(e)))

        try:
            matched = self._match(request, where, formulas)
        except ExpressionError as e:
            return QueryResult(error=CollectionError(str(e)))

        for order in reversed(request.order_by or []):
            matched = self._sorted(matched, order)

        total = len(matched)
        start = request.offset or 0
        end = start + request.limit if request.limit else None
        page = [doc for doc, _ in matched[start:end]]
        has_more = start + len(page) < total

        logger.info("Query %s matched %d documents", request.to_dict(), total)
        return QueryResult(results=page, meta=QueryMeta(total_count=total, has_more=has_more))

    def _match(self, request: QueryRequest, where, formulas) -> list[tuple[Document, dict[str, Any]]]:
        folder = request.folder.strip("/") if request.folder else None
        wanted = set(request.types or [])
        matched: list[tuple[Document, dict[str, Any]]] = []
        for entry in self._entries():
            if entry.error:
                continue
            if folder and not (entry.path == folder or entry.path.startswith(folder + "/")):
                continue
            types = self.types_for(entry.path, entry.frontmatter)
            if wanted and not wanted.intersection(types):
                continue
            scope = self._scope(entry, types)
            computed = None
            if formulas:
                computed = {name: evaluate(tree, scope) for name, tree in formulas.items()}
                scope["formula"] = computed
            if where is not None and not matches(where, scope):
                continue
            doc = Document(
                path=entry.path,
                types=types,
                frontmatter=dict(entry.frontmatter),
                body=entry.body if request.include_body else None,
                formulas=computed,
            )
            matched.append((doc, scope))
        return matched

    @staticmethod
    def _sorted(matched: list, order: OrderBy) -> list:
        """Stable sort on one key; documents missing the field sort last."""
        present = [m for m in matched if _lookup(m[1], order.field) is not None]
        missing = [m for m in matched if _lookup(m[1], order.field) is None]
        present.sort(key=lambda m: _sort_key(_lookup(m[1], order.field)),
                     reverse=order.direction == "desc")
        return present + missing

    def validate(self) -> ValidationReport:
        """Check every document against the schemas of its types."""
        report = ValidationReport()
        if self._closed:
            report.issues.append(ValidationIssue("Collection is closed"))
            return report
        level = self.settings.default_validation

        for entry in self._entries():
            if entry.error:
                report.issues.append(ValidationIssue(entry.error, entry.path))
                continue
            for name in _explicit_types(entry.frontmatter):
                if name not in self.schemas:
                    report.warnings.append(ValidationIssue(f"Unknown type '{name}'", entry.path))
            if level == "off":
                continue
            for name in self.types_for(entry.path, entry.frontmatter):
                schema = self.schemas.get(name)
                if schema is None:
                    continue
                for problem in check_fields(schema, entry.frontmatter):
                    issue = ValidationIssue(f"[{name}] {problem}", entry.path)
                    if level == "error":
                        report.issues.append(issue)
                    else:
                        report.warnings.append(issue)

        logger.info("Validated %s: %d issues, %d warnings",
                    self.root, len(report.issues), len(report.warnings))
        return report


def open_collection(path: Path) -> OpenResult:
    """Open the vault folder at *path*."""
    root = Path(path)
    if not root.is_dir():
        return OpenResult(error=CollectionError(f"Vault folder does not exist: {root}"))
    try:
        collection = MarkdownCollection(root)
    except ValueError as e:
        return OpenResult(error=CollectionError(str(e)))
    logger.info("Opened collection at %s (%d types)", root, len(collection.schemas))
    return OpenResult(collection=collection)
