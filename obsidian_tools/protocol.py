"""
Protocol definition for document collections.

The CLI talks to a collection only through this interface. Implemented by:
- MarkdownCollection (local folder of markdown files, the default)
- Backends registered under the ``obsidian_tools.backends`` entry point group
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from .query_spec import CreateRequest, QueryRequest
from .types import CollectionError, CreateResult, QueryResult, ValidationReport


@runtime_checkable
class CollectionProtocol(Protocol):
    """A handle on an opened document collection.

    Operations report failures through the ``error`` field of their result
    rather than raising. ``close()`` must be called exactly once.
    """

    def create(self, request: CreateRequest) -> CreateResult: ...

    def query(self, request: QueryRequest) -> QueryResult: ...

    def validate(self) -> ValidationReport: ...

    def close(self) -> None: ...


@dataclass
class OpenResult:
    """Outcome of opening a collection: a handle or an error."""
    collection: Optional[CollectionProtocol] = None
    error: Optional[CollectionError] = None
