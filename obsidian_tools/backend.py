"""
Pluggable collection backend factory.

The ``local`` backend reads a folder of markdown files. External backends
register via the ``obsidian_tools.backends`` entry point group with a
function taking the vault path::

    def open_collection(path: Path) -> OpenResult:
        ...

and declare it in their pyproject.toml::

    [project.entry-points."obsidian_tools.backends"]
    my-backend = "my_package.backend:open_collection"
"""

import logging
from pathlib import Path

from .protocol import OpenResult
from .types import CollectionError

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "local"


def open_collection(path: Path, backend: str = DEFAULT_BACKEND) -> OpenResult:
    """
    Open the collection rooted at *path* with the named backend.

    Unknown backend names are reported as an open error.
    """
    logger.debug("Opening %s collection at %s", backend, path)
    if backend == DEFAULT_BACKEND:
        from .markdown_store import open_collection as open_local
        return open_local(path)
    try:
        factory = _load_backend(backend)
    except ValueError as e:
        return OpenResult(error=CollectionError(str(e)))
    return factory(path)


def _load_backend(name: str):
    """Load a backend factory by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="obsidian_tools.backends")
    for ep in eps:
        if ep.name == name:
            return ep.load()

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(f"Unknown backend: {name!r}. Available: {available}")
    raise ValueError(f"Unknown backend: {name!r}. No backends registered.")
