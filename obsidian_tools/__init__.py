"""
obsidian-tools: query, capture and create typed markdown documents in a vault.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("obsidian-tools")
except PackageNotFoundError:
    __version__ = "0.0.0"
