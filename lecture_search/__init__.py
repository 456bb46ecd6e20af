"""Lecture Search - hybrid video search served over HTTP and MCP."""

from importlib.metadata import version

# Package name must match [project].name in pyproject.toml
# This is the single source of truth for versioning
__version__ = version("lecture-search")

__all__ = ["__version__"]
