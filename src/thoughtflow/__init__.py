"""
ThoughtFlow - capture, tag, draft and publish short notes ("thoughts").

This package implements the client-resident engine behind ThoughtFlow: a
draft session with debounced autosave and a publish transition, tag
association reconciliation, and a filter pipeline over the loaded thought
collection. Persistence, identity and display are reached through narrow
async interfaces, with a SQLite adapter and an MCP tool surface included.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("thoughtflow")
except PackageNotFoundError:
    __version__ = "0.3.0"
