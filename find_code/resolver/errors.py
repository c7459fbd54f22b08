"""Error taxonomy for source location resolution.

Every error here is recoverable: per-file errors are isolated by the component
that raises them and the coordinator turns the rest into a failure outcome.
"""

from typing import Optional


class FindCodeError(Exception):
    """Base class for resolver errors."""


class MapParseError(FindCodeError):
    """A single source map artifact is malformed."""

    def __init__(self, map_path: str, reason: str):
        super().__init__(f"Failed to parse source map {map_path}: {reason}")
        self.map_path = map_path
        self.reason = reason


class PathTraversalRejected(FindCodeError):
    """A source path resolves outside the workspace root."""

    def __init__(self, source_path: str, root: Optional[str] = None):
        super().__init__(f"Source path escapes workspace root: {source_path}")
        self.source_path = source_path
        self.root = root


class FileUnreadable(FindCodeError):
    """A candidate file vanished or could not be read."""

    def __init__(self, file_path: str, reason: str = ""):
        message = f"File unreadable: {file_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.file_path = file_path


class WorkspaceMissing(FindCodeError):
    """No usable workspace root is configured."""

    def __init__(self, root: Optional[str] = None):
        super().__init__(
            f"Workspace root does not exist: {root}" if root else "No workspace root configured"
        )
        self.root = root


class InvalidDescriptor(FindCodeError, ValueError):
    """Inbound element descriptor is missing required fields or is malformed."""


class IndexNotInitialized(FindCodeError):
    """Source map index queried before initialize() or after dispose()."""
