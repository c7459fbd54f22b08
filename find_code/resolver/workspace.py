"""Workspace File Set: extension-filtered candidate files under a project root."""

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import FileUnreadable, PathTraversalRejected, WorkspaceMissing
from .file_types import FileTypeRegistry, get_file_type_registry

logger = logging.getLogger(__name__)


class WorkspaceFileSet:
    """Ordered, lazily-read set of candidate files under an immutable root."""

    def __init__(self, root: Optional[str], registry: Optional[FileTypeRegistry] = None):
        """Initialize workspace file set.

        Args:
            root: Workspace root directory (None when no workspace is configured)
            registry: File type registry (defaults to the global registry)
        """
        self.registry = registry or get_file_type_registry()
        self._configured_root = root
        self.root: Optional[Path] = Path(root).resolve() if root else None

    @property
    def is_available(self) -> bool:
        return self.root is not None and self.root.is_dir()

    def require_root(self) -> Path:
        """Return the resolved root.

        Raises:
            WorkspaceMissing: If no root is configured or it is not a directory
        """
        if not self.is_available:
            raise WorkspaceMissing(self._configured_root)
        return self.root

    def _walk(self, want_maps: bool) -> Iterator[Path]:
        root = self.require_root()
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune in place so os.walk never descends into excluded directories
            dirnames[:] = sorted(d for d in dirnames if not self.registry.is_excluded_dir(d))
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                matches = (
                    self.registry.is_source_map(name)
                    if want_maps
                    else self.registry.is_supported_file(name)
                )
                if not matches:
                    continue
                path = Path(dirpath) / name
                if self.contains(path):
                    yield path
                else:
                    logger.debug(f"Skipping {path}: resolves outside workspace")

    def list_files(self) -> List[Path]:
        """Enumerate candidate files in deterministic (sorted, depth-first) order.

        Returns:
            List of absolute file paths

        Raises:
            WorkspaceMissing: If the root is unavailable
        """
        files = list(self._walk(want_maps=False))
        logger.debug(f"Workspace file set: {len(files)} candidate files under {self.root}")
        return files

    def list_source_maps(self) -> List[Path]:
        """Enumerate ``*.map`` artifacts under the root in deterministic order."""
        return list(self._walk(want_maps=True))

    def contains(self, path: Path) -> bool:
        """Check that a path, with symlinks resolved, lies within the root."""
        if self.root is None:
            return False
        try:
            Path(path).resolve().relative_to(self.root)
        except (ValueError, OSError):
            return False
        return True

    def resolve_within(self, relative_path: str) -> Path:
        """Resolve a path against the root, refusing anything that escapes it.

        Args:
            relative_path: Root-relative (or absolute) path

        Returns:
            Absolute resolved path

        Raises:
            PathTraversalRejected: If the resolved path is outside the root
            WorkspaceMissing: If the root is unavailable
        """
        root = self.require_root()
        candidate = (root / relative_path).resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            raise PathTraversalRejected(relative_path, str(root)) from None
        return candidate

    def read_text(self, path: Path) -> str:
        """Read a file's full text.

        Raises:
            FileUnreadable: If the file vanished or cannot be read
        """
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise FileUnreadable(str(path), e.strerror or str(e)) from e
