"""Supported file types and directory exclusions for workspace scanning."""

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: Dict[str, str] = {
    ".html": "html",
    ".js": "javascript",
    ".ts": "typescript",
    ".jsx": "javascript",
    ".tsx": "typescript",
    ".vue": "vue",
}

SOURCE_MAP_EXTENSION = ".map"

DEFAULT_EXCLUDE_DIRS: Set[str] = {
    "node_modules",
    ".git",
    "__pycache__",
    ".pytest_cache",
    "venv",
    ".venv",
    ".idea",
    ".vscode",
    ".next",
    ".nuxt",
    "vendor",
}


class FileTypeRegistry:
    """Registry of candidate file extensions and excluded directories."""

    def __init__(
        self,
        extensions: Optional[Dict[str, str]] = None,
        exclude_dirs: Optional[Iterable[str]] = None,
    ):
        """Initialize file type registry.

        Args:
            extensions: Mapping of lower-case extension (with dot) to file kind
            exclude_dirs: Directory names never descended into
        """
        self.extension_map = dict(extensions or DEFAULT_EXTENSIONS)
        self.exclude_dirs = set(DEFAULT_EXCLUDE_DIRS if exclude_dirs is None else exclude_dirs)
        logger.debug(
            f"File types: {sorted(self.extension_map)}; excluded dirs: {sorted(self.exclude_dirs)}"
        )

    def detect_kind(self, file_path: str) -> Optional[str]:
        """Detect file kind from its extension.

        Args:
            file_path: Path to the file

        Returns:
            Kind name or None if not a candidate file
        """
        return self.extension_map.get(Path(file_path).suffix.lower())

    def is_supported_file(self, file_path: str) -> bool:
        return self.detect_kind(file_path) is not None

    def is_source_map(self, file_path: str) -> bool:
        return Path(file_path).suffix.lower() == SOURCE_MAP_EXTENSION

    def is_excluded_dir(self, name: str) -> bool:
        return name in self.exclude_dirs or name.startswith(".")

    def is_excluded(self, relative_path: Path) -> bool:
        """Check whether a root-relative path lies in an excluded or hidden directory.

        Args:
            relative_path: Path relative to the workspace root

        Returns:
            True if the path should be skipped
        """
        if any(self.is_excluded_dir(part) for part in relative_path.parts[:-1]):
            return True
        return relative_path.name.startswith(".")


# Global registry instance
_registry: Optional[FileTypeRegistry] = None


def get_file_type_registry(exclude_dirs: Optional[Iterable[str]] = None) -> FileTypeRegistry:
    """Get the global file type registry instance.

    Args:
        exclude_dirs: Excluded directory names (only used on first call)

    Returns:
        File type registry instance
    """
    global _registry
    if _registry is None:
        _registry = FileTypeRegistry(exclude_dirs=exclude_dirs)
    return _registry
