"""Process-wide index of workspace source maps with copy-then-swap rebuilds."""

import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import blake3

from .errors import IndexNotInitialized, MapParseError, PathTraversalRejected
from .file_types import FileTypeRegistry
from .models import ElementDescriptor, OriginalPosition
from .source_map_parser import SourceMapRecord, parse_source_map
from .workspace import WorkspaceFileSet

logger = logging.getLogger(__name__)

_BUNDLER_PREFIX = re.compile(r"^[a-z][a-z0-9+.-]*://[^/]*/", re.IGNORECASE)
_FILE_URL_PREFIX = "file://"


@dataclass(frozen=True)
class MapFingerprint:
    """Content fingerprint of an indexed map artifact."""

    path: str
    content_hash: str
    last_indexed: float  # timestamp
    source_count: int


@dataclass(frozen=True)
class _IndexState:
    workspace: WorkspaceFileSet
    records: Tuple[SourceMapRecord, ...]
    fingerprints: Dict[str, Tuple[MapFingerprint, SourceMapRecord]]
    built_at: float
    failures: Tuple[str, ...] = ()


def compute_content_hash(content: bytes) -> str:
    """Compute Blake3 hash of raw file contents."""
    return blake3.blake3(content).hexdigest()


class IndexRebuildSession:
    """Stages a complete rebuild; publishes it only if the session exits cleanly."""

    def __init__(self, index: "SourceMapIndex", workspace: WorkspaceFileSet):
        """Initialize rebuild session.

        Args:
            index: Index that receives the staged records on success
            workspace: Workspace the new records belong to
        """
        self.index = index
        self.workspace = workspace
        self.records: List[SourceMapRecord] = []
        self.fingerprints: Dict[str, Tuple[MapFingerprint, SourceMapRecord]] = {}
        self.failures: List[str] = []
        self.reused = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.index._swap(
                _IndexState(
                    workspace=self.workspace,
                    records=tuple(self.records),
                    fingerprints=self.fingerprints,
                    built_at=time.time(),
                    failures=tuple(self.failures),
                )
            )
            logger.info(
                f"Source map index rebuilt: {len(self.records)} maps "
                f"({self.reused} reused, {len(self.failures)} failed)"
            )
        else:
            logger.error(f"Source map index rebuild failed, keeping previous index: {exc_val}")
        # Staged state is dropped either way; the published tuple is independent
        self.records = []
        self.fingerprints = {}
        return False

    def add(self, map_path: Path, previous: Optional[Tuple[MapFingerprint, SourceMapRecord]]) -> None:
        """Parse (or reuse) one map artifact and stage it.

        Args:
            map_path: Path to the ``.map`` file
            previous: Fingerprint and record from the prior build, if any

        Raises:
            MapParseError: If the artifact cannot be read or parsed
        """
        try:
            raw = map_path.read_bytes()
        except OSError as e:
            raise MapParseError(str(map_path), e.strerror or str(e)) from e

        content_hash = compute_content_hash(raw)
        if previous is not None and previous[0].content_hash == content_hash:
            fingerprint, record = previous
            self.reused += 1
        else:
            record = parse_source_map(raw.decode("utf-8", errors="replace"), str(map_path))
            fingerprint = MapFingerprint(
                path=str(map_path),
                content_hash=content_hash,
                last_indexed=time.time(),
                source_count=len(record.sources),
            )
            logger.info(f"Source map loaded: {map_path.name}")

        self.records.append(record)
        self.fingerprints[str(map_path)] = (fingerprint, record)


class SourceMapIndex:
    """Answers generated -> original position queries across all workspace maps.

    The published state is an immutable snapshot. Readers take a reference to
    it and never observe a partially built index; ``initialize`` builds a new
    snapshot and swaps it in wholesale.
    """

    def __init__(self, registry: Optional[FileTypeRegistry] = None):
        """Initialize an empty (unusable until initialized) index.

        Args:
            registry: File type registry used for map discovery
        """
        self.registry = registry
        self._state: Optional[_IndexState] = None
        self._rebuild_lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    @property
    def records(self) -> Tuple[SourceMapRecord, ...]:
        state = self._state
        return state.records if state else ()

    def _require_state(self) -> _IndexState:
        state = self._state
        if state is None:
            raise IndexNotInitialized("Source map index is not initialized")
        return state

    def _swap(self, state: Optional[_IndexState]) -> None:
        self._state = state

    def initialize(self, workspace_root: str) -> int:
        """Discover and parse every ``*.map`` file under the root.

        Malformed maps are logged and skipped. Re-running replaces the prior
        index atomically; unchanged maps reuse their parsed record.

        Args:
            workspace_root: Workspace root directory

        Returns:
            Number of indexed maps

        Raises:
            WorkspaceMissing: If the root is unavailable (previous index is kept)
        """
        workspace = WorkspaceFileSet(workspace_root, registry=self.registry)

        with self._rebuild_lock:
            map_files = workspace.list_source_maps()
            logger.info(f"Found {len(map_files)} source map files")

            previous = self._state.fingerprints if self._state else {}
            with IndexRebuildSession(self, workspace) as session:
                for map_path in map_files:
                    try:
                        session.add(map_path, previous.get(str(map_path)))
                    except MapParseError as e:
                        logger.warning(str(e))
                        session.failures.append(str(map_path))
                return len(session.records)

    def find_original_position(self, descriptor: ElementDescriptor) -> Optional[OriginalPosition]:
        """Find the original source position for a clicked element.

        Records are tried in discovery order; the first hit wins.

        Args:
            descriptor: Element descriptor

        Returns:
            Original position or None on a miss

        Raises:
            IndexNotInitialized: If the index was never built or was disposed
        """
        state = self._require_state()
        for record in state.records:
            for source, line, column in self._candidate_queries(record, descriptor):
                original = record.original_position_for(line, column)
                if original and original.source and original.line > 0:
                    logger.debug(
                        f"Source map hit in {record.map_path} for {source}:{line}:{column} -> "
                        f"{original.source}:{original.line}:{original.column}"
                    )
                    return original
        return None

    @staticmethod
    def _candidate_queries(
        record: SourceMapRecord, descriptor: ElementDescriptor
    ) -> Iterator[Tuple[str, int, int]]:
        hint = descriptor.source_file_hint
        if hint:
            if descriptor.generated_line is not None:
                yield hint, descriptor.generated_line, descriptor.generated_column or 1
            yield hint, 1, 1
        for source in record.sources:
            if source:
                yield source, 1, 1

    def resolve_source_path(self, source_path: str) -> Optional[Path]:
        """Resolve a source-map source name to an absolute path inside the workspace.

        Args:
            source_path: Source name as declared by the map

        Returns:
            Absolute path, or None if it escapes the workspace root
        """
        state = self._require_state()
        if source_path.startswith(_FILE_URL_PREFIX):
            source_path = source_path[len(_FILE_URL_PREFIX):]
        else:
            source_path = _BUNDLER_PREFIX.sub("", source_path)

        try:
            return state.workspace.resolve_within(source_path)
        except PathTraversalRejected as e:
            logger.warning(str(e))
            return None

    def dispose(self) -> None:
        """Release all parsed map state; the index is unusable until re-initialized."""
        with self._rebuild_lock:
            self._swap(None)
        logger.info("Source map index disposed")

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        state = self._state
        if state is None:
            return {"initialized": False, "source_maps": 0, "sources": 0}

        return {
            "initialized": True,
            "workspace_root": str(state.workspace.root),
            "source_maps": len(state.records),
            "sources": sum(len(record.sources) for record in state.records),
            "segments": sum(record.segment_count for record in state.records),
            "built_at": state.built_at,
            "failed_maps": list(state.failures),
            "maps": [
                {
                    "path": fingerprint.path,
                    "sources": fingerprint.source_count,
                    "last_indexed": fingerprint.last_indexed,
                }
                for fingerprint, _ in state.fingerprints.values()
            ],
        }
