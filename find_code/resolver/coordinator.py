"""Two-tier resolution: source maps first, textual heuristics second."""

import logging
from pathlib import Path
from typing import Optional

from .errors import FileUnreadable, IndexNotInitialized, WorkspaceMissing
from .locator import InFilePositionLocator
from .models import (
    Accuracy,
    ElementDescriptor,
    FailureKind,
    ResolutionFailure,
    ResolutionOutcome,
    ResolvedLocation,
)
from .ranker import CandidateFileRanker
from .source_map_index import SourceMapIndex
from .workspace import WorkspaceFileSet

logger = logging.getLogger(__name__)


class ResolutionCoordinator:
    """Resolves one element descriptor to a single source location.

    Holds no per-click state; concurrent calls only read the shared workspace
    and source map index.
    """

    def __init__(
        self,
        workspace: WorkspaceFileSet,
        source_maps: SourceMapIndex,
        ranker: Optional[CandidateFileRanker] = None,
        locator: Optional[InFilePositionLocator] = None,
    ):
        """Initialize coordinator.

        Args:
            workspace: Workspace file set
            source_maps: Shared source map index
            ranker: Candidate file ranker
            locator: In-file position locator
        """
        self.workspace = workspace
        self.source_maps = source_maps
        self.ranker = ranker or CandidateFileRanker()
        self.locator = locator or InFilePositionLocator()

    def resolve(self, descriptor: ElementDescriptor) -> ResolutionOutcome:
        """Resolve a descriptor.

        Args:
            descriptor: Element descriptor

        Returns:
            ResolvedLocation (SourceMap or Fallback) or ResolutionFailure
        """
        if not self.workspace.is_available:
            error = WorkspaceMissing(str(self.workspace.root) if self.workspace.root else None)
            logger.error(str(error))
            return ResolutionFailure(FailureKind.WORKSPACE_MISSING, str(error))

        location = self._resolve_by_source_map(descriptor)
        if location is not None:
            return location
        return self._resolve_by_heuristics(descriptor)

    def _resolve_by_source_map(self, descriptor: ElementDescriptor) -> Optional[ResolvedLocation]:
        try:
            original = self.source_maps.find_original_position(descriptor)
            if original is None:
                return None
            file_path = self.source_maps.resolve_source_path(original.source)
        except IndexNotInitialized:
            logger.warning("Source map index not initialized, using heuristic search")
            return None

        if file_path is None or not file_path.is_file():
            logger.info(f"Source map hit {original.source} is not a workspace file, falling back")
            return None

        line = max(original.line - 1, 0)
        column = max(original.column - 1, 0)
        map_name = Path(original.source_map).name if original.source_map else "source map"
        logger.info(f"Resolved <{descriptor.tag_name}> via {map_name} to {file_path}:{line + 1}")
        return ResolvedLocation(
            file_path=str(file_path),
            line=line,
            column=column,
            accuracy=Accuracy.SOURCE_MAP,
            confidence_note=f"Found via source map {map_name} (high confidence)",
        )

    def _resolve_by_heuristics(self, descriptor: ElementDescriptor) -> ResolutionOutcome:
        try:
            files = self.workspace.list_files()
        except WorkspaceMissing as e:
            return ResolutionFailure(FailureKind.WORKSPACE_MISSING, str(e))

        best = self.ranker.rank(self.workspace, files, descriptor)
        if best is None:
            message = f"Could not find a workspace file matching <{descriptor.tag_name}>"
            logger.info(message)
            return ResolutionFailure(FailureKind.NO_MATCH, message)

        try:
            text = self.workspace.read_text(best.path)
        except FileUnreadable as e:
            logger.error(str(e))
            return ResolutionFailure(FailureKind.FILE_UNREADABLE, str(e))

        position = self.locator.locate(text, descriptor)
        if position is None:
            logger.info(f"File {best.path.name} matched but element position is unknown")
            return ResolvedLocation(
                file_path=str(best.path),
                line=0,
                column=0,
                accuracy=Accuracy.FALLBACK,
                confidence_note=(
                    f"File matched (score {best.score}) but the element position could not be located"
                ),
                position_known=False,
            )

        logger.info(
            f"Resolved <{descriptor.tag_name}> via fallback to {best.path}:{position.line + 1}"
        )
        return ResolvedLocation(
            file_path=str(best.path),
            line=position.line,
            column=position.column,
            accuracy=Accuracy.FALLBACK,
            confidence_note=f"Matched by {position.strategy} (file score {best.score})",
        )
