"""Textual ranking of workspace files as candidates for a clicked element."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import FileUnreadable
from .models import ElementDescriptor
from .workspace import WorkspaceFileSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Additive evidence weights. Ad hoc values kept as configuration."""

    tag: int = 10
    class_name: int = 8
    element_id: int = 15
    text: int = 5
    html_bonus: int = 3
    jsx_tsx_bonus: int = 2

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]]) -> "ScoringWeights":
        """Build weights from a partial mapping of field name -> int."""
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown scoring weights: {sorted(unknown)}")
        return cls(**{name: int(value) for name, value in overrides.items()})


@dataclass(frozen=True)
class RankedFile:
    """Winning candidate of a ranking pass."""

    path: Path
    score: int


class CandidateFileRanker:
    """Scores every workspace file and picks the most likely source file."""

    def __init__(self, weights: Optional[ScoringWeights] = None, max_workers: int = 8):
        """Initialize ranker.

        Args:
            weights: Scoring weights (defaults to ScoringWeights())
            max_workers: Thread workers used to read files in parallel
        """
        self.weights = weights or ScoringWeights()
        self.max_workers = max(1, max_workers)

    def score_text(self, file_path: Path, content: str, descriptor: ElementDescriptor) -> int:
        """Score one file's contents against a descriptor.

        The extension bonus only applies once at least one content match was
        found, so a file with no tag/class/id/text evidence always scores 0.

        Args:
            file_path: Path of the file (for the extension bonus)
            content: Full file text
            descriptor: Element descriptor

        Returns:
            Additive score
        """
        w = self.weights
        score = 0

        if f"<{descriptor.tag_name}" in content:
            score += w.tag
        if descriptor.class_name and descriptor.class_name in content:
            score += w.class_name
        if descriptor.id and descriptor.id in content:
            score += w.element_id
        if descriptor.trimmed_text and descriptor.trimmed_text in content:
            score += w.text

        if score == 0:
            return 0

        suffix = file_path.suffix.lower()
        if suffix == ".html":
            score += w.html_bonus
        elif suffix in (".jsx", ".tsx"):
            score += w.jsx_tsx_bonus
        return score

    def score(
        self, workspace: WorkspaceFileSet, file_path: Path, descriptor: ElementDescriptor
    ) -> int:
        """Read and score a single file.

        Raises:
            FileUnreadable: If the file cannot be read
        """
        return self.score_text(file_path, workspace.read_text(file_path), descriptor)

    def _safe_score(
        self, workspace: WorkspaceFileSet, file_path: Path, descriptor: ElementDescriptor
    ) -> Optional[int]:
        try:
            return self.score(workspace, file_path, descriptor)
        except FileUnreadable as e:
            logger.warning(f"{e}; excluded from ranking")
            return None

    def score_all(
        self,
        workspace: WorkspaceFileSet,
        files: Sequence[Path],
        descriptor: ElementDescriptor,
    ) -> List[Tuple[Path, Optional[int]]]:
        """Score files in parallel, returning results in the input order.

        Unreadable files are reported with a None score.
        """
        if not files:
            return []
        workers = min(self.max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="find-code-rank") as pool:
            scores = list(pool.map(lambda f: self._safe_score(workspace, f, descriptor), files))
        return list(zip(files, scores))

    def rank(
        self,
        workspace: WorkspaceFileSet,
        files: Sequence[Path],
        descriptor: ElementDescriptor,
    ) -> Optional[RankedFile]:
        """Pick the best candidate file.

        Keeps a strict running maximum over the enumeration order, so ties go
        to the earliest file regardless of read completion order.

        Args:
            workspace: Workspace file set used for reads
            files: Candidate files in enumeration order
            descriptor: Element descriptor

        Returns:
            Best file and its score, or None when no file has any evidence
        """
        best: Optional[RankedFile] = None
        unreadable = 0

        for file_path, score in self.score_all(workspace, files, descriptor):
            if score is None:
                unreadable += 1
                continue
            if score > (best.score if best else 0):
                best = RankedFile(file_path, score)

        logger.info(
            f"Ranked {len(files)} files ({unreadable} unreadable): "
            + (f"best {best.path.name} with score {best.score}" if best else "no evidence")
        )
        return best
