from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from find_code.resolver.coordinator import ResolutionCoordinator
from find_code.resolver.ranker import CandidateFileRanker
from find_code.resolver.source_map_index import SourceMapIndex
from find_code.resolver.workspace import WorkspaceFileSet

B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

Segment = Tuple[int, int, int, int]  # generated column, source index, original line, original column (0-based)


def encode_vlq(value: int) -> str:
    vlq = (value << 1) if value >= 0 else ((-value) << 1) | 1
    out = ""
    while True:
        digit = vlq & 31
        vlq >>= 5
        if vlq:
            digit |= 32
        out += B64[digit]
        if not vlq:
            return out


def encode_mappings(segments_by_line: Dict[int, Sequence[Segment]], line_count: Optional[int] = None) -> str:
    """Encode absolute 0-based segments into a v3 ``mappings`` string."""
    total = line_count if line_count is not None else (max(segments_by_line) + 1 if segments_by_line else 0)
    prev_source = prev_line = prev_column = 0
    lines: List[str] = []
    for line in range(total):
        prev_generated = 0
        parts = []
        for generated, source, original_line, original_column in sorted(segments_by_line.get(line, [])):
            parts.append(
                encode_vlq(generated - prev_generated)
                + encode_vlq(source - prev_source)
                + encode_vlq(original_line - prev_line)
                + encode_vlq(original_column - prev_column)
            )
            prev_generated, prev_source, prev_line, prev_column = generated, source, original_line, original_column
        lines.append(",".join(parts))
    return ";".join(lines)


def source_map_payload(sources: List[str], segments: Dict[int, Sequence[Segment]], **extra) -> dict:
    payload = {"version": 3, "sources": sources, "names": [], "mappings": encode_mappings(segments)}
    payload.update(extra)
    return payload


@pytest.fixture
def make_workspace(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    root = tmp_path / "workspace"
    root.mkdir()

    def _make(files: Dict[str, str]) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root.resolve()

    return _make


@pytest.fixture
def write_map() -> Callable[..., Path]:
    def _write(root: Path, rel: str, sources: List[str], segments: Dict[int, Sequence[Segment]], **extra) -> Path:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(source_map_payload(sources, segments, **extra)), encoding="utf-8")
        return path

    return _write


def build_coordinator(root: Path) -> ResolutionCoordinator:
    workspace = WorkspaceFileSet(str(root))
    index = SourceMapIndex()
    if workspace.is_available:
        index.initialize(str(root))
    return ResolutionCoordinator(workspace, index, CandidateFileRanker(max_workers=4))
