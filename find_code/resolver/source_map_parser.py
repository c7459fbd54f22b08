"""Source Map v3 loading and generated -> original position lookup.

Mappings are decoded by the ``sourcemap`` library; this module adds the
pieces it leaves to the caller: ``sourceRoot`` joining, indexed maps
(``sections``) and same-line greatest-lower-bound lookup in 1-based
coordinates.
"""

import bisect
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import sourcemap
from sourcemap.exceptions import SourceMapDecodeError

from .errors import MapParseError
from .models import OriginalPosition

logger = logging.getLogger(__name__)

XSSI_PREFIX = ")]}'"


@dataclass(frozen=True)
class MappingSegment:
    """One decoded mapping, all positions 0-based."""

    generated_column: int
    source: Optional[str] = None
    original_line: int = 0
    original_column: int = 0
    name: Optional[str] = None


@dataclass
class SourceMapRecord:
    """A parsed source map: per-line mapping table plus declared original sources."""

    map_path: str
    sources: List[str]
    lines: Dict[int, List[MappingSegment]] = field(default_factory=dict)
    _columns: Dict[int, List[int]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self._columns = {
            line: [s.generated_column for s in segments] for line, segments in self.lines.items()
        }

    @property
    def segment_count(self) -> int:
        return sum(len(segments) for segments in self.lines.values())

    def original_position_for(self, line: int, column: int) -> Optional[OriginalPosition]:
        """Look up the original position for a generated position.

        Uses greatest-lower-bound matching: the segment on the same generated
        line with the greatest column not exceeding the queried column.

        Args:
            line: Generated line (1-based)
            column: Generated column (1-based)

        Returns:
            Original position (1-based) or None if the position is unmapped
        """
        segments = self.lines.get(line - 1)
        if not segments:
            return None

        position = bisect.bisect_right(self._columns[line - 1], max(column - 1, 0)) - 1
        if position < 0:
            return None

        segment = segments[position]
        if segment.source is None:
            return None

        return OriginalPosition(
            source=segment.source,
            line=segment.original_line + 1,
            column=segment.original_column + 1,
            name=segment.name,
            source_map=self.map_path,
        )


def _join_source_root(source_root: Optional[str], source: Optional[str]) -> str:
    source = source or ""
    if not source_root or "://" in source or source.startswith("/"):
        return source
    return f"{source_root.rstrip('/')}/{source}"


def _decode(payload: Dict[str, Any]) -> Tuple[List[str], List[Tuple[int, MappingSegment]]]:
    """Decode a regular or indexed map into ``(generated_line, segment)`` pairs."""
    if "sections" in payload:
        sources: List[str] = []
        segments: List[Tuple[int, MappingSegment]] = []
        for section in payload["sections"]:
            offset = section["offset"]
            line_offset, column_offset = int(offset["line"]), int(offset["column"])
            sub_sources, sub_segments = _decode(section["map"])
            sources.extend(sub_sources)
            for line, segment in sub_segments:
                if line == 0:
                    segment = dataclasses.replace(
                        segment, generated_column=segment.generated_column + column_offset
                    )
                segments.append((line + line_offset, segment))
        return sources, segments

    if payload.get("version") != 3:
        raise ValueError(f"unsupported source map version {payload.get('version')!r}")

    mappings = payload.get("mappings", "")
    if not isinstance(mappings, str):
        raise ValueError("'mappings' must be a string")

    sources = [_join_source_root(payload.get("sourceRoot"), s) for s in payload.get("sources", [])]
    index = sourcemap.loads(
        json.dumps(
            {
                "version": 3,
                "sources": sources,
                "names": list(payload.get("names") or []),
                "mappings": mappings,
            }
        )
    )
    return sources, [
        (
            token.dst_line,
            MappingSegment(token.dst_col, token.src, token.src_line, token.src_col, token.name),
        )
        for token in index.tokens
    ]


def _line_table(segments: List[Tuple[int, MappingSegment]]) -> Dict[int, List[MappingSegment]]:
    """Group segments by generated line, sorted by column, first segment per column kept."""
    grouped: Dict[int, List[MappingSegment]] = {}
    for line, segment in segments:
        grouped.setdefault(line, []).append(segment)

    table: Dict[int, List[MappingSegment]] = {}
    for line, line_segments in grouped.items():
        line_segments.sort(key=lambda s: s.generated_column)
        kept: List[MappingSegment] = []
        for segment in line_segments:
            if not kept or kept[-1].generated_column != segment.generated_column:
                kept.append(segment)
        table[line] = kept
    return table


def parse_source_map(content: str, map_path: str) -> SourceMapRecord:
    """Parse source map text into a record.

    Args:
        content: Raw ``.map`` file contents
        map_path: Path of the artifact (used for reporting)

    Returns:
        Parsed source map record

    Raises:
        MapParseError: If the content is not a valid v3 source map
    """
    if content.startswith(XSSI_PREFIX):
        content = content.split("\n", 1)[1] if "\n" in content else ""

    try:
        payload = json.loads(content)
        if not isinstance(payload, dict):
            raise ValueError("top-level JSON value is not an object")
        sources, segments = _decode(payload)
    except SourceMapDecodeError as e:
        raise MapParseError(map_path, str(e)) from e
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise MapParseError(map_path, str(e) or type(e).__name__) from e

    record = SourceMapRecord(map_path=map_path, sources=sources, lines=_line_table(segments))
    logger.debug(
        f"Parsed source map {map_path}: {len(sources)} sources, {record.segment_count} segments"
    )
    return record
