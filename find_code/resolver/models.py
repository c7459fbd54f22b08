"""Data models for element descriptors and resolution outcomes."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidDescriptor

DEFAULT_TEXT_LIMIT = 100


class Accuracy(str, Enum):
    """How a location was derived."""

    SOURCE_MAP = "source-map"
    FALLBACK = "fallback"


class FailureKind(str, Enum):
    """Terminal failure kinds reported to the caller."""

    NO_MATCH = "NoMatch"
    FILE_UNREADABLE = "FileUnreadable"
    WORKSPACE_MISSING = "WorkspaceMissing"


def _optional_str(value: Any, key: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidDescriptor(f"'{key}' must be a string")
    return value or None


def _class_name(value: Any) -> Optional[str]:
    # SVG elements serialize className as an SVGAnimatedString {baseVal, animVal}
    if isinstance(value, dict):
        base = value.get("baseVal")
        return base if isinstance(base, str) and base else None
    return _optional_str(value, "className")


def _optional_int(value: Any, key: str) -> Optional[int]:
    if value is None:
        return None
    # bool is an int subclass; a JSON true is never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDescriptor(f"'{key}' must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidDescriptor(f"'{key}' must be a finite number")
    return int(value)


@dataclass(frozen=True)
class ElementDescriptor:
    """Normalized facts about a clicked DOM element."""

    tag_name: str
    id: Optional[str] = None
    class_name: Optional[str] = None
    text_content: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    source_file_hint: Optional[str] = None  # generated file name, e.g. "app.js"
    generated_line: Optional[int] = None  # 1-based
    generated_column: Optional[int] = None  # 1-based

    @property
    def class_tokens(self) -> List[str]:
        return self.class_name.split() if self.class_name else []

    @property
    def trimmed_text(self) -> str:
        return self.text_content.strip()

    @classmethod
    def from_message(
        cls, data: Dict[str, Any], text_limit: int = DEFAULT_TEXT_LIMIT
    ) -> "ElementDescriptor":
        """Build a descriptor from an inbound JSON payload.

        Accepts the flat camelCase shape as well as the nested ``sourceMap`` /
        ``pageInfo`` objects sent by the browser capture script. Flat fields
        take precedence over ``sourceMap``, which takes precedence over
        ``pageInfo``.

        Args:
            data: Decoded JSON object
            text_limit: Maximum number of textContent characters kept

        Returns:
            Element descriptor

        Raises:
            InvalidDescriptor: If tagName is missing or a field has the wrong type
        """
        if not isinstance(data, dict):
            raise InvalidDescriptor("descriptor must be a JSON object")

        tag_name = data.get("tagName")
        if not isinstance(tag_name, str) or not tag_name.strip():
            raise InvalidDescriptor("'tagName' is required")

        text = data.get("textContent") or ""
        if not isinstance(text, str):
            raise InvalidDescriptor("'textContent' must be a string")

        attributes = data.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise InvalidDescriptor("'attributes' must be an object")

        source_map = data.get("sourceMap") if isinstance(data.get("sourceMap"), dict) else {}
        page_info = data.get("pageInfo") if isinstance(data.get("pageInfo"), dict) else {}

        hint = _optional_str(data.get("sourceFileHint"), "sourceFileHint")
        if hint is None:
            hint = _optional_str(source_map.get("sourceFile"), "sourceMap.sourceFile")
        if hint is None:
            hint = _optional_str(page_info.get("sourceFile"), "pageInfo.sourceFile")

        line = _optional_int(data.get("generatedLine"), "generatedLine")
        if line is None:
            line = _optional_int(source_map.get("line"), "sourceMap.line")
        column = _optional_int(data.get("generatedColumn"), "generatedColumn")
        if column is None:
            column = _optional_int(source_map.get("column"), "sourceMap.column")

        return cls(
            tag_name=tag_name.strip().lower(),
            id=_optional_str(data.get("id"), "id"),
            class_name=_class_name(data.get("className")),
            text_content=text[:text_limit],
            attributes={str(k): str(v) for k, v in attributes.items()},
            source_file_hint=hint,
            generated_line=line,
            generated_column=column,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "id": self.id,
            "className": self.class_name,
            "textContent": self.text_content,
            "attributes": dict(self.attributes),
            "sourceFileHint": self.source_file_hint,
            "generatedLine": self.generated_line,
            "generatedColumn": self.generated_column,
        }


@dataclass(frozen=True)
class OriginalPosition:
    """Original source position answered by a source map (1-based line and column)."""

    source: str
    line: int
    column: int
    name: Optional[str] = None
    source_map: Optional[str] = None  # path of the map that produced the hit


@dataclass(frozen=True)
class ResolvedLocation:
    """Final answer handed to the editor integration (0-based line and column)."""

    file_path: str
    line: int
    column: int
    accuracy: Accuracy
    confidence_note: str
    position_known: bool = True

    def __post_init__(self):
        if self.line < 0 or self.column < 0:
            raise ValueError("resolved line/column must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "accuracy": self.accuracy.value,
            "confidenceNote": self.confidence_note,
            "positionUnknown": not self.position_known,
        }


@dataclass(frozen=True)
class ResolutionFailure:
    """Structured failure signal."""

    kind: FailureKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


ResolutionOutcome = Union[ResolvedLocation, ResolutionFailure]
