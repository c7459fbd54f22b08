"""Finds the line/column of an element inside one file's text.

Matching is an ordered chain of pure strategies ``(lines, descriptor) ->
position``. Each strategy scans top to bottom and returns the first hit; the
first strategy with a hit wins.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .models import ElementDescriptor

logger = logging.getLogger(__name__)

TAG_TEXT_PREFIX = 50


@dataclass(frozen=True)
class Position:
    """0-based position found inside a file."""

    line: int
    column: int
    strategy: str


Strategy = Callable[[Sequence[str], ElementDescriptor], Optional[Position]]


def _first_line_with(
    lines: Sequence[str], needles: Tuple[str, ...], strategy: str
) -> Optional[Position]:
    for index, line in enumerate(lines):
        for needle in needles:
            column = line.find(needle)
            if column >= 0:
                return Position(index, column, strategy)
    return None


def find_by_id(lines: Sequence[str], descriptor: ElementDescriptor) -> Optional[Position]:
    if not descriptor.id:
        return None
    return _first_line_with(lines, (f'id="{descriptor.id}"', f"id='{descriptor.id}'"), "id")


def find_by_class(lines: Sequence[str], descriptor: ElementDescriptor) -> Optional[Position]:
    # Token order decides priority, not line order
    for token in descriptor.class_tokens:
        position = _first_line_with(lines, (f'class="{token}"', f"class='{token}'"), "class")
        if position:
            return position
    return None


def find_by_tag_and_text(lines: Sequence[str], descriptor: ElementDescriptor) -> Optional[Position]:
    search_text = descriptor.trimmed_text[:TAG_TEXT_PREFIX]
    if not search_text:
        return None
    tag = f"<{descriptor.tag_name}"
    for index, line in enumerate(lines):
        if tag in line and search_text in line:
            return Position(index, line.index(tag), "tag+text")
    return None


def find_by_tag(lines: Sequence[str], descriptor: ElementDescriptor) -> Optional[Position]:
    return _first_line_with(lines, (f"<{descriptor.tag_name}",), "tag")


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    find_by_id,
    find_by_class,
    find_by_tag_and_text,
    find_by_tag,
)


class InFilePositionLocator:
    """Runs the strategy chain against a file's text."""

    def __init__(self, strategies: Optional[Sequence[Strategy]] = None):
        self.strategies: List[Strategy] = list(strategies or DEFAULT_STRATEGIES)

    def locate_lines(self, lines: Sequence[str], descriptor: ElementDescriptor) -> Optional[Position]:
        for strategy in self.strategies:
            position = strategy(lines, descriptor)
            if position is not None:
                return position
        return None

    def locate(self, text: str, descriptor: ElementDescriptor) -> Optional[Position]:
        """Find the best-guess position of an element in a file.

        Args:
            text: Full file text
            descriptor: Element descriptor

        Returns:
            0-based position or None if no strategy matched
        """
        position = self.locate_lines(text.split("\n"), descriptor)
        if position:
            logger.debug(f"Located <{descriptor.tag_name}> by {position.strategy} at {position.line}:{position.column}")
        return position
