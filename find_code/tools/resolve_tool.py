"""Tool facade turning inbound descriptor payloads into outcome dictionaries."""

import logging
from typing import Any, Dict

from ..resolver.coordinator import ResolutionCoordinator
from ..resolver.errors import InvalidDescriptor, WorkspaceMissing
from ..resolver.models import DEFAULT_TEXT_LIMIT, ElementDescriptor, ResolvedLocation

logger = logging.getLogger(__name__)


class ResolveTool:
    """Tool for resolving clicked elements to source locations."""

    def __init__(self, coordinator: ResolutionCoordinator, text_limit: int = DEFAULT_TEXT_LIMIT):
        """Initialize resolve tool.

        Args:
            coordinator: Resolution coordinator
            text_limit: textContent prefix bound applied to inbound descriptors
        """
        self.coordinator = coordinator
        self.text_limit = text_limit

    def resolve(self, payload: Dict[str, Any]) -> dict:
        """Resolve an element descriptor payload.

        Args:
            payload: Descriptor in its inbound JSON shape (camelCase keys)

        Returns:
            ``{"success": True, "location": {...}}`` on resolution,
            ``{"success": False, "error": {"kind": ..., "message": ...}}`` otherwise
        """
        try:
            descriptor = ElementDescriptor.from_message(payload, text_limit=self.text_limit)
        except InvalidDescriptor as e:
            logger.warning(f"Rejected element descriptor: {e}")
            return {"success": False, "error": {"kind": "InvalidDescriptor", "message": str(e)}}

        logger.info(
            f"Resolving <{descriptor.tag_name}>"
            + (f" id={descriptor.id}" if descriptor.id else "")
            + (f" class={descriptor.class_name}" if descriptor.class_name else "")
        )
        outcome = self.coordinator.resolve(descriptor)

        if isinstance(outcome, ResolvedLocation):
            return {"success": True, "location": outcome.to_dict()}
        return {"success": False, "error": outcome.to_dict()}

    def reinitialize(self) -> dict:
        """Rebuild the source map index for the current workspace.

        Returns:
            Dictionary with the new index statistics
        """
        root = self.coordinator.workspace.root
        try:
            if root is None:
                raise WorkspaceMissing()
            count = self.coordinator.source_maps.initialize(str(root))
        except WorkspaceMissing as e:
            logger.error(f"Error re-initializing source maps: {e}")
            return {"success": False, "error": {"kind": "WorkspaceMissing", "message": str(e)}}

        return {"success": True, "source_maps": count, "index": self.get_stats()}

    def get_stats(self) -> dict:
        """Get source map index statistics."""
        return self.coordinator.source_maps.get_stats()
