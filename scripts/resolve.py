#!/usr/bin/env python3
"""Standalone resolver script - resolves one element descriptor and exits."""

import json
import logging
import os
import sys

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Resolve the descriptor given as a JSON file argument (or on stdin)."""
    # Import here to avoid issues if running from different context
    from find_code.resolver.coordinator import ResolutionCoordinator
    from find_code.resolver.file_types import get_file_type_registry
    from find_code.resolver.ranker import CandidateFileRanker
    from find_code.resolver.source_map_index import SourceMapIndex
    from find_code.resolver.workspace import WorkspaceFileSet
    from find_code.tools.resolve_tool import ResolveTool

    workspace_path = os.getenv("WORKSPACE_PATH", os.getcwd())
    max_workers = int(os.getenv("MAX_SCAN_WORKERS", "8"))

    try:
        if len(sys.argv) > 1:
            with open(sys.argv[1], "r") as f:
                payload = json.load(f)
        else:
            payload = json.load(sys.stdin)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read descriptor: {e}")
        return 1

    logger.info(f"Workspace path: {workspace_path}")

    registry = get_file_type_registry()
    workspace = WorkspaceFileSet(workspace_path, registry=registry)
    index = SourceMapIndex(registry=registry)
    if workspace.is_available:
        index.initialize(str(workspace.root))

    try:
        coordinator = ResolutionCoordinator(
            workspace, index, CandidateFileRanker(max_workers=max_workers)
        )
        result = ResolveTool(coordinator).resolve(payload)
    finally:
        index.dispose()

    print(json.dumps(result, indent=2))
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
