"""FastMCP server resolving clicked web page elements to source locations."""

import asyncio
import json
import logging
import os
from typing import Dict, Optional, Set

from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .gateway import ElementGateway
from .resolver.coordinator import ResolutionCoordinator
from .resolver.file_types import DEFAULT_EXCLUDE_DIRS, FileTypeRegistry
from .resolver.file_watcher import WorkspaceWatcher
from .resolver.locator import InFilePositionLocator
from .resolver.ranker import CandidateFileRanker, ScoringWeights
from .resolver.source_map_index import SourceMapIndex
from .resolver.workspace import WorkspaceFileSet
from .tools.resolve_tool import ResolveTool

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Initialize FastMCP server
mcp = FastMCP("find-code")

# Global components (initialized on startup, replaced wholesale, disposed on shutdown)
workspace: Optional[WorkspaceFileSet] = None
source_map_index: Optional[SourceMapIndex] = None
coordinator: Optional[ResolutionCoordinator] = None
resolve_tool: Optional[ResolveTool] = None
file_watcher: Optional[WorkspaceWatcher] = None
gateway: Optional[ElementGateway] = None


def setup_logging(log_level: str, log_file: Optional[str]) -> None:
    """Configure root logger with console and file handlers."""
    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler (stderr; stdout carries the MCP stdio transport)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # File handler (for detailed logs)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def _parse_weights(raw: Optional[str]) -> Dict[str, int]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"SCORE_WEIGHTS is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ValueError("SCORE_WEIGHTS must be a JSON object")
    return value


def get_env_config():
    """Get configuration from environment variables."""
    exclude_dirs = os.getenv("EXCLUDE_DIRS")
    return {
        "workspace_path": os.getenv("WORKSPACE_PATH", "/workspace"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_file": os.getenv("LOG_FILE", "/tmp/find-code.log"),
        "gateway_host": os.getenv("GATEWAY_HOST", "127.0.0.1"),
        "gateway_port": int(os.getenv("GATEWAY_PORT", "3000")),
        "enable_gateway": os.getenv("ENABLE_GATEWAY", "true").lower() == "true",
        "mcp_transport": os.getenv("MCP_TRANSPORT", "stdio"),
        "enable_watcher": os.getenv("ENABLE_FILE_WATCHER", "true").lower() == "true",
        "watcher_debounce": float(os.getenv("WATCHER_DEBOUNCE_SECONDS", "2.0")),
        "max_scan_workers": int(os.getenv("MAX_SCAN_WORKERS", "8")),
        "text_content_limit": int(os.getenv("TEXT_CONTENT_LIMIT", "100")),
        "exclude_dirs": (
            [d.strip() for d in exclude_dirs.split(",") if d.strip()]
            if exclude_dirs is not None
            else sorted(DEFAULT_EXCLUDE_DIRS)
        ),
        "score_weights": _parse_weights(os.getenv("SCORE_WEIGHTS")),
    }


async def handle_map_changes(modified_files: Set[str], deleted_files: Set[str]) -> None:
    """Re-initialize the source map index after the watcher saw map changes.

    Args:
        modified_files: Set of modified/created map paths
        deleted_files: Set of deleted map paths
    """
    if source_map_index is None or workspace is None or workspace.root is None:
        logger.warning("Components not initialized, skipping map change handling")
        return

    logger.info(
        f"File watcher detected map changes: {len(modified_files)} modified, "
        f"{len(deleted_files)} deleted"
    )
    # Rebuild off the event loop; readers keep using the old snapshot until the swap
    count = await asyncio.to_thread(source_map_index.initialize, str(workspace.root))
    logger.info(f"Source map index refreshed: {count} maps")


def initialize_components(config: Optional[dict] = None) -> None:
    """Initialize all components on startup."""
    global workspace, source_map_index, coordinator, resolve_tool, file_watcher, gateway

    config = config or get_env_config()
    logger.info("Initializing Find Code...")

    registry = FileTypeRegistry(exclude_dirs=config["exclude_dirs"])
    workspace = WorkspaceFileSet(config["workspace_path"], registry=registry)
    source_map_index = SourceMapIndex(registry=registry)

    if workspace.is_available:
        logger.info(f"Indexing source maps under {workspace.root}")
        source_map_index.initialize(str(workspace.root))
    else:
        logger.warning(
            f"Workspace path does not exist: {config['workspace_path']}. "
            "Resolutions will report WorkspaceMissing."
        )

    ranker = CandidateFileRanker(
        weights=ScoringWeights.from_overrides(config["score_weights"]),
        max_workers=config["max_scan_workers"],
    )
    coordinator = ResolutionCoordinator(workspace, source_map_index, ranker, InFilePositionLocator())
    resolve_tool = ResolveTool(coordinator, text_limit=config["text_content_limit"])

    if config["enable_watcher"] and workspace.is_available:
        logger.info(
            f"Initializing file watcher for {workspace.root} "
            f"(debounce: {config['watcher_debounce']}s)"
        )
        file_watcher = WorkspaceWatcher(
            watch_path=str(workspace.root),
            on_change_callback=handle_map_changes,
            debounce_seconds=config["watcher_debounce"],
            registry=registry,
        )
    else:
        logger.info("File watcher disabled or workspace missing")

    if config["enable_gateway"]:
        gateway = ElementGateway(
            resolve_tool, host=config["gateway_host"], port=config["gateway_port"]
        )

    logger.info("All components initialized successfully!")


def shutdown_components() -> None:
    """Stop the gateway and watcher and dispose the source map index."""
    global file_watcher, gateway

    if gateway is not None:
        gateway.stop()
        gateway = None
    if file_watcher is not None:
        file_watcher.stop()
        file_watcher = None
    if source_map_index is not None:
        source_map_index.dispose()


@mcp.custom_route("/find-element", methods=["POST"])
async def find_element_route(request: Request) -> JSONResponse:
    """HTTP fallback for browsers that cannot reach the WebSocket gateway."""
    if resolve_tool is None:
        return JSONResponse({"success": False, "error": "Server not initialized"}, status_code=503)

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            {"success": False, "error": {"kind": "InvalidDescriptor", "message": "Body is not JSON"}},
            status_code=400,
        )

    result = await asyncio.to_thread(resolve_tool.resolve, payload)
    if result["success"]:
        return JSONResponse(result)
    kind = result["error"]["kind"]
    status = {"InvalidDescriptor": 400, "NoMatch": 404}.get(kind, 500)
    return JSONResponse(result, status_code=status)


@mcp.tool()
async def resolve_element(
    tag_name: str,
    id: Optional[str] = None,
    class_name: Optional[str] = None,
    text_content: str = "",
    attributes: Optional[Dict[str, str]] = None,
    source_file_hint: Optional[str] = None,
    generated_line: Optional[int] = None,
    generated_column: Optional[int] = None,
) -> dict:
    """Resolve a clicked DOM element to the source file, line and column that produced it.

    Args:
        tag_name: Element tag name (e.g., "button")
        id: Element id attribute
        class_name: Space-separated class list
        text_content: Element text (only a bounded prefix is used)
        attributes: Element attributes
        source_file_hint: Generated file name the element came from (e.g., "app.js")
        generated_line: 1-based line in the generated file, when known
        generated_column: 1-based column in the generated file, when known

    Returns:
        Dictionary with the resolved location (0-based line/column) or a failure kind
    """
    if not resolve_tool:
        return {"success": False, "error": "Server not initialized"}

    payload = {
        "tagName": tag_name,
        "id": id,
        "className": class_name,
        "textContent": text_content,
        "attributes": attributes or {},
        "sourceFileHint": source_file_hint,
        "generatedLine": generated_line,
        "generatedColumn": generated_column,
    }
    return await asyncio.to_thread(resolve_tool.resolve, payload)


@mcp.tool()
def get_index_status() -> dict:
    """Get statistics about the source map index.

    Returns:
        Dictionary with indexed map count, declared sources and parse failures
    """
    if not resolve_tool:
        return {"success": False, "error": "Server not initialized"}

    return {"success": True, "index": resolve_tool.get_stats()}


@mcp.tool()
async def reinitialize_index() -> dict:
    """Rebuild the source map index from disk (e.g., after a build).

    Returns:
        Dictionary with the rebuilt index statistics
    """
    if not resolve_tool:
        return {"success": False, "error": "Server not initialized"}

    return await asyncio.to_thread(resolve_tool.reinitialize)


@mcp.tool()
def get_watcher_status() -> dict:
    """Get status of the workspace file watcher.

    Returns:
        Dictionary with watcher status
    """
    if file_watcher is None:
        config = get_env_config()
        return {
            "success": True,
            "enabled": False,
            "running": False,
            "watcher_enabled_in_config": config["enable_watcher"],
            "workspace_path": config["workspace_path"],
        }

    handler = file_watcher.event_handler
    return {
        "success": True,
        "enabled": True,
        "running": file_watcher.is_running(),
        "watch_path": str(file_watcher.watch_path),
        "debounce_seconds": file_watcher.debounce_seconds,
        "pending_changes": {
            "modified_maps": len(handler.modified_files),
            "deleted_maps": len(handler.deleted_files),
        },
    }


@mcp.tool()
def get_gateway_status() -> dict:
    """Get status of the WebSocket gateway used by the browser extension.

    Returns:
        Dictionary with gateway host, port, connection count and resolutions served
    """
    if gateway is None:
        return {"success": True, "enabled": False, "running": False}

    return {"success": True, "enabled": True, **gateway.status()}


@mcp.tool()
def health_check() -> dict:
    """Check health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    return {
        "success": True,
        "components": {
            "server": True,
            "workspace": bool(workspace and workspace.is_available),
            "source_map_index": bool(source_map_index and source_map_index.is_initialized),
            "gateway": bool(gateway and gateway.is_running()),
            "watcher": bool(file_watcher and file_watcher.is_running()),
        },
    }


def run_watcher_debounce_in_thread() -> None:
    """Run the file watcher's async debounce processor in a separate thread."""
    if file_watcher is None or not file_watcher.is_running():
        return
    try:
        logger.info("Starting file watcher debounce processor in background thread...")
        asyncio.run(file_watcher.start_debounce_processor())
    except Exception as e:
        logger.error(f"File watcher debounce processor error: {e}")


def main() -> None:
    import atexit
    import threading

    config = get_env_config()
    setup_logging(config["log_level"], config["log_file"])
    logger.info("Starting Find Code MCP Server...")

    initialize_components(config)

    if file_watcher is not None:
        file_watcher.start()
        threading.Thread(
            target=run_watcher_debounce_in_thread, daemon=True, name="FileWatcherDebounce"
        ).start()
        logger.info("File watcher fully initialized and running")

    if gateway is not None and not gateway.start():
        logger.warning("WebSocket gateway is not listening; HTTP fallback only")

    # Register cleanup handler
    atexit.register(shutdown_components)

    logger.info(f"Server ready! (transport: {config['mcp_transport']})")

    # Run the MCP server (blocks until shutdown)
    try:
        mcp.run(transport=config["mcp_transport"])
    except KeyboardInterrupt:
        logger.info("Server interrupted")


if __name__ == "__main__":
    main()
