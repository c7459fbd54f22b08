"""WebSocket gateway receiving element descriptors from the browser extension."""

import asyncio
import json
import logging
import threading
import time
from typing import Any, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from .tools.resolve_tool import ResolveTool

logger = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 1_000_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _error(message: str, detail: Optional[str] = None) -> dict:
    reply = {"type": "ERROR", "message": message}
    if detail:
        reply["error"] = detail
    return reply


class ElementGateway:
    """Serves the FIND_ELEMENT / PING protocol on a local WebSocket port.

    The server runs in a dedicated thread with its own event loop. Each
    resolution is offloaded to a worker thread so one slow workspace scan never
    blocks other connections.
    """

    def __init__(self, resolve_tool: ResolveTool, host: str = "127.0.0.1", port: int = 3000):
        """Initialize gateway.

        Args:
            resolve_tool: Tool used to resolve inbound descriptors
            host: Bind host
            port: Bind port (0 picks a free port)
        """
        self.resolve_tool = resolve_tool
        self.host = host
        self.port = port

        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._connections: Set[Any] = set()
        self._listening = False
        self._bind_error: Optional[str] = None
        self._resolutions = 0

    def start(self, timeout: float = 5.0) -> bool:
        """Start the gateway thread and wait until it is listening.

        Returns:
            True if the server is listening
        """
        if self._thread is not None and self._thread.is_alive():
            return self._listening

        self._ready.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="FindCodeGateway")
        self._thread.start()
        self._ready.wait(timeout)
        return self._listening

    def stop(self, timeout: float = 5.0) -> None:
        """Close all connections and stop the server."""
        loop, stop_event = self._loop, self._stop_event
        if loop is not None and stop_event is not None and not loop.is_closed():
            loop.call_soon_threadsafe(stop_event.set)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Find Code WebSocket gateway stopped")

    def is_running(self) -> bool:
        return self._listening

    def status(self) -> dict:
        with self._lock:
            return {
                "running": self._listening,
                "host": self.host,
                "port": self.port,
                "connections": len(self._connections),
                "resolutions": self._resolutions,
                "bind_error": self._bind_error,
            }

    def _run(self) -> None:
        try:
            asyncio.run(self._serve())
        except Exception as e:
            logger.error(f"Gateway loop failed: {e}")
        finally:
            self._listening = False
            self._ready.set()

    async def _serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        try:
            server = await websockets.serve(
                self._handler, self.host, self.port, max_size=MAX_MESSAGE_BYTES
            )
        except OSError as e:
            with self._lock:
                self._bind_error = str(e)
            logger.error(f"Failed to start Find Code gateway on {self.host}:{self.port}: {e}")
            return

        sockets = getattr(server, "sockets", None) or []
        if sockets:
            self.port = int(sockets[0].getsockname()[1])
        self._listening = True
        self._bind_error = None
        logger.info(f"Find Code WebSocket gateway started on {self.host}:{self.port}")
        self._ready.set()

        try:
            await self._stop_event.wait()
        finally:
            self._listening = False
            server.close()
            await server.wait_closed()

    async def _handler(self, websocket) -> None:
        with self._lock:
            self._connections.add(websocket)
        logger.info("New WebSocket connection established")

        try:
            await websocket.send(
                json.dumps(
                    {
                        "type": "CONNECTION_ESTABLISHED",
                        "message": "Connected to Find Code",
                    }
                )
            )
            async for raw in websocket:
                reply = await self.handle_message(raw)
                await websocket.send(json.dumps(reply))
        except ConnectionClosed:
            logger.debug("WebSocket connection closed by peer")
        finally:
            with self._lock:
                self._connections.discard(websocket)
            logger.info("WebSocket connection closed")

    async def handle_message(self, raw: Any) -> dict:
        """Handle one inbound protocol message.

        Args:
            raw: Text or bytes frame

        Returns:
            Reply message
        """
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            return _error("Failed to process message", str(e))
        if not isinstance(message, dict):
            return _error("Failed to process message", "message must be a JSON object")

        message_type = message.get("type")
        if message_type == "PING":
            return {"type": "PONG", "timestamp": _now_ms()}
        if message_type != "FIND_ELEMENT":
            return _error(f"Unknown message type: {message_type!r}")

        try:
            result = await asyncio.to_thread(self.resolve_tool.resolve, message.get("data"))
        except Exception as e:
            logger.exception("Error handling find element")
            return _error("Failed to process message", str(e))

        with self._lock:
            self._resolutions += 1

        if result["success"]:
            return {"type": "ELEMENT_RESOLVED", "location": result["location"]}
        if result["error"]["kind"] == "InvalidDescriptor":
            return _error("Invalid element descriptor", result["error"]["message"])
        return {"type": "ELEMENT_NOT_FOUND", "error": result["error"]}
