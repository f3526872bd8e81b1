"""
MCP (Model Context Protocol) server for toolhost.

Protocol: JSON-RPC 2.0 over stdio (one JSON object per line).

Tool calls run as independent asyncio tasks so the read loop keeps consuming
client messages while a handler waits, in particular the client's answer to a
server-initiated ``elicitation/create`` request.

Usage
-----
Run directly:
    python -m toolhost.server

Or via the CLI:
    toolhost serve

Client mcp.json entry
---------------------
{
  "mcpServers": {
    "toolhost": {
      "command": "toolhost",
      "args": ["serve"],
      "env": {}
    }
  }
}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable, Mapping
from typing import Any

from . import __version__
from .config import ServerConfig, load_config
from .dispatcher import ToolDispatcher
from .elicitation import InvocationContext
from .errors import ElicitationFailed
from .tools import build_registry

log = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
_DEFAULT_PROTOCOL_VERSION = "2025-06-18"


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------

def _ok(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _write(obj: dict) -> None:
    sys.stdout.write(json.dumps(obj) + "\n")
    sys.stdout.flush()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class McpServer:
    def __init__(
        self,
        dispatcher: ToolDispatcher,
        *,
        write: Callable[[dict], None] = _write,
        name: str = "toolhost",
    ) -> None:
        self.dispatcher = dispatcher
        self.name = name
        self._write = write
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._next_request = 1
        self._closed = False
        self.client_supports_elicitation = False

    async def handle(self, line: str) -> None:
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            self._write(_err(None, -32700, "Parse error"))
            return
        if not isinstance(msg, dict):
            self._write(_err(None, -32600, "Invalid Request"))
            return

        if "method" not in msg and ("result" in msg or "error" in msg):
            self._resolve_response(msg)
            return

        req_id = msg.get("id")
        method = msg.get("method", "")
        params = msg.get("params") or {}
        if not isinstance(params, dict):
            params = {}

        if method == "initialize":
            client_ver = params.get("protocolVersion", _DEFAULT_PROTOCOL_VERSION)
            agreed_ver = client_ver if client_ver in SUPPORTED_PROTOCOL_VERSIONS else _DEFAULT_PROTOCOL_VERSION
            capabilities = params.get("capabilities") or {}
            self.client_supports_elicitation = isinstance(capabilities.get("elicitation"), dict)
            self._write(_ok(req_id, {
                "protocolVersion": agreed_ver,
                "capabilities": {"tools": {"listChanged": False}},
                "serverInfo": {"name": self.name, "version": __version__},
            }))

        elif method in ("notifications/initialized", "initialized"):
            # Notification, no response
            pass

        elif method == "tools/list":
            self._write(_ok(req_id, {"tools": self.dispatcher.registry.list_tools()}))

        elif method == "tools/call":
            task = asyncio.create_task(
                self._call_tool(req_id, str(params.get("name", "")), params.get("arguments"))
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        elif method == "ping":
            self._write(_ok(req_id, {}))

        else:
            if req_id is not None:
                self._write(_err(req_id, -32601, f"Method not found: {method}"))

    async def _call_tool(self, req_id: Any, name: str, arguments: Any) -> None:
        transport = self.elicit if self.client_supports_elicitation else None
        context = InvocationContext(name, transport=transport)
        try:
            result = await self.dispatcher.invoke(name, arguments, context)
        except asyncio.CancelledError:
            self._write(_err(req_id, -32603, "Tool call cancelled"))
            raise
        self._write(_ok(req_id, result.as_dict()))

    # ------------------------------------------------------------------
    # Server -> client requests
    # ------------------------------------------------------------------

    async def elicit(self, params: dict[str, Any]) -> Mapping[str, Any]:
        if self._closed:
            raise ElicitationFailed("connection closed")
        request_id = f"elicit-{self._next_request}"
        self._next_request += 1
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self._write({"jsonrpc": "2.0", "id": request_id, "method": "elicitation/create", "params": params})
        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    def _resolve_response(self, msg: dict[str, Any]) -> None:
        future = self._pending.get(str(msg.get("id")))
        if future is None or future.done():
            log.warning("ignoring response to unknown request id %r", msg.get("id"))
            return
        if "error" in msg:
            error = msg.get("error") or {}
            message = error.get("message", "client error") if isinstance(error, dict) else str(error)
            future.set_exception(ElicitationFailed(message))
        else:
            future.set_result(msg.get("result"))

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ElicitationFailed("connection closed before the client responded"))
        await self.drain()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _run(server: McpServer) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    try:
        while True:
            try:
                line_bytes = await reader.readline()
            except (ConnectionError, ValueError) as exc:
                log.warning("stdin read failed: %s", exc)
                break
            if not line_bytes:
                break
            line = line_bytes.decode(errors="replace").strip()
            if line:
                await server.handle(line)
    finally:
        await server.close()


def build_server(config: ServerConfig) -> McpServer:
    registry = build_registry(config)
    log.info("serving %d tools", len(registry))
    return McpServer(ToolDispatcher(registry))


def main(config: ServerConfig | None = None) -> None:
    config = config or load_config()
    asyncio.run(_run(build_server(config)))


if __name__ == "__main__":
    main()
