"""Command channel over a localhost socket.

Each connection sends newline-delimited JSON commands such as
{"type": "getStatus"} and gets exactly one JSON line back per command.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Mapping

from core.errors import ContextLostError

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[[Mapping[str, Any]], dict]


def handle_request_line(line: bytes, handler: CommandHandler) -> bytes:
    """Decode one request line, dispatch it and encode the single response."""

    try:
        command = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        response: dict = {"success": False, "error": f"Invalid command: {exc}"}
    else:
        if not isinstance(command, dict):
            response = {"success": False, "error": "Command must be a JSON object"}
        else:
            response = handler(command)
    return json.dumps(response, default=str).encode("utf-8") + b"\n"


class ControlServer:
    """asyncio TCP server bound to localhost."""

    def __init__(self, handler: CommandHandler, host: str = "127.0.0.1", port: int = 8765) -> None:
        self._handler = handler
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._serve, self._host, self._port)
        LOGGER.info("Control channel listening on %s:%s", self._host, self.port)

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                if not line.strip():
                    continue
                writer.write(handle_request_line(line, self._handler))
                await writer.drain()
        except ConnectionError as exc:
            LOGGER.debug("Control client disconnected: %s", exc)
        finally:
            writer.close()


async def send_command(command: Mapping[str, Any], host: str = "127.0.0.1", port: int = 8765, timeout: float = 5.0) -> dict:
    """Send one command to a running monitor and return its response."""

    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except (OSError, asyncio.TimeoutError) as exc:
        raise ContextLostError(f"Monitor is not reachable on {host}:{port}: {exc}") from exc
    try:
        writer.write(json.dumps(dict(command)).encode("utf-8") + b"\n")
        await writer.drain()
        line = await asyncio.wait_for(reader.readline(), timeout)
    finally:
        writer.close()
    if not line:
        raise ContextLostError("Monitor closed the control connection")
    return json.loads(line.decode("utf-8"))
