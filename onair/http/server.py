# onair/http/server.py

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from onair.errors import (
    EffectNotFound,
    NotPlaying,
    OnAirError,
    SpliceInProgress,
    TooManyListeners,
)
from onair.http.controller import Controller

logger = logging.getLogger(__name__)

HOME_PAGE = "home/index.html"
CONTROLLER_PAGE = "controller/index.html"

CONTENT_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
}

# Largest accepted request head and body
MAX_HEADER_BYTES = 16 * 1024
MAX_BODY_BYTES = 64 * 1024

REASONS = {
    200: "OK",
    302: "Found",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    413: "Payload Too Large",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

STREAM_HEADERS = (
    "HTTP/1.1 200 OK\r\n"
    "Content-Type: audio/mpeg\r\n"
    "Accept-Ranges: bytes\r\n"
    "Cache-Control: no-cache, no-store, must-revalidate\r\n"
    "Connection: close\r\n"
    "\r\n"
)


class BadRequest(Exception):
    """Malformed HTTP request."""
    pass


def _status_for(error: Exception) -> int:
    if isinstance(error, (EffectNotFound, FileNotFoundError)):
        return 404
    if isinstance(error, (NotPlaying, SpliceInProgress)):
        return 409
    if isinstance(error, TooManyListeners):
        return 503
    return 500


class HTTPServer:
    """
    HTTP front end for OnAir.

    GET  /            redirect to /home
    GET  /home        home page
    GET  /controller  controller page
    POST /controller  {"command": "..."} -> {"result": "ok"}
    GET  /stream      live audio/mpeg stream
    GET  /status      playback snapshot (JSON)
    GET  /<file>      static file from the public directory
    """

    def __init__(self, host: str, port: int, controller: Controller, public_dir: str):
        self.host = host
        self.port = port
        self.controller = controller
        self.public_dir = Path(public_dir).resolve()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def bound_port(self) -> int:
        """Actual listening port (differs from port when port=0)."""
        if self._server is None or not self._server.sockets:
            return self.port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        logger.info(f"HTTP server listening on {self.host}:{self.bound_port}")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("HTTP server stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            try:
                method, path, headers = await self._read_request_head(reader)
            except BadRequest as e:
                logger.debug(f"Bad request: {e}")
                await self._send(writer, 400, {"error": str(e)})
                return
            except (asyncio.IncompleteReadError, ConnectionError):
                return

            try:
                await self._route(method, path, headers, reader, writer)
            except OnAirError as e:
                status = _status_for(e)
                logger.warning(f"{method} {path} rejected ({status}): {e}")
                await self._send(writer, status, {"error": str(e)})
            except FileNotFoundError as e:
                logger.warning(f"Asset not found: {e}")
                await self._send(writer, 404, {"error": "not found"})
            except ConnectionError:
                pass
            except Exception as e:
                logger.error(f"Error on API {method} {path}: {e}", exc_info=True)
                await self._send(writer, 500, {"error": "internal server error"})
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _read_request_head(self, reader: asyncio.StreamReader) -> Tuple[str, str, Dict[str, str]]:
        try:
            head = await reader.readuntil(b"\r\n\r\n")
        except asyncio.LimitOverrunError:
            raise BadRequest("request head too large")
        if len(head) > MAX_HEADER_BYTES:
            raise BadRequest("request head too large")

        lines = head.decode("latin-1").split("\r\n")
        parts = lines[0].split()
        if len(parts) < 2:
            raise BadRequest(f"malformed request line: {lines[0]!r}")

        headers = {}
        for line in lines[1:]:
            if ":" in line:
                key, value = line.split(":", 1)
                headers[key.strip().lower()] = value.strip()

        return parts[0].upper(), parts[1], headers

    async def _read_body(self, reader: asyncio.StreamReader, headers: Dict[str, str]) -> bytes:
        length_str = headers.get("content-length", "0")
        try:
            length = int(length_str)
        except ValueError:
            raise BadRequest(f"invalid Content-Length: {length_str}")
        if length > MAX_BODY_BYTES:
            raise BadRequest("request body too large")
        if length <= 0:
            return b""
        return await reader.readexactly(length)

    async def _route(self, method, path, headers, reader, writer) -> None:
        path = path.split("?", 1)[0]

        if method == "GET" and path == "/":
            await self._send_raw(writer, 302, b"", extra_headers={"Location": "/home"})
            return

        if method == "GET" and path == "/home":
            await self._send_file(writer, HOME_PAGE)
            return

        if method == "GET" and path == "/controller":
            await self._send_file(writer, CONTROLLER_PAGE)
            return

        if method == "POST" and path == "/controller":
            await self._handle_command(reader, writer, headers)
            return

        if method == "GET" and path == "/stream":
            await self._handle_stream(reader, writer)
            return

        if method == "GET" and path == "/status":
            await self._send(writer, 200, self.controller.status())
            return

        if method == "GET":
            await self._send_file(writer, path)
            return

        await self._send_raw(writer, 404, b"")

    async def _handle_command(self, reader, writer, headers) -> None:
        try:
            body = await self._read_body(reader, headers)
            item = json.loads(body or b"{}")
        except (BadRequest, ValueError) as e:
            await self._send(writer, 400, {"error": f"invalid request body: {e}"})
            return

        command = item.get("command") if isinstance(item, dict) else None
        if not isinstance(command, str) or not command.strip():
            await self._send(writer, 400, {"error": "missing command"})
            return

        result = await self.controller.handle_command(command)
        await self._send(writer, 200, result)

    async def _handle_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        handle = self.controller.create_listener()
        watcher = asyncio.get_running_loop().create_task(
            self._watch_disconnect(reader, handle), name=f"listener-{handle.id}"
        )
        try:
            writer.write(STREAM_HEADERS.encode("ascii"))
            await writer.drain()

            while True:
                chunk = await handle.sink.read()
                if chunk is None:
                    break
                writer.write(chunk)
                await writer.drain()
        except ConnectionError as e:
            logger.debug(f"Listener {handle.id} write failed: {e}")
        finally:
            watcher.cancel()
            handle.on_close()

    async def _watch_disconnect(self, reader: asyncio.StreamReader, handle) -> None:
        try:
            while await reader.read(1024):
                pass
        except ConnectionError:
            pass
        handle.on_close()

    def _resolve_public(self, relative: str) -> Optional[Path]:
        target = (self.public_dir / relative.lstrip("/")).resolve()
        if target != self.public_dir and self.public_dir not in target.parents:
            return None
        if not target.is_file():
            return None
        return target

    async def _send_file(self, writer: asyncio.StreamWriter, relative: str) -> None:
        target = self._resolve_public(relative)
        if target is None:
            logger.warning(f"Asset not found: {relative}")
            await self._send_raw(writer, 404, b"")
            return

        body = await asyncio.to_thread(target.read_bytes)
        content_type = CONTENT_TYPES.get(target.suffix.lower())
        extra = {"Content-Type": content_type} if content_type else {}
        await self._send_raw(writer, 200, body, extra_headers=extra)

    async def _send(self, writer: asyncio.StreamWriter, status: int, payload) -> None:
        body = json.dumps(payload).encode("utf-8")
        await self._send_raw(writer, status, body, extra_headers={"Content-Type": "application/json"})

    async def _send_raw(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        head = f"HTTP/1.1 {status} {REASONS.get(status, 'Unknown')}\r\n"
        for key, value in (extra_headers or {}).items():
            head += f"{key}: {value}\r\n"
        head += f"Content-Length: {len(body)}\r\nConnection: close\r\n\r\n"
        try:
            writer.write(head.encode("latin-1") + body)
            await writer.drain()
        except ConnectionError:
            pass
