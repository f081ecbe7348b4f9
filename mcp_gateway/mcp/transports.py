"""Wire transports to backend MCP servers.

A transport is chosen once per connect from the server URL's scheme and
kept as that server's runtime handle:

    stdio://<command ...>     StdioTransport   child process, pipes
    http(s)://host[:port]     HttpTransport    POST <url>/mcp
    ws(s)://host[:port]       SocketTransport  TCP pre-flight probe only
    tcp://host:port           SocketTransport  TCP pre-flight probe only
"""

import asyncio
import errno
import logging
import os
import shlex
import shutil
import socket
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import urlsplit

import httpx

from mcp_gateway.config.loader import Settings
from mcp_gateway.mcp.errors import (
    SUPPORTED_SCHEMES,
    CommandNotFound,
    ConnectionRefused,
    ConnectionTimeout,
    EmptyResponse,
    GatewayError,
    HostNotFound,
    HttpStatusError,
    InvalidUrlFormat,
    McpProtocolViolation,
    MissingHost,
    MissingPort,
    ParseError,
    ProcessStartFailure,
    ProcessTimeout,
    UnsupportedProtocol,
)
from mcp_gateway.mcp.framing import (
    Framing,
    NotificationSink,
    encode_content_length,
    encode_json,
    encode_line,
    read_content_length_response,
    read_line_response,
)
from mcp_gateway.mcp.models import Server
from mcp_gateway.mcp.processes import ProcessTable, StdioProcess
from mcp_gateway.utils.http import create_http_client, health_endpoint, is_success, mcp_endpoint

logger = logging.getLogger(__name__)

# Health-check answers that mean "no health endpoint here", so the root URL
# is tried instead.
HEALTH_FALLBACK_STATUSES = {400, 404, 405}

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}

# Longest single stdout line (or header) a stdio server may send
DEFAULT_STREAM_LIMIT = 16 * 1024 * 1024

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "name does not resolve",
    "[errno -2]",
    "[errno -3]",
    "[errno -5]",
    "[errno 8]",
    "[errno 11001]",
)


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_network_error(
    exc: BaseException, host: str, port: int | None, timeout: float
) -> GatewayError:
    """Map a socket/httpx failure onto the gateway error taxonomy."""
    chain = _exception_chain(exc)
    for err in chain:
        if isinstance(err, socket.gaierror):
            return HostNotFound(host)
        if isinstance(err, ConnectionRefusedError):
            return ConnectionRefused(host, port)

    text = " ".join(str(err) for err in chain).lower()
    if any(marker in text for marker in _DNS_FAILURE_MARKERS):
        return HostNotFound(host)
    # asyncio reports several refused addresses (::1, 127.0.0.1) as one OSError
    if "refused" in text or f"[errno {errno.ECONNREFUSED}]" in text:
        return ConnectionRefused(host, port)
    if any(isinstance(err, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)) for err in chain):
        return ConnectionTimeout(host, port, timeout)
    return GatewayError(f"Connection to {host} port {port} failed: {exc or type(exc).__name__}")


def parse_stdio_command(url: str) -> list[str]:
    """Split ``stdio://<command args...>`` into argv."""
    command = url.split("://", 1)[1].strip() if "://" in url else ""
    if not command:
        raise InvalidUrlFormat(url, "missing command")
    try:
        argv = shlex.split(command, posix=os.name != "nt")
    except ValueError as e:
        raise InvalidUrlFormat(url, str(e)) from e
    if not argv:
        raise InvalidUrlFormat(url, "missing command")
    return argv


def parse_host_port(url: str, scheme: str) -> tuple[str, int]:
    """Resolve host and port from a URL, without any I/O."""
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError as e:
        raise InvalidUrlFormat(url, str(e)) from e
    host = parts.hostname
    if not host:
        raise MissingHost(url)
    if port is None:
        port = DEFAULT_PORTS.get(scheme)
    if port is None:
        raise MissingPort(url)
    return host, port


class Transport(ABC):
    """A connection strategy for one backend server."""

    scheme: str = ""

    def __init__(self, server: Server):
        self.server_id = server.id or ""
        self.url = server.url

    @abstractmethod
    async def open(self) -> None:
        """Establish (or probe) connectivity. Raises GatewayError on failure."""
        ...

    @abstractmethod
    async def request(self, payload: dict[str, Any], framing: Framing = Framing.CONTENT_LENGTH) -> Any:
        """Send one JSON-RPC request and return the decoded reply."""
        ...

    async def close(self) -> None:
        """Release runtime resources (no-op for stateless transports)."""

    async def ping(self) -> bool:
        """Re-check reachability without touching server state."""
        try:
            await self.open()
            return True
        except GatewayError as e:
            logger.info(f"Ping failed for {self.server_id}: {e}")
            return False


class StdioTransport(Transport):
    """JSON-RPC over the stdin/stdout pipes of a child process."""

    scheme = "stdio"

    def __init__(
        self,
        server: Server,
        processes: ProcessTable,
        read_timeout: float = 10.0,
        rpc_timeout: float = 30.0,
        on_notification: NotificationSink | None = None,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
    ):
        super().__init__(server)
        self.processes = processes
        self.read_timeout = read_timeout
        self.rpc_timeout = rpc_timeout
        self.stream_limit = stream_limit
        self.on_notification = on_notification

    async def open(self) -> None:
        argv = parse_stdio_command(self.url)
        executable = shutil.which(argv[0])
        if executable is None:
            raise CommandNotFound(argv[0])

        # Never leave an orphan behind when re-connecting
        await self.processes.release(self.server_id)

        command = " ".join(argv)
        logger.info(f"Starting stdio server {self.server_id}: {command}")
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *argv[1:],
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                limit=self.stream_limit,
            )
        except (OSError, ValueError) as e:
            raise ProcessStartFailure(command, str(e)) from e

        await self.processes.attach(StdioProcess(self.server_id, process, command))

    def _handle(self) -> StdioProcess:
        handle = self.processes.get(self.server_id)
        if handle is None or not handle.is_alive():
            raise McpProtocolViolation(
                f"STDIO streams not available for server '{self.server_id}'"
            )
        return handle

    async def request(self, payload: dict[str, Any], framing: Framing = Framing.CONTENT_LENGTH) -> Any:
        handle = self._handle()
        request_id = payload.get("id")
        async with handle.lock:
            if framing == Framing.LINE:
                await self._write(handle, encode_line(payload))
                return await read_line_response(
                    handle.stdout, self.read_timeout, self.on_notification, request_id
                )

            await self._write(handle, encode_content_length(encode_json(payload)))
            try:
                return await asyncio.wait_for(
                    read_content_length_response(handle.stdout, self.on_notification, request_id),
                    timeout=self.rpc_timeout,
                )
            except asyncio.TimeoutError as e:
                raise ProcessTimeout("a Content-Length framed response", self.rpc_timeout) from e

    async def _write(self, handle: StdioProcess, data: bytes) -> None:
        try:
            handle.stdin.write(data)
            await handle.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise McpProtocolViolation(f"stdio pipe to '{self.server_id}' is closed: {e}") from e

    async def close(self) -> None:
        await self.processes.release(self.server_id)

    async def ping(self) -> bool:
        handle = self.processes.get(self.server_id)
        return handle is not None and handle.is_alive()


class HttpTransport(Transport):
    """JSON-RPC over HTTP POST to ``<url>/mcp``."""

    def __init__(
        self,
        server: Server,
        connect_timeout: float = 5.0,
        rpc_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(server)
        self.scheme = server.scheme
        self.connect_timeout = connect_timeout
        self.rpc_timeout = rpc_timeout
        self._client = client

    @asynccontextmanager
    async def _session(self, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with create_http_client(timeout=timeout) as client:
                yield client

    async def _get(self, url: str, host: str, port: int) -> httpx.Response:
        try:
            async with self._session(self.connect_timeout) as client:
                return await client.get(url, timeout=self.connect_timeout)
        except httpx.HTTPError as e:
            raise classify_network_error(e, host, port, self.connect_timeout) from e

    async def open(self) -> None:
        host, port = parse_host_port(self.url, self.scheme)
        health_url = health_endpoint(self.url)

        response = await self._get(health_url, host, port)
        if is_success(response.status_code):
            return

        if response.status_code not in HEALTH_FALLBACK_STATUSES:
            raise HttpStatusError(
                response.status_code,
                response.text,
                f"HTTP {response.status_code} from health check {health_url}",
            )

        logger.info(
            f"Health check {health_url} returned {response.status_code}, trying {self.url}"
        )
        root = await self._get(self.url, host, port)
        if is_success(root.status_code):
            return
        raise HttpStatusError(
            root.status_code,
            root.text,
            f"HTTP {root.status_code} from {self.url}: server does not appear to implement "
            f"the MCP protocol (health check {health_url} returned {response.status_code})",
        )

    async def request(self, payload: dict[str, Any], framing: Framing = Framing.CONTENT_LENGTH) -> Any:
        host, port = parse_host_port(self.url, self.scheme)
        endpoint = mcp_endpoint(self.url)
        try:
            async with self._session(self.rpc_timeout) as client:
                response = await client.post(
                    endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                    timeout=self.rpc_timeout,
                )
        except httpx.HTTPError as e:
            raise classify_network_error(e, host, port, self.rpc_timeout) from e

        if not is_success(response.status_code):
            raise HttpStatusError(response.status_code, response.text)
        if not response.content.strip():
            raise EmptyResponse(endpoint)
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(str(e)) from e


class SocketTransport(Transport):
    """Bare TCP connectivity probe for ``ws``, ``wss`` and ``tcp`` URLs."""

    def __init__(self, server: Server, connect_timeout: float = 5.0):
        super().__init__(server)
        self.scheme = server.scheme
        self.connect_timeout = connect_timeout

    async def open(self) -> None:
        host, port = parse_host_port(self.url, self.scheme)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise ConnectionTimeout(host, port, self.connect_timeout) from e
        except OSError as e:
            raise classify_network_error(e, host, port, self.connect_timeout) from e

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing probe socket to {host}:{port}: {e}")

    async def request(self, payload: dict[str, Any], framing: Framing = Framing.CONTENT_LENGTH) -> Any:
        raise UnsupportedProtocol(
            self.scheme,
            "JSON-RPC calls are not supported over ws/wss/tcp; only the connectivity probe is.",
        )


def build_transport(
    server: Server,
    settings: Settings,
    processes: ProcessTable,
    http_client: httpx.AsyncClient | None = None,
    on_notification: NotificationSink | None = None,
) -> Transport:
    """Select the transport for a server from its URL scheme."""
    if "://" not in server.url:
        raise InvalidUrlFormat(server.url, "expected <scheme>://...")
    scheme = server.scheme
    if scheme not in SUPPORTED_SCHEMES:
        raise UnsupportedProtocol(scheme)

    if scheme == "stdio":
        return StdioTransport(
            server,
            processes,
            read_timeout=settings.stdio_read_timeout,
            rpc_timeout=settings.rpc_timeout,
            on_notification=on_notification,
            stream_limit=settings.stdio_stream_limit,
        )
    if scheme in ("http", "https"):
        return HttpTransport(
            server,
            connect_timeout=settings.connect_timeout,
            rpc_timeout=settings.rpc_timeout,
            client=http_client,
        )
    return SocketTransport(server, connect_timeout=settings.connect_timeout)
