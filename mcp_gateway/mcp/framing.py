"""Byte-level framing of JSON-RPC messages on a stdio stream.

Two framings are spoken to stdio servers:

- line-delimited: one JSON document per ``\\n``-terminated line, used for
  discovery probes;
- length-prefixed: a ``Content-Length: <n>\\r\\n\\r\\n`` header block followed
  by exactly ``n`` bytes of UTF-8 JSON, used for tool calls.
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Callable

from mcp_gateway.mcp.errors import EmptyResponse, McpProtocolViolation, ParseError, ProcessTimeout

logger = logging.getLogger(__name__)

CONTENT_LENGTH = "content-length"

NotificationSink = Callable[[dict[str, Any]], None]


class Framing(str, Enum):
    LINE = "line"
    CONTENT_LENGTH = "content-length"


def encode_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def encode_line(payload: dict[str, Any]) -> bytes:
    """Serialize a message as a single newline-terminated line."""
    return encode_json(payload) + b"\n"


def encode_content_length(body: bytes) -> bytes:
    """Prefix a JSON body with its Content-Length header block."""
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


def looks_like_complete_response(line: str) -> bool:
    """Whether a stdout line plausibly holds a whole JSON-RPC response."""
    if '"result"' in line or '"error"' in line:
        return True
    return line.endswith("}") and '"jsonrpc"' in line


def is_notification(message: Any) -> bool:
    return isinstance(message, dict) and "method" in message and "id" not in message


def is_stale_reply(message: Any, expected_id: Any) -> bool:
    """A reply carrying some other request's id, e.g. one that arrived after its caller timed out."""
    if expected_id is None or not isinstance(message, dict):
        return False
    reply_id = message.get("id")
    return reply_id is not None and reply_id != expected_id


async def read_stream_line(reader: asyncio.StreamReader) -> bytes:
    """readline() with stream-limit overruns classified as protocol violations."""
    try:
        return await reader.readline()
    except ValueError as e:
        # StreamReader reports LimitOverrunError as ValueError from readline
        raise McpProtocolViolation(
            f"stdio line exceeds the configured stream limit ({e})"
        ) from e


def decode_message(raw: bytes | str) -> Any:
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(str(e)) from e


async def read_line_response(
    reader: asyncio.StreamReader,
    timeout: float,
    on_notification: NotificationSink | None = None,
    expected_id: Any = None,
) -> Any:
    """
    Read stdout lines until one looks like a complete response.

    Notifications seen on the way are handed to ``on_notification``; replies
    whose id is not ``expected_id`` are discarded.

    Raises:
        EmptyResponse: the stream produced no output at all.
        ProcessTimeout: output arrived but no response within ``timeout``.
        McpProtocolViolation: the stream ended without a response.
    """
    deadline = time.monotonic() + timeout
    seen_output = False

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            raw = await asyncio.wait_for(read_stream_line(reader), timeout=remaining)
        except asyncio.TimeoutError:
            break
        if not raw:
            # EOF
            if not seen_output:
                raise EmptyResponse("stdio server (stream closed)")
            raise McpProtocolViolation("stdio stream closed before a JSON-RPC response arrived")

        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        seen_output = True

        if not looks_like_complete_response(line):
            logger.debug(f"Skipping non-response stdout line: {line[:200]}")
            continue

        message = decode_message(line)
        if is_notification(message):
            if on_notification is not None:
                on_notification(message)
            continue
        if is_stale_reply(message, expected_id):
            logger.warning(f"Discarding reply for request {message.get('id')}, waiting for {expected_id}")
            continue
        return message

    if not seen_output:
        raise EmptyResponse("stdio server (no output)")
    raise ProcessTimeout("a complete JSON-RPC response line", timeout)


async def read_headers(reader: asyncio.StreamReader) -> dict[str, str]:
    """Read header lines up to the first blank line."""
    headers: dict[str, str] = {}
    while True:
        raw = await read_stream_line(reader)
        if not raw:
            if headers:
                raise McpProtocolViolation("stream closed inside a header block")
            raise EmptyResponse("stdio server (stream closed)")
        line = raw.decode("ascii", errors="replace").strip()
        if not line:
            if headers:
                return headers
            # tolerate blank lines between messages
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise McpProtocolViolation(f"malformed header line: {line[:200]!r}")
        headers[name.strip().lower()] = value.strip()


async def read_content_length_message(reader: asyncio.StreamReader) -> bytes:
    """
    Read one Content-Length framed message body.

    Raises:
        McpProtocolViolation: the header block has no usable Content-Length.
    """
    headers = await read_headers(reader)
    if CONTENT_LENGTH not in headers:
        raise McpProtocolViolation("missing Content-Length header")
    try:
        length = int(headers[CONTENT_LENGTH])
    except ValueError as e:
        raise McpProtocolViolation(f"invalid Content-Length: {headers[CONTENT_LENGTH]!r}") from e
    if length < 0:
        raise McpProtocolViolation(f"invalid Content-Length: {length}")

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise McpProtocolViolation(
            f"stream ended after {len(e.partial)} of {length} body bytes"
        ) from e


async def read_content_length_response(
    reader: asyncio.StreamReader,
    on_notification: NotificationSink | None = None,
    expected_id: Any = None,
) -> Any:
    """Read framed messages until the reply to ``expected_id`` arrives."""
    while True:
        message = decode_message(await read_content_length_message(reader))
        if is_notification(message):
            if on_notification is not None:
                on_notification(message)
            continue
        if is_stale_reply(message, expected_id):
            logger.warning(f"Discarding reply for request {message.get('id')}, waiting for {expected_id}")
            continue
        return message
