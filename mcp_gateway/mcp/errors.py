"""The gateway's error taxonomy: one exception per classified failure."""

from typing import Any

SUPPORTED_SCHEMES = ("stdio", "http", "https", "ws", "wss", "tcp")


class GatewayError(Exception):
    """Base class for classified gateway failures.

    ``str(error)`` is the human-readable message stored as a server's
    ``last_error``.
    """


class UnsupportedProtocol(GatewayError):
    def __init__(self, scheme: str, detail: str | None = None):
        self.scheme = scheme
        super().__init__(
            f"Unsupported protocol: '{scheme}'. "
            + (detail or f"Supported protocols: {', '.join(SUPPORTED_SCHEMES)}")
        )


class InvalidUrlFormat(GatewayError):
    def __init__(self, url: str, reason: str | None = None):
        self.url = url
        message = f"Invalid URL format: '{url}'"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class MissingHost(GatewayError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL '{url}': missing host")


class MissingPort(GatewayError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL '{url}': missing port")


class HostNotFound(GatewayError):
    def __init__(self, host: str):
        self.host = host
        super().__init__(f"Host not found: '{host}' does not exist or cannot be resolved")


class ConnectionRefused(GatewayError):
    def __init__(self, host: str, port: int | None):
        self.host = host
        self.port = port
        super().__init__(
            f"Connection refused: nothing is accepting connections on {host} port {port}"
        )


class ConnectionTimeout(GatewayError):
    def __init__(self, host: str, port: int | None, timeout: float):
        self.host = host
        self.port = port
        self.timeout = timeout
        super().__init__(f"Connection to {host} port {port} timed out after {timeout:g}s")


class CommandNotFound(GatewayError):
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Command not found: '{command}' is not installed or not on PATH")


class ProcessStartFailure(GatewayError):
    def __init__(self, command: str, reason: str):
        self.command = command
        super().__init__(f"Failed to start process '{command}': {reason}")


class ProcessTimeout(GatewayError):
    def __init__(self, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for {operation}")


class HttpStatusError(GatewayError):
    def __init__(self, status_code: int, body: str = "", message: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"HTTP {status_code}: {body[:500]}")


class McpProtocolViolation(GatewayError):
    pass


class ArgumentValidationError(GatewayError):
    def __init__(self, tool_name: str, violations: list[str]):
        self.tool_name = tool_name
        self.violations = violations
        super().__init__(
            f"Invalid arguments for tool '{tool_name}': {'; '.join(violations)}"
        )

    def to_payload(self) -> dict[str, Any]:
        """Structured body returned instead of dispatching the call."""
        return {
            "error": "invalid_arguments",
            "tool": self.tool_name,
            "violations": list(self.violations),
        }


class EmptyResponse(GatewayError):
    def __init__(self, source: str):
        super().__init__(f"Empty response from {source}")


class ParseError(GatewayError):
    def __init__(self, detail: str):
        super().__init__(f"Could not parse JSON-RPC response: {detail}")


def describe_error(error: BaseException) -> str:
    """Render any exception as a displayable message."""
    if isinstance(error, GatewayError):
        return str(error)
    return f"Unexpected error: {type(error).__name__}: {error}"
