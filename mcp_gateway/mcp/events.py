"""Per-server notifications and gateway event log (in memory only)."""

import logging
from collections import defaultdict
from typing import Any

from mcp_gateway.mcp.models import LogEntry, Notification

logger = logging.getLogger(__name__)

TOOLS_LIST_CHANGED = "notifications/tools/list_changed"
RESOURCES_UPDATED = "notifications/resources/updated"
PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
LOG_MESSAGE = "notifications/message"

KNOWN_NOTIFICATIONS = {TOOLS_LIST_CHANGED, RESOURCES_UPDATED, PROMPTS_LIST_CHANGED, LOG_MESSAGE}

MAX_ENTRIES_PER_SERVER = 500


class ServerEventLog:
    """Notifications received from, and events recorded against, each server."""

    def __init__(self, max_entries: int = MAX_ENTRIES_PER_SERVER) -> None:
        self.max_entries = max_entries
        self._notifications: dict[str, list[Notification]] = defaultdict(list)
        self._logs: dict[str, list[LogEntry]] = defaultdict(list)

    # -- notifications ------------------------------------------------------

    def record_notification(self, server_id: str, message: dict[str, Any]) -> Notification:
        """Store a JSON-RPC notification sent by a server."""
        notification = Notification(
            method=str(message.get("method", "")),
            params=message.get("params"),
            serverId=server_id,
        )
        self._append(self._notifications[server_id], notification)

        if notification.method == LOG_MESSAGE and isinstance(notification.params, dict):
            level = str(notification.params.get("level", "info"))
            self.log(server_id, level, str(notification.params.get("data", "")))
        elif notification.method in KNOWN_NOTIFICATIONS:
            logger.info(f"Server {server_id} sent {notification.method}")
        else:
            logger.debug(f"Server {server_id} sent unrecognised notification {notification.method}")
        return notification

    def sink_for(self, server_id: str):
        """A callback that records notifications for one server."""

        def _sink(message: dict[str, Any]) -> None:
            self.record_notification(server_id, message)

        return _sink

    def notifications(self, server_id: str) -> list[Notification]:
        return list(self._notifications.get(server_id, []))

    # -- log entries --------------------------------------------------------

    def log(self, server_id: str, level: str, message: str, data: Any = None) -> LogEntry:
        entry = LogEntry(level=level.upper(), message=message, data=data, serverId=server_id)
        self._append(self._logs[server_id], entry)
        return entry

    def logs(self, server_id: str) -> list[LogEntry]:
        return list(self._logs.get(server_id, []))

    def all_logs(self) -> list[LogEntry]:
        """Every server's entries merged in chronological order."""
        merged = [entry for entries in self._logs.values() for entry in entries]
        return sorted(merged, key=lambda entry: entry.timestamp)

    def clear(self, server_id: str) -> None:
        self._logs.pop(server_id, None)
        self._notifications.pop(server_id, None)

    def _append(self, entries: list, item: Any) -> None:
        entries.append(item)
        if len(entries) > self.max_entries:
            del entries[: len(entries) - self.max_entries]
