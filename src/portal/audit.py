"""Disclosure Audit Log.

Append-only record of who revealed which credential field of which tool,
and when. Consumed by compliance and observability collaborators.
Events never carry secret values.
"""

import asyncio
import json
import uuid
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiofiles

from shared.logging import get_logger
from shared.models import CredentialField, DisclosureEvent, UserContext, utcnow

logger = get_logger(__name__)


class DisclosureAuditLog:
    """
    Audit log for credential disclosures.

    Events are written to a JSON-lines file through a small buffer. The
    most recent ones (up to memory_limit) are also kept in memory. Events
    are never mutated, and the file is only ever appended to.
    """

    def __init__(
        self,
        log_path: str = "logs/disclosures.log",
        enabled: bool = True,
        buffer_size: int = 1,
        memory_limit: int = 1000
    ) -> None:
        self.log_path = Path(log_path)
        self.enabled = enabled
        self.buffer_size = buffer_size
        self._events: deque[DisclosureEvent] = deque(maxlen=memory_limit)
        self._total = 0
        self._buffer: list[DisclosureEvent] = []
        self._lock = asyncio.Lock()

        if self.enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def create_event(
        self,
        user: UserContext,
        tool_id: int,
        field: CredentialField,
        request_id: Optional[str] = None
    ) -> DisclosureEvent:
        return DisclosureEvent(
            id=str(uuid.uuid4()),
            user_id=user.user_id,
            tool_id=tool_id,
            field=field,
            timestamp=utcnow(),
            request_id=request_id,
        )

    async def append(self, event: DisclosureEvent) -> None:
        """
        Append one event.

        The in-memory record is updated before the file buffer, so a failed
        flush never hides the event from this process.
        """
        async with self._lock:
            self._events.append(event)
            self._total += 1

            logger.info(
                "Credential disclosed",
                audit_id=event.id,
                user_id=event.user_id,
                tool_id=event.tool_id,
                field=event.field.value,
                request_id=event.request_id
            )

            if not self.enabled:
                return

            self._buffer.append(event)
            if len(self._buffer) >= self.buffer_size:
                await self._flush()

    async def record(
        self,
        user: UserContext,
        tool_id: int,
        field: CredentialField,
        request_id: Optional[str] = None
    ) -> DisclosureEvent:
        """Build and append an event for a successful disclosure."""
        event = self.create_event(user, tool_id, field, request_id)
        await self.append(event)
        return event

    async def _flush(self) -> None:
        """Flush buffered events to file."""
        if not self._buffer:
            return

        entries_to_write = self._buffer.copy()
        self._buffer.clear()

        written = 0
        try:
            async with aiofiles.open(self.log_path, "a") as f:
                for entry in entries_to_write:
                    await f.write(entry.model_dump_json() + "\n")
                    await f.flush()
                    written += 1
        except OSError as e:
            logger.error(
                "Failed to write audit log",
                path=str(self.log_path),
                written=written,
                pending=len(entries_to_write) - written,
                error=str(e)
            )
            # Only lines that did not reach the file are kept for the next flush
            self._buffer[:0] = entries_to_write[written:]

    async def flush(self) -> None:
        """Public method to flush the audit buffer."""
        async with self._lock:
            await self._flush()

    def events(self) -> list[DisclosureEvent]:
        """Most recent events recorded by this process, oldest first."""
        return list(self._events)

    def count(self) -> int:
        """Number of events recorded by this process."""
        return self._total

    async def query(
        self,
        user_id: Optional[str] = None,
        tool_id: Optional[int] = None,
        field: Optional[CredentialField] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100
    ) -> list[DisclosureEvent]:
        """
        Query disclosure events with filters.

        Reads the durable file plus anything still buffered. When the file
        is disabled, only the events still held in memory are queried.

        Args:
            user_id: Filter by user id
            tool_id: Filter by tool id
            field: Filter by field selector
            start_time: Earliest timestamp, inclusive
            end_time: Latest timestamp, inclusive
            limit: Maximum events to return

        Returns:
            Matching events, oldest first
        """
        async with self._lock:
            if self.enabled:
                candidates = await self._read_file()
                candidates.extend(self._buffer)
            else:
                candidates = list(self._events)

        results: list[DisclosureEvent] = []
        for event in candidates:
            if len(results) >= limit:
                break
            if user_id and event.user_id != user_id:
                continue
            if tool_id is not None and event.tool_id != tool_id:
                continue
            if field and event.field != field:
                continue
            if start_time and event.timestamp < start_time:
                continue
            if end_time and event.timestamp > end_time:
                continue
            results.append(event)

        return results

    async def _read_file(self) -> list[DisclosureEvent]:
        events: list[DisclosureEvent] = []
        if not self.log_path.exists():
            return events

        async with aiofiles.open(self.log_path, "r") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(DisclosureEvent(**json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    logger.warning("Skipping malformed audit line", path=str(self.log_path))
        return events


# Global audit log instance
_audit_log: Optional[DisclosureAuditLog] = None


def get_audit_log(
    log_path: str = "logs/disclosures.log",
    enabled: bool = True,
    buffer_size: int = 1,
    memory_limit: int = 1000
) -> DisclosureAuditLog:
    """Get or create the global audit log instance."""
    global _audit_log
    if _audit_log is None:
        _audit_log = DisclosureAuditLog(
            log_path=log_path,
            enabled=enabled,
            buffer_size=buffer_size,
            memory_limit=memory_limit,
        )
    return _audit_log
