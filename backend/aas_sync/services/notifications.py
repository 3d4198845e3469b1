"""
User-facing notifications ("toasts").

Only the outcome of a user-initiated mutating call is announced here;
background reconciliation never produces notifications.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

GENERIC_FAILURE_DETAIL = "See server logs for details"

DUPLICATE_MARKERS = ("Duplicate entry", "uk_element_submodel_idshortpath")


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Notification(BaseModel):
    """A single toast."""

    severity: Severity
    summary: str
    detail: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationCenter:
    """
    Bounded feed of notifications for one tree session.

    The UI drains the feed after each action.
    """

    def __init__(self, max_items: int = 100):
        self._items: deque[Notification] = deque(maxlen=max_items)

    def add(self, severity: Severity, summary: str, detail: str | None = None) -> Notification:
        notification = Notification(severity=severity, summary=summary, detail=detail)
        self._items.append(notification)
        log = logger.error if severity is Severity.ERROR else logger.info
        log(f"[{severity.value}] {summary}: {detail or ''}")
        return notification

    def success(self, summary: str, detail: str | None = None) -> Notification:
        return self.add(Severity.SUCCESS, summary, detail)

    def info(self, summary: str, detail: str | None = None) -> Notification:
        return self.add(Severity.INFO, summary, detail)

    def error(self, summary: str, detail: str | None = None) -> Notification:
        return self.add(Severity.ERROR, summary, detail or GENERIC_FAILURE_DETAIL)

    def creation_failed(self, message: str | None) -> Notification:
        """Failure toast for element creation, with friendlier duplicate messages."""
        if message and any(marker in message for marker in DUPLICATE_MARKERS):
            return self.error(
                "Duplicate Element",
                "An element with this idShort already exists. "
                "Please use a different idShort.",
            )
        return self.error("Create failed", message)

    def peek(self) -> list[Notification]:
        return list(self._items)

    def drain(self) -> list[Notification]:
        """Return and clear all pending notifications."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
