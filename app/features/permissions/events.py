"""
Audit and notification events produced by permission changes.

Persisting audit entries and delivering notifications belong to other
services. This module only describes the events and hands them to a
publisher. The default publisher writes them to the log; deployments swap in
their own through the get_event_publisher dependency.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.features.permissions.enums import Permission
from app.utils import get_logger, utcnow


log = get_logger(__name__)

PERMISSION_REQUEST_REVIEWED = "PERMISSION_REQUEST_REVIEWED"
PERMISSION_GRANTED = "PERMISSION_GRANTED"
PERMISSION_REVOKED = "PERMISSION_REVOKED"
USER_POSITION_CHANGED = "USER_POSITION_CHANGED"


class AuditEvent(BaseModel):
    """Who did what to which target."""
    action: str
    target_type: str
    target_id: str
    actor_id: str
    details: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utcnow)


class PermissionRequestReviewedEvent(AuditEvent):
    action: str = PERMISSION_REQUEST_REVIEWED
    target_type: str = "PERMISSION_REQUEST"
    approved: bool

    @property
    def reviewer_id(self) -> str:
        return self.actor_id


class NotificationEvent(BaseModel):
    """A message for one user; delivery is up to the notification service."""
    recipient_id: str
    type: str = "SYSTEM"
    title: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EventPublisher:
    """Logs events. Subclass and override publish_* to forward them elsewhere."""

    def publish_audit(self, event: AuditEvent) -> None:
        log.info(
            "Audit: action=%s target=%s:%s actor=%s details=%s",
            event.action, event.target_type, event.target_id, event.actor_id, event.details,
        )

    def publish_notification(self, event: NotificationEvent) -> None:
        log.info("Notification for user=%s type=%s: %s", event.recipient_id, event.type, event.title)


def request_approved_notification(
    requester_id: str,
    request_id: str,
    permission: Permission,
    review_note: Optional[str],
) -> NotificationEvent:
    message = f"Your request for {permission.value} was approved."
    if review_note:
        message = f"{message} Note: {review_note}"
    return NotificationEvent(
        recipient_id=requester_id,
        type="PERMISSION_REQUEST_APPROVED",
        title="Permission request approved",
        message=message,
        metadata={"request_id": request_id, "permission": permission.value},
    )
