"""
Notification Service
====================

Turns lifecycle events into rows of the in-app notification store and
serves them back to their recipients.

Emission is fire-and-forget: it runs after the lifecycle transaction has
committed, in its own session, and a failure is logged without reaching
the caller or undoing the transition.

Event types:
    bid_received         shipper   a carrier bid on an open shipment
    bid_accepted         carrier   the carrier's bid won
    bid_declined         carrier   the bid lost, was declined, or the shipment was cancelled
    shipment_assigned    shipper   a bid was accepted
    shipment_in_transit  shipper   the carrier picked up the freight
    delivery_complete    shipper   the carrier delivered with proof of delivery
    shipment_cancelled   carrier   a shipment the carrier bid on was cancelled
"""

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlmodel import func, select

from copallet.config import settings
from copallet.core.database import get_session_context
from copallet.core.errors import NotFound
from copallet.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LifecycleEvent:
    """One notification addressed to one user."""

    type: str
    user_id: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationService:
    """Writes and reads in-app notifications."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager] = get_session_context,
        enabled: Optional[bool] = None,
    ):
        self._session_factory = session_factory
        self._enabled = settings.notifications_enabled if enabled is None else enabled

    def emit(self, events: Iterable[LifecycleEvent]) -> int:
        """
        Store *events*; never raises.

        Returns the number of notifications written (0 when disabled or on
        failure).
        """
        events = list(events)
        if not events:
            return 0

        for event in events:
            logger.info(
                "lifecycle_event %s -> %s",
                event.type,
                event.user_id,
                extra={"event.type": event.type, "event.shipment_id": event.data.get("shipment_id")},
            )

        if not self._enabled:
            return 0

        try:
            with self._session_factory() as session:
                for event in events:
                    session.add(
                        Notification(
                            user_id=event.user_id,
                            type=event.type,
                            title=event.title,
                            message=event.message,
                            data=event.data or None,
                        )
                    )
                session.commit()
        except Exception as e:
            logger.warning("Failed to store %d lifecycle notification(s): %s", len(events), e)
            return 0
        return len(events)

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        with self._session_factory() as session:
            stmt = select(Notification).where(Notification.user_id == user_id)
            if unread_only:
                stmt = stmt.where(Notification.is_read == False)  # noqa: E712
            stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
            rows = list(session.exec(stmt).all())
            for row in rows:
                session.expunge(row)
            return rows

    def unread_count(self, user_id: str) -> int:
        with self._session_factory() as session:
            return session.exec(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.is_read == False)  # noqa: E712
            ).one()

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        """Mark one of *user_id*'s notifications read; other users' are NotFound."""
        with self._session_factory() as session:
            row = session.get(Notification, notification_id)
            if row is None or row.user_id != user_id:
                raise NotFound(
                    "CPL-API-404",
                    detail=f"notification {notification_id} not found for {user_id}",
                    context={"notification_id": notification_id},
                )
            if not row.is_read:
                row.is_read = True
                session.add(row)
                session.commit()
                session.refresh(row)
            session.expunge(row)
            return row


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the notification service singleton."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
