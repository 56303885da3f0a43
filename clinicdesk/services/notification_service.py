"""
Notification Service
Emits notification events after state changes and serves the user inbox.

Emission is fire-and-forget: events are handed to the hook only after the
triggering transaction committed, and a failing hook never rolls back that
transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app, has_app_context

from clinicdesk.errors import NotFoundError
from clinicdesk.extensions import db
from clinicdesk.models import Notification

logger = logging.getLogger(__name__)

HOOK_EXTENSION_KEY = 'clinicdesk.notification_hook'


@dataclass
class NotificationEvent:
    recipient_id: int
    type: str
    title: str
    message: str
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class StoredNotificationHook:
    """Persist the notification, then hand delivery to Celery when enabled."""

    def emit(self, event: NotificationEvent) -> Optional[Notification]:
        try:
            notification = Notification(
                user_id=event.recipient_id,
                type=event.type,
                title=event.title,
                message=event.message,
                data=event.data or None,
                related_id=event.related_id,
                related_type=event.related_type,
            )
            db.session.add(notification)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.warning("Could not store %s notification for user %s: %s", event.type, event.recipient_id, e)
            return None

        if current_app.config.get('NOTIFICATIONS_ASYNC'):
            try:
                from tasks.notification_tasks import deliver_notification
                deliver_notification.delay(notification.id)
            except Exception as e:
                logger.warning("Could not enqueue delivery of notification %s: %s", notification.id, e)

        return notification


_default_hook = StoredNotificationHook()


def get_notification_hook():
    if has_app_context():
        return current_app.extensions.get(HOOK_EXTENSION_KEY, _default_hook)
    return _default_hook


def set_notification_hook(app, hook):
    """Swap the delivery hook, e.g. for an external notification service"""
    app.extensions[HOOK_EXTENSION_KEY] = hook


def notify_after_commit(uow, event: NotificationEvent):
    uow.after_commit(lambda: get_notification_hook().emit(event))


# ── Inbox ────────────────────────────────────────────────────────────────────

def list_notifications(user_id: int, unread_only: bool = False, limit: Optional[int] = None):
    query = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id).filter(Notification.read_at.is_(None)).count()


def mark_as_read(ctx, uow, notification_id: int) -> Notification:
    with uow:
        notification = uow.session.get(Notification, notification_id)
        # Other users' notifications look the same as missing ones
        if not notification or notification.user_id != ctx.user_id:
            raise NotFoundError('Notification', notification_id)
        notification.mark_as_read()
    return notification


def mark_all_as_read(ctx, uow) -> int:
    with uow:
        updated = (
            uow.session.query(Notification)
            .filter_by(user_id=ctx.user_id)
            .filter(Notification.read_at.is_(None))
            .update({Notification.read_at: datetime.utcnow()}, synchronize_session=False)
        )
    return updated
