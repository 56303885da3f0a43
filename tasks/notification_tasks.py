"""
Celery tasks for notification delivery
"""
import logging
from datetime import datetime
from flask import current_app
from clinicdesk.extensions import celery, db
from clinicdesk.models import Notification
from clinicdesk.services.email_service import send_notification_email

logger = logging.getLogger(__name__)


@celery.task(bind=True, name='tasks.deliver_notification', max_retries=3, default_retry_delay=60)
def deliver_notification(self, notification_id):
    """
    E-mail a stored notification to its recipient (async via Celery)

    Args:
        notification_id: Notification ID

    Returns:
        dict: Delivery result
    """
    notification = db.session.get(Notification, notification_id)
    if not notification:
        logger.warning(f"Notification {notification_id} not found, nothing to deliver")
        return {'success': False, 'error': 'Notification not found'}

    if notification.delivered_at:
        return {'success': True, 'notification_id': notification_id, 'skipped': True}

    user = notification.user
    if not user or not user.email:
        logger.warning(f"Notification {notification_id} has no recipient e-mail")
        return {'success': False, 'error': 'Recipient has no e-mail'}

    sent = send_notification_email(user.email, user.name, notification.title, notification.message)
    if not sent:
        if self.request.retries < self.max_retries and _mail_configured():
            raise self.retry()
        return {'success': False, 'notification_id': notification_id}

    notification.delivered_at = datetime.utcnow()
    db.session.commit()
    logger.info(f"Notification {notification_id} delivered to {user.email}")
    return {'success': True, 'notification_id': notification_id}


def _mail_configured():
    return bool(current_app.config.get('MAIL_USERNAME') and current_app.config.get('MAIL_PASSWORD'))
