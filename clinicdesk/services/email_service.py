"""
Email Service for notification delivery
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app

logger = logging.getLogger(__name__)


def _mail_settings():
    return {
        'server': current_app.config.get('MAIL_SERVER'),
        'port': current_app.config.get('MAIL_PORT'),
        'use_tls': current_app.config.get('MAIL_USE_TLS'),
        'username': current_app.config.get('MAIL_USERNAME'),
        'password': current_app.config.get('MAIL_PASSWORD'),
        'sender': current_app.config.get('MAIL_DEFAULT_SENDER'),
    }


def send_notification_email(email, name, title, message):
    """
    Send a notification to a user by email

    Args:
        email: Recipient address
        name: Recipient name for the greeting
        title: Notification title, used as subject
        message: Notification body

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    settings = _mail_settings()
    if not settings['username'] or not settings['password']:
        logger.warning("Email not configured. Skipping notification email.")
        return False

    try:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = f"{title} - ClinicDesk"
        msg['From'] = settings['sender']
        msg['To'] = email

        text = f"""
Hello {name},

{message}

You can see all your notifications after signing in to ClinicDesk.

Best regards,
ClinicDesk
        """

        html = f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #4a90a4;">{title}</h2>
        <p>Hello {name},</p>
        <p>{message}</p>
        <p style="color: #666; font-size: 12px;">ClinicDesk</p>
    </div>
</body>
</html>
        """

        msg.attach(MIMEText(text, 'plain'))
        msg.attach(MIMEText(html, 'html'))

        with smtplib.SMTP(settings['server'], settings['port']) as server:
            if settings['use_tls']:
                server.starttls()
            server.login(settings['username'], settings['password'])
            server.sendmail(settings['sender'], email, msg.as_string())

        logger.info(f"Notification email '{title}' sent to {email}")
        return True

    except Exception as e:
        logger.error(f"Failed to send notification email to {email}: {e}")
        return False
