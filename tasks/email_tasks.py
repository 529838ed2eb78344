import logging
import smtplib
from email.message import EmailMessage

from core.celery import celery_app
from core.config import settings

logger = logging.getLogger(__name__)


def deliver_email(to_email: str, subject: str, body: str) -> bool:
    """
    Send one plain-text email over SMTP.

    Returns False without contacting the server when SMTP credentials are
    not configured. SMTP errors propagate to the caller.
    """
    if settings.TESTING or not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured, email to %s not sent (subject=%r)", to_email, subject)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    return True


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to_email: str, subject: str, body: str):
    """
    Send email asynchronously with Celery.
    Retries up to 3 times on failure.
    """
    try:
        sent = deliver_email(to_email, subject, body)
    except Exception as exc:
        logger.warning("Email to %s failed (attempt %s): %s", to_email, self.request.retries + 1, exc)
        # Retry with exponential backoff
        countdown = min(2 ** self.request.retries, 60)  # Max 60 seconds
        raise self.retry(exc=exc, countdown=countdown)

    if not sent:
        return {"status": "skipped", "to": to_email, "subject": subject}
    return {"status": "sent", "to": to_email, "subject": subject}
