import logging
import os
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import deliver_email, send_email_task

logger = logging.getLogger(__name__)

USE_CELERY = settings.EMAIL_USE_CELERY

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue the email on Celery, or send it directly when Celery is disabled
    or the broker cannot be reached. Direct-send failures propagate.
    """
    if USE_CELERY:
        try:
            send_email_task.delay(to_email, subject, body)
            logger.debug("Email task queued for %s", to_email)
            return
        except Exception as e:
            logger.warning("Celery unavailable, sending email directly: %s", e)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    if deliver_email(to_email, subject, body):
        logger.info("Email sent to %s", to_email)
