"""
Outbound email.

Mail is handed to FastAPI BackgroundTasks so it is sent after the response;
a delivery failure is logged and never reaches the request that triggered it.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable

from fastapi import BackgroundTasks

from app.core import config
from app.utils import get_logger


log = get_logger(__name__)


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Send one HTML email over SMTP.

    Returns False without connecting when EMAIL_HOST is not configured.
    """
    if not config.EMAIL_HOST:
        log.debug("Email delivery disabled, skipping %r to %s", subject, to)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.EMAIL_FROM
    msg["To"] = to
    msg.attach(MIMEText(html, "html"))

    with smtplib.SMTP(config.EMAIL_HOST, config.EMAIL_PORT, timeout=10) as server:
        server.starttls()
        if config.EMAIL_USER:
            server.login(config.EMAIL_USER, config.EMAIL_PASS or "")
        server.send_message(msg)

    log.info("Email %r sent to %s", subject, to)
    return True


def deliver(recipients: Iterable[str], subject: str, html: str) -> None:
    """Send to each recipient; failures are logged per recipient."""
    for to in recipients:
        try:
            send_email(to, subject, html)
        except (smtplib.SMTPException, OSError) as e:
            log.warning("Failed to send %r to %s: %s", subject, to, e)


def dispatch_email(
    background_tasks: BackgroundTasks,
    recipients: Iterable[str],
    subject: str,
    html: str,
) -> None:
    """Queue an email for delivery after the response is sent."""
    recipients = sorted({r for r in recipients if r})
    if not recipients:
        return
    background_tasks.add_task(deliver, recipients, subject, html)


def task_status_email(task_title: str, project_name: str, old_status: str, new_status: str, changed_by: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #333;">Task status updated</h2>'
        f"<p><strong>{changed_by}</strong> moved <strong>{task_title}</strong> "
        f"in project <strong>{project_name}</strong> from <em>{old_status}</em> to <em>{new_status}</em>.</p>"
        "</div>"
    )


def invitation_email(invitation_url: str, invited_by: str, team_name: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        '<h2 style="color: #333;">You\'ve been invited to join Planora</h2>'
        f"<p><strong>{invited_by}</strong> has invited you to join the team <strong>{team_name}</strong>.</p>"
        f'<p><a href="{invitation_url}">Accept invitation</a></p>'
        f'<p style="word-break: break-all; color: #666;">{invitation_url}</p>'
        "</div>"
    )
