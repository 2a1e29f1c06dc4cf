import smtplib
from email.message import EmailMessage
from typing import Optional

from storefront.core.config import settings


def build_email(
    *,
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None,
    from_email: Optional[str] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_email or f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"
    msg["To"] = to
    msg.set_content(text)

    if html:
        msg.add_alternative(html, subtype="html")

    return msg


def send_email_smtp(msg: EmailMessage) -> None:
    """
    Send an email message over SMTP.
    Called from Celery workers only, never from request handlers.
    """
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        server.ehlo()
        server.starttls()
        server.ehlo()
        if settings.SMTP_USER and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.send_message(msg)
