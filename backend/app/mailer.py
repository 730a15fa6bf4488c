# backend/app/mailer.py

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from typing import Optional

from . import config

logger = logging.getLogger(__name__)


# ============================
# Errors
# ============================

class MailError(Exception):
    """Base error for /share-summary. Carries the HTTP status and client message."""

    status_code = 500
    message = "Failed to send email. Check server logs for details."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)


class MailNotConfiguredError(MailError):
    status_code = 500
    message = "Email service not configured on server."


class MissingRecipientError(MailError):
    status_code = 400
    message = "Recipient email address is required."


class InvalidRecipientError(MailError):
    status_code = 400
    message = "Recipient email address is invalid."


class MailDispatchError(MailError):
    status_code = 500
    message = "Failed to send email. Check server logs for details."


# ============================
# Message & Transport
# ============================

def build_summary_message(
    summary: str, recipient: str, mail_config: config.MailConfig
) -> EmailMessage:
    """Builds the plain-text email carrying a summary."""
    message = EmailMessage()
    message["From"] = formataddr((mail_config.from_name, mail_config.sender))
    message["To"] = recipient
    message["Subject"] = config.EMAIL_SUBJECT
    message.set_content(config.EMAIL_BODY_TEMPLATE.format(summary=summary))
    return message


def _send_message(message: EmailMessage, mail_config: config.MailConfig) -> None:
    """
    Sends one message over SMTP. Blocking; run it in a worker thread.

    Implicit TLS (SMTP_SSL) is used when `secure` is set. Otherwise the
    connection is upgraded with STARTTLS if the server offers it.
    """
    context = ssl.create_default_context()
    if mail_config.secure:
        server = smtplib.SMTP_SSL(
            mail_config.host, mail_config.port,
            timeout=mail_config.timeout_seconds, context=context,
        )
    else:
        server = smtplib.SMTP(
            mail_config.host, mail_config.port, timeout=mail_config.timeout_seconds
        )

    with server:
        if not mail_config.secure:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
        server.login(mail_config.username, mail_config.password)
        server.send_message(message)


# ============================
# Core Service Function
# ============================

async def share_summary(
    summary: str, recipient: str, mail_config: config.MailConfig
) -> str:
    """
    Emails a summary to a recipient with a single send attempt.

    Args:
        summary: The summary text to send.
        recipient: Destination email address.
        mail_config: SMTP configuration.

    Returns:
        A confirmation message naming the recipient.

    Raises:
        MailNotConfiguredError: SMTP host, user or password is missing.
        MissingRecipientError: No recipient was given.
        InvalidRecipientError: The recipient is not a single email address.
        MailDispatchError: The SMTP transport failed.
    """
    if not mail_config.is_configured:
        logger.error("Share request rejected: SMTP_HOST, SMTP_USER or SMTP_PASS is not set.")
        raise MailNotConfiguredError()

    recipient = (recipient or "").strip()
    if not recipient:
        logger.warning("Share request rejected: no recipient given.")
        raise MissingRecipientError()

    _, address = parseaddr(recipient)
    if "\r" in recipient or "\n" in recipient or "@" not in address:
        logger.warning(f"Share request rejected: invalid recipient {recipient!r}.")
        raise InvalidRecipientError()

    message = build_summary_message(summary or "", recipient, mail_config)
    logger.info(
        f"Sending summary to {recipient} via {mail_config.host}:{mail_config.port} "
        f"(secure={mail_config.secure})..."
    )
    try:
        await asyncio.to_thread(_send_message, message, mail_config)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email sending error for {recipient}: {e}", exc_info=True)
        raise MailDispatchError(str(e)) from e

    logger.info(f"Email sent successfully to {recipient}.")
    return f"Email sent successfully to {recipient}!"
