# utils/alerts.py
import smtplib
import logging
from email.message import EmailMessage
import os
from dotenv import load_dotenv

load_dotenv()

SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
ALERT_EMAIL = os.getenv("ALERT_EMAIL")
FROM_EMAIL = os.getenv("FROM_EMAIL")

logger = logging.getLogger("alerts")
logger.setLevel(logging.INFO)


def build_message(subject, body, attachments=None):
    """
    Assemble the report e-mail.

    Attachments are read from disk and attached as
    application/octet-stream under their base file name. A file that
    cannot be read is logged and left out.
    """
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = FROM_EMAIL
    msg["To"] = ALERT_EMAIL
    msg.set_content(body)

    for file_path in attachments or []:
        try:
            with open(file_path, "rb") as f:
                data = f.read()
        except OSError:
            logger.exception(f"Failed to attach {file_path}")
            continue
        msg.add_attachment(
            data,
            maintype="application",
            subtype="octet-stream",
            filename=os.path.basename(file_path),
        )
    return msg


def send_alert(subject, body, attachments=None):
    """
    Send a report e-mail with optional file attachments.

    Uses SMTP_SSL on port 465 and plain SMTP with opportunistic STARTTLS on
    any other port. Does nothing when SMTP_HOST is not configured.

    Args:
        subject (str): Email subject line
        body (str): Email body content
        attachments (list, optional): File paths to attach

    Returns:
        bool: True if the message was handed to the SMTP server

    Note:
        SMTP failures are logged, not raised, so a broken mail relay never
        fails the report job that calls this.
    """
    if not SMTP_HOST:
        logger.warning(f"SMTP_HOST not configured, skipping alert: {subject}")
        return False

    msg = build_message(subject, body, attachments)

    try:
        if SMTP_PORT == 465:
            with smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT) as server:
                if SMTP_USER and SMTP_PASS:
                    server.login(SMTP_USER, SMTP_PASS)
                server.send_message(msg)
                return True

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if SMTP_USER and SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.send_message(msg)
        return True

    except (smtplib.SMTPException, OSError):
        logger.exception(f"SMTP error while sending {subject!r}")
        return False
