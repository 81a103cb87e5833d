"""SMTP implementation of the email queue."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from backend.services.backup_scheduler.delivery.base import EmailAttachment, EmailQueue
from config.settings import settings


logger = logging.getLogger(__name__)


def smtp_config_from_settings() -> Optional[Dict[str, Any]]:
    """Build the SMTP configuration from settings.

    Returns:
        Optional[Dict[str, Any]]: SMTP config or None if SMTP_HOST is not set.
    """

    host = settings.SMTP_HOST.strip()
    if not host:
        return None

    return {
        "host": host,
        "port": settings.SMTP_PORT,
        "user": settings.SMTP_USER.strip(),
        "password": settings.get_smtp_password(),
        "from_addr": settings.SMTP_FROM.strip(),
        "use_tls": settings.SMTP_USE_TLS,
        "use_ssl": settings.SMTP_USE_SSL or settings.SMTP_PORT == 465,
    }


class SmtpEmailQueue(EmailQueue):
    """Send backup archives through an SMTP server."""

    def __init__(self, smtp_config: Optional[Dict[str, Any]] = None):
        """Initialize the queue.

        Args:
            smtp_config: SMTP settings; defaults to the application settings.
        """

        self.smtp_config = smtp_config if smtp_config is not None else smtp_config_from_settings()

    def _build_message(
        self,
        *,
        recipients: Sequence[str],
        subject: str,
        body: str,
        attachment: EmailAttachment,
    ) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.smtp_config["from_addr"] or self.smtp_config["user"]
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        maintype, _, subtype = attachment.content_type.partition("/")
        part = MIMEBase(maintype or "application", subtype or "octet-stream")
        part.set_payload(attachment.content)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", f"attachment; filename=\"{attachment.filename}\"")
        msg.attach(part)
        return msg

    def _send(self, msg: MIMEMultipart, recipients: Sequence[str]) -> None:
        server = None
        try:
            if self.smtp_config.get("use_ssl"):
                server = smtplib.SMTP_SSL(
                    self.smtp_config["host"],
                    self.smtp_config["port"],
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(self.smtp_config["host"], self.smtp_config["port"])
                if self.smtp_config.get("use_tls"):
                    server.starttls(context=ssl.create_default_context())

            if self.smtp_config["user"] and self.smtp_config["password"]:
                server.login(self.smtp_config["user"], self.smtp_config["password"])

            server.sendmail(msg["From"], list(recipients), msg.as_string())
        finally:
            if server is not None:
                try:
                    server.quit()
                except smtplib.SMTPException:
                    logger.debug("SMTP quit failed", exc_info=True)

    async def send_backup(
        self,
        *,
        recipients: Sequence[str],
        subject: str,
        body: str,
        attachment: EmailAttachment,
    ) -> Dict[str, Any]:
        """Send a backup archive to all recipients in one message.

        Args:
            recipients: Recipient addresses.
            subject: Email subject.
            body: Plain text body.
            attachment: Archive attachment.

        Returns:
            Dict[str, Any]: Send result.
        """

        if not self.smtp_config:
            logger.warning("SMTP not configured; skipping backup email to=%s", ",".join(recipients))
            return {"success": False, "error": "SMTP not configured"}

        if not recipients:
            return {"success": False, "error": "Recipient email not provided"}

        try:
            msg = self._build_message(recipients=recipients, subject=subject, body=body, attachment=attachment)
            await run_in_threadpool(self._send, msg, recipients)
        except Exception as e:
            logger.exception(
                "SMTP send failed to=%s host=%s port=%s use_ssl=%s",
                ",".join(recipients),
                self.smtp_config.get("host"),
                self.smtp_config.get("port"),
                self.smtp_config.get("use_ssl"),
            )
            return {"success": False, "error": str(e)}

        logger.info("Backup email sent to=%s attachment=%s", ",".join(recipients), attachment.filename)
        return {"success": True}
