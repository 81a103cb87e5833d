"""Tests for the SMTP email queue."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from backend.services.backup_scheduler.delivery import email_queue as email_queue_module
from backend.services.backup_scheduler.delivery.base import EmailAttachment
from backend.services.backup_scheduler.delivery.email_queue import SmtpEmailQueue, smtp_config_from_settings


SMTP_CONFIG = {
    "host": "smtp.example.com",
    "port": 587,
    "user": "mailer",
    "password": "s3cret",
    "from_addr": "backups@example.com",
    "use_tls": True,
    "use_ssl": False,
}

ATTACHMENT = EmailAttachment(filename="backup-Nightly-2024-01-01.zip", content=b"PK\x05\x06")


async def test_sends_one_message_to_all_recipients():
    server = MagicMock()
    with patch.object(email_queue_module.smtplib, "SMTP", return_value=server) as smtp_cls:
        result = await SmtpEmailQueue(dict(SMTP_CONFIG)).send_backup(
            recipients=["ops@example.com", "cto@example.com"],
            subject="Automated Backup - 2024-01-01",
            body="Backup attached",
            attachment=ATTACHMENT,
        )

    assert result == {"success": True}
    smtp_cls.assert_called_once_with("smtp.example.com", 587)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "s3cret")
    from_addr, to_addrs, message = server.sendmail.call_args.args
    assert from_addr == "backups@example.com"
    assert to_addrs == ["ops@example.com", "cto@example.com"]
    assert "Subject: Automated Backup - 2024-01-01" in message
    assert 'filename="backup-Nightly-2024-01-01.zip"' in message
    server.quit.assert_called_once()


async def test_smtp_error_is_reported():
    server = MagicMock()
    server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"ops@example.com": (550, b"no such user")})
    with patch.object(email_queue_module.smtplib, "SMTP", return_value=server):
        result = await SmtpEmailQueue(dict(SMTP_CONFIG)).send_backup(
            recipients=["ops@example.com"],
            subject="s",
            body="b",
            attachment=ATTACHMENT,
        )

    assert result["success"] is False
    assert result["error"]
    server.quit.assert_called_once()


async def test_ssl_transport_skips_starttls():
    server = MagicMock()
    config = dict(SMTP_CONFIG, port=465, use_ssl=True)
    with patch.object(email_queue_module.smtplib, "SMTP_SSL", return_value=server) as smtp_ssl_cls:
        result = await SmtpEmailQueue(config).send_backup(
            recipients=["ops@example.com"],
            subject="s",
            body="b",
            attachment=ATTACHMENT,
        )

    assert result == {"success": True}
    assert smtp_ssl_cls.call_args.args == ("smtp.example.com", 465)
    server.starttls.assert_not_called()


async def test_unconfigured_smtp(monkeypatch):
    monkeypatch.setattr(email_queue_module.settings, "SMTP_HOST", "")

    result = await SmtpEmailQueue().send_backup(
        recipients=["ops@example.com"],
        subject="s",
        body="b",
        attachment=ATTACHMENT,
    )

    assert result == {"success": False, "error": "SMTP not configured"}


async def test_no_recipients():
    result = await SmtpEmailQueue(dict(SMTP_CONFIG)).send_backup(
        recipients=[],
        subject="s",
        body="b",
        attachment=ATTACHMENT,
    )

    assert result["success"] is False


@pytest.mark.parametrize("port,use_ssl,expected", [(587, False, False), (465, False, True), (2525, True, True)])
def test_config_from_settings(monkeypatch, port, use_ssl, expected):
    monkeypatch.setattr(email_queue_module.settings, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(email_queue_module.settings, "SMTP_PORT", port)
    monkeypatch.setattr(email_queue_module.settings, "SMTP_USE_SSL", use_ssl)

    config = smtp_config_from_settings()

    assert config["host"] == "smtp.example.com"
    assert config["port"] == port
    assert config["use_ssl"] is expected
