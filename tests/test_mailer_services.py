import html
import smtplib
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from mathkids.services.mailer import (
    RESET_SUBJECT,
    EmailDispatchError,
    EmailDispatcher,
    build_reset_message,
)

LINK = "http://localhost:3000/cadastro/reset-password.html?token=abc&email=ana%40x.com"


@pytest.fixture()
def smtp_settings(settings):
    return replace(
        settings,
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_username="mailer",
        smtp_password="secret",
        smtp_use_tls=True,
    )


class TestBuildResetMessage:
    def test_headers_and_body(self, settings):
        msg = build_reset_message(settings, "ana@x.com", "Ana", LINK, 60)
        assert msg["Subject"] == RESET_SUBJECT
        assert msg["To"] == "ana@x.com"
        assert settings.email_from in msg["From"]
        assert msg["Message-ID"]
        text = msg.get_body(preferencelist=("plain",)).get_content()
        body = msg.get_body(preferencelist=("html",)).get_content()
        assert "Ana" in text
        assert LINK in text
        assert "60 minutos" in text
        assert f'href="{html.escape(LINK)}"' in body

    def test_user_values_are_escaped_in_html(self, settings):
        name = '<a href="https://evil.example">Clique aqui</a>'
        link = 'http://localhost:3000/r?token=a"><script>x</script>'
        msg = build_reset_message(settings, "v@x.com", name, link, 15)
        body = msg.get_body(preferencelist=("html",)).get_content()
        assert "<a href=\"https://evil.example\">" not in body
        assert "&lt;a href=&quot;https://evil.example&quot;&gt;" in body
        assert "<script>" not in body
        text = msg.get_body(preferencelist=("plain",)).get_content()
        assert name in text


class TestEmailDispatcher:
    def test_without_smtp_host_only_logs(self, settings):
        dispatcher = EmailDispatcher(settings)
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            result = dispatcher.send_password_reset("ana@x.com", "Ana", LINK, 60)
        mock_smtp.assert_not_called()
        assert result.sent is False
        assert result.provider == "log"

    def test_sends_over_smtp(self, smtp_settings):
        dispatcher = EmailDispatcher(smtp_settings)
        server = MagicMock()
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__enter__.return_value = server
            result = dispatcher.send_password_reset("ana@x.com", "Ana", LINK, 60)
        mock_smtp.assert_called_once_with(
            "smtp.example.com", 587, timeout=smtp_settings.smtp_timeout
        )
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        server.send_message.assert_called_once()
        assert result.sent is True
        assert result.provider == "smtp"
        assert result.message_id

    def test_skips_tls_and_login_when_disabled(self, smtp_settings):
        dispatcher = EmailDispatcher(
            replace(smtp_settings, smtp_use_tls=False, smtp_username="")
        )
        server = MagicMock()
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__enter__.return_value = server
            dispatcher.send_password_reset("ana@x.com", "Ana", LINK, 60)
        server.starttls.assert_not_called()
        server.login.assert_not_called()

    def test_smtp_failure_raises_dispatch_error(self, smtp_settings):
        dispatcher = EmailDispatcher(smtp_settings)
        server = MagicMock()
        server.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__enter__.return_value = server
            with pytest.raises(EmailDispatchError):
                dispatcher.send_password_reset("ana@x.com", "Ana", LINK, 60)

    def test_connection_failure_raises_dispatch_error(self, smtp_settings):
        dispatcher = EmailDispatcher(smtp_settings)
        with patch(
            "mathkids.services.mailer.smtplib.SMTP",
            side_effect=ConnectionRefusedError("refused"),
        ):
            with pytest.raises(EmailDispatchError):
                dispatcher.send_password_reset("ana@x.com", "Ana", LINK, 60)


class TestEmailHealth:
    def test_log_mode_is_healthy(self, settings):
        dispatcher = EmailDispatcher(settings)
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            assert dispatcher.is_healthy() is True
        mock_smtp.assert_not_called()

    def test_smtp_server_answering_noop(self, smtp_settings):
        dispatcher = EmailDispatcher(smtp_settings)
        server = MagicMock()
        server.noop.return_value = (250, b"OK")
        with patch("mathkids.services.mailer.smtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__enter__.return_value = server
            assert dispatcher.is_healthy() is True
        mock_smtp.assert_called_once_with(
            "smtp.example.com", 587, timeout=smtp_settings.smtp_timeout
        )
        server.noop.assert_called_once()

    def test_smtp_server_unreachable(self, smtp_settings):
        dispatcher = EmailDispatcher(smtp_settings)
        with patch(
            "mathkids.services.mailer.smtplib.SMTP",
            side_effect=TimeoutError("timed out"),
        ):
            assert dispatcher.is_healthy() is False

    def test_provider_info(self, smtp_settings):
        info = EmailDispatcher(smtp_settings).provider_info()
        assert info["provider"] == "smtp"
        assert info["smtp_host"] == "smtp.example.com"
        assert info["from_email"] == smtp_settings.email_from
