import html
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from mathkids.config import Settings

logger = logging.getLogger(__name__)

RESET_SUBJECT = "MathKids - Redefinição de senha"


@dataclass(frozen=True)
class DispatchResult:
    sent: bool
    provider: str
    message_id: str | None = None
    error: str | None = None


class EmailDispatchError(Exception):
    pass


def build_reset_message(
    settings: Settings, to: str, user_name: str, reset_link: str, ttl_minutes: int
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = RESET_SUBJECT
    msg["From"] = formataddr((settings.email_from_name, settings.email_from))
    msg["To"] = to
    msg["Message-ID"] = make_msgid(domain=settings.email_from.rsplit("@", 1)[-1])
    msg.set_content(
        f"Olá, {user_name}!\n\n"
        "Recebemos uma solicitação para redefinir a senha da sua conta MathKids.\n"
        f"Use o link abaixo (válido por {ttl_minutes} minutos):\n\n"
        f"{reset_link}\n\n"
        "Se você não solicitou a redefinição, ignore este email.\n"
    )
    safe_name = html.escape(user_name)
    safe_link = html.escape(reset_link, quote=True)
    msg.add_alternative(
        f"<p>Olá, {safe_name}!</p>"
        "<p>Recebemos uma solicitação para redefinir a senha da sua conta MathKids.</p>"
        f'<p><a href="{safe_link}">Redefinir senha</a> '
        f"(válido por {ttl_minutes} minutos)</p>"
        "<p>Se você não solicitou a redefinição, ignore este email.</p>",
        subtype="html",
    )
    return msg


class EmailDispatcher:
    """Sends reset emails over SMTP.

    Without SMTP_HOST the message is only logged, which keeps local
    development working without a mail server.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def provider(self) -> str:
        return "smtp" if self.settings.smtp_host else "log"

    def provider_info(self) -> dict:
        return {
            "provider": self.provider,
            "from_email": self.settings.email_from,
            "from_name": self.settings.email_from_name,
            "smtp_host": self.settings.smtp_host or None,
        }

    def is_healthy(self) -> bool:
        """Log mode is always healthy; SMTP mode needs a server answering NOOP."""
        if not self.settings.smtp_host:
            return True
        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.smtp_timeout,
            ) as server:
                code, _ = server.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP server %s unreachable: %s", self.settings.smtp_host, e)
            return False
        return code == 250

    def send_password_reset(
        self, to: str, user_name: str, reset_link: str, ttl_minutes: int
    ) -> DispatchResult:
        msg = build_reset_message(self.settings, to, user_name, reset_link, ttl_minutes)
        if not self.settings.smtp_host:
            logger.info("Would send password reset email to %s", to)
            return DispatchResult(sent=False, provider=self.provider)

        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.smtp_timeout,
            ) as server:
                if self.settings.smtp_use_tls:
                    server.starttls()
                if self.settings.smtp_username:
                    server.login(self.settings.smtp_username, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Password reset email to %s failed: %s", to, e)
            raise EmailDispatchError(str(e)) from e

        logger.info("Sent password reset email to %s", to)
        return DispatchResult(
            sent=True, provider=self.provider, message_id=msg.get("Message-ID")
        )
