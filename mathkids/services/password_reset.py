import logging
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import urlencode

from mathkids.config import Settings
from mathkids.db import Database, StoreUnavailableError
from mathkids.errors import ErrorCode, service_error
from mathkids.metrics import PASSWORD_RESET_EVENTS
from mathkids.services.common import require_valid_email, require_valid_password
from mathkids.services.mailer import EmailDispatcher, EmailDispatchError
from mathkids.services.passwords import PasswordHasher
from mathkids.services.providers import FixedAdminProvider
from mathkids.services.tokens import PersistentTokens, ResetTokens
from mathkids.services.users import get_by_email

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = (
    "If this email is registered, you will receive instructions to reset your password."
)
RESET_SUCCESS_MESSAGE = "Password reset successfully. Sign in with your new password."
INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class ResetRequestResult:
    message: str
    dev_info: dict | None = None


class PasswordResetService:
    def __init__(
        self,
        settings: Settings,
        database: Database,
        hasher: PasswordHasher,
        reset_tokens: ResetTokens,
        persistent_tokens: PersistentTokens,
        dispatcher: EmailDispatcher,
        admin: FixedAdminProvider,
    ):
        self.settings = settings
        self.database = database
        self.hasher = hasher
        self.reset_tokens = reset_tokens
        self.persistent_tokens = persistent_tokens
        self.dispatcher = dispatcher
        self.admin = admin

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.reset_token_ttl_minutes)

    def build_reset_link(self, raw_token: str, email: str) -> str:
        base = self.settings.frontend_url.rstrip("/")
        query = urlencode({"token": raw_token, "email": email})
        return f"{base}/cadastro/reset-password.html?{query}"

    def request_reset(self, email: str | None) -> ResetRequestResult:
        """Issue a reset token and email it when the account exists.

        The response never reveals whether the email is registered.
        """
        normalized = require_valid_email(email)
        generic = ResetRequestResult(message=GENERIC_RESET_MESSAGE)

        if self.admin.matches_email(normalized):
            logger.info("Ignoring reset request for the administrator account")
            PASSWORD_RESET_EVENTS.labels(event="request", outcome="admin").inc()
            return generic

        try:
            with self.database.session() as db:
                user = get_by_email(db, normalized)
                if user is None:
                    logger.info("Reset requested for unknown email %s", normalized)
                    PASSWORD_RESET_EVENTS.labels(event="request", outcome="unknown").inc()
                    return generic
                raw, _ = self.reset_tokens.issue(db, user.id, self.token_ttl)
                user_name = user.display_name
        except StoreUnavailableError as exc:
            logger.warning("Reset request for %s dropped, store unavailable: %s", normalized, exc)
            PASSWORD_RESET_EVENTS.labels(event="request", outcome="store_unavailable").inc()
            return generic

        link = self.build_reset_link(raw, normalized)
        email_sent = False
        email_error = None
        provider = self.dispatcher.provider
        try:
            result = self.dispatcher.send_password_reset(
                normalized, user_name, link, self.settings.reset_token_ttl_minutes
            )
            email_sent = result.sent
        except EmailDispatchError as exc:
            email_error = str(exc)
        PASSWORD_RESET_EVENTS.labels(event="request", outcome="issued").inc()

        if self.settings.is_production:
            return generic
        return ResetRequestResult(
            message=GENERIC_RESET_MESSAGE,
            dev_info={
                "resetToken": raw,
                "resetLink": link,
                "emailSent": email_sent,
                "provider": provider,
                "emailError": email_error,
            },
        )

    def redeem_reset(
        self, token: str | None, email: str | None, new_password: str | None
    ) -> None:
        if not token:
            raise service_error(ErrorCode.invalid_input, "Token is required")
        normalized = require_valid_email(email)
        require_valid_password(new_password, field="New password")
        if self.admin.matches_email(normalized):
            logger.warning("Blocked password reset attempt for the administrator account")
            raise service_error(
                ErrorCode.admin_reset_forbidden,
                "The administrator account password cannot be reset",
            )

        new_hash = self.hasher.hash(new_password)
        try:
            with self.database.session() as db:
                user = get_by_email(db, normalized)
                record = (
                    self.reset_tokens.redeem(db, token, user.id) if user else None
                )
                if record is None:
                    PASSWORD_RESET_EVENTS.labels(event="redeem", outcome="invalid").inc()
                    raise service_error(
                        ErrorCode.invalid_or_expired_token, INVALID_TOKEN_MESSAGE
                    )
                user.password_hash = new_hash
                self.persistent_tokens.revoke_all(db, user.id)
                user_id = user.id
        except StoreUnavailableError:
            PASSWORD_RESET_EVENTS.labels(event="redeem", outcome="store_unavailable").inc()
            raise service_error(
                ErrorCode.store_unavailable,
                "Password reset is temporarily unavailable",
            )

        PASSWORD_RESET_EVENTS.labels(event="redeem", outcome="success").inc()
        logger.info("Password reset completed for user %s", user_id)
