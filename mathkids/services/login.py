import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta

from mathkids.config import Settings
from mathkids.db import Database, StoreUnavailableError
from mathkids.errors import STORE_UNAVAILABLE_MESSAGE, ErrorCode, service_error
from mathkids.metrics import LOGIN_ATTEMPTS
from mathkids.models.user import User
from mathkids.services.common import require_valid_email
from mathkids.services.providers import AuthOutcome, FixedAdminProvider, Principal
from mathkids.services.tokens import PersistentTokens

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


@dataclass(frozen=True)
class LoginResult:
    principal: Principal
    session_token: str
    persistent_token: str | None = None
    admin_remember_token: str | None = None

    @property
    def remembered(self) -> bool:
        return bool(self.persistent_token or self.admin_remember_token)


class LoginService:
    def __init__(
        self,
        settings: Settings,
        database: Database,
        providers: Sequence,
        persistent_tokens: PersistentTokens,
        admin: FixedAdminProvider | None = None,
    ):
        self.settings = settings
        self.database = database
        self.providers = tuple(providers)
        self.persistent_tokens = persistent_tokens
        self.admin = admin

    @property
    def remember_me_ttl(self) -> timedelta:
        return timedelta(days=self.settings.remember_me_ttl_days)

    def authenticate(self, email: str, password: str) -> AuthOutcome:
        """Ask each provider in order and return the first success.

        When every provider fails, store_unavailable outranks
        invalid_credentials so callers can tell a degraded service from a
        wrong password.
        """
        failures = []
        for provider in self.providers:
            outcome = provider.authenticate(email, password)
            if outcome.ok:
                return outcome
            failures.append(outcome.failure)
        if ErrorCode.store_unavailable in failures:
            return AuthOutcome(failure=ErrorCode.store_unavailable)
        return AuthOutcome(failure=ErrorCode.invalid_credentials)

    def login(
        self,
        email: str | None,
        password: str | None,
        remember_me: bool = False,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> LoginResult:
        normalized = require_valid_email(email)
        if not password:
            raise service_error(ErrorCode.invalid_input, "Password is required")

        outcome = self.authenticate(normalized, password)
        if outcome.failure == ErrorCode.store_unavailable:
            LOGIN_ATTEMPTS.labels(outcome="store_unavailable").inc()
            raise service_error(ErrorCode.store_unavailable, STORE_UNAVAILABLE_MESSAGE)
        if not outcome.ok:
            LOGIN_ATTEMPTS.labels(outcome="invalid_credentials").inc()
            raise service_error(
                ErrorCode.invalid_credentials, INVALID_CREDENTIALS_MESSAGE
            )

        principal = outcome.principal
        persistent_token = None
        admin_remember_token = None
        if remember_me and principal.is_admin:
            if self.admin is not None:
                admin_remember_token = self.admin.issue_remember_token(
                    self.remember_me_ttl
                )
        elif remember_me:
            persistent_token = self._issue_persistent_token(
                principal, user_agent, ip_address
            )

        LOGIN_ATTEMPTS.labels(outcome=principal.kind).inc()
        logger.info("Login succeeded for %s (%s)", principal.email, principal.kind)
        return LoginResult(
            principal=principal,
            session_token=secrets.token_urlsafe(32),
            persistent_token=persistent_token,
            admin_remember_token=admin_remember_token,
        )

    def _issue_persistent_token(
        self, principal: Principal, user_agent: str | None, ip_address: str | None
    ) -> str | None:
        try:
            with self.database.session() as db:
                raw, _ = self.persistent_tokens.issue(
                    db,
                    principal.id,
                    self.remember_me_ttl,
                    user_agent=user_agent,
                    ip_address=ip_address,
                )
            return raw
        except StoreUnavailableError as exc:
            # The login itself already succeeded; only remember-me is lost.
            logger.warning(
                "Could not issue persistent token for %s: %s", principal.email, exc
            )
            return None

    def resolve(
        self, raw_token: str | None, admin_token: str | None = None
    ) -> Principal:
        """Principal behind the remember-me cookies.

        The signed admin cookie is checked first and needs no database.
        """
        if admin_token and self.admin is not None:
            principal = self.admin.verify_remember_token(admin_token)
            if principal is not None:
                return principal
        if not raw_token:
            raise service_error(
                ErrorCode.invalid_or_expired_token,
                "Authentication token not found",
                status_code=401,
            )
        try:
            with self.database.session() as db:
                record = self.persistent_tokens.verify(db, raw_token)
                user = db.get(User, record.user_id) if record else None
                if user is None:
                    raise service_error(
                        ErrorCode.invalid_or_expired_token,
                        "Invalid or expired token",
                        status_code=401,
                    )
                return Principal.from_user(user)
        except StoreUnavailableError as exc:
            logger.warning("Cannot verify persistent token, store unavailable: %s", exc)
            raise service_error(
                ErrorCode.store_unavailable,
                "Saved session cannot be verified right now",
                status_code=401,
            )

    def logout(self, raw_token: str | None) -> bool:
        """Revoke the presented persistent token. Never fails."""
        if not raw_token:
            return False
        try:
            with self.database.session() as db:
                record = self.persistent_tokens.verify(db, raw_token)
                if record is None:
                    return False
                return self.persistent_tokens.revoke(db, record.id)
        except StoreUnavailableError as exc:
            logger.warning("Logout could not revoke persistent token: %s", exc)
            return False
