"""Authentication providers.

Login asks each provider in order; the first success wins. The set is closed:
the database-backed user store, then the fixed operator account.
"""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from mathkids.config import Settings
from mathkids.db import Database, StoreUnavailableError
from mathkids.errors import ErrorCode
from mathkids.models.user import User
from mathkids.services.passwords import PasswordHasher

logger = logging.getLogger(__name__)

KIND_USER = "user"
KIND_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID | None
    email: str
    name: str
    kind: str

    @property
    def is_admin(self) -> bool:
        return self.kind == KIND_ADMIN

    def as_dict(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "email": self.email,
            "name": self.name,
            "kind": self.kind,
        }

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, email=user.email, name=user.display_name, kind=KIND_USER)


@dataclass(frozen=True)
class AuthOutcome:
    principal: Principal | None = None
    failure: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.principal is not None


class DatabaseProvider:
    name = "database"

    def __init__(self, database: Database, hasher: PasswordHasher):
        self.database = database
        self.hasher = hasher

    def authenticate(self, email: str, password: str) -> AuthOutcome:
        try:
            with self.database.session() as db:
                user = db.scalar(select(User).where(User.email == email))
                if user is None:
                    # TODO: hash a dummy value here so unknown emails cost the
                    # same as wrong passwords.
                    logger.info("Login failed: no account for %s", email)
                    return AuthOutcome(failure=ErrorCode.invalid_credentials)
                if not self.hasher.verify(password, user.password_hash):
                    logger.info("Login failed: wrong password for %s", email)
                    return AuthOutcome(failure=ErrorCode.invalid_credentials)
                return AuthOutcome(principal=Principal.from_user(user))
        except StoreUnavailableError as exc:
            logger.warning("Credential store unavailable during login: %s", exc)
            return AuthOutcome(failure=ErrorCode.store_unavailable)


class FixedAdminProvider:
    name = "admin"

    def __init__(self, settings: Settings):
        self.email = settings.admin_email.strip().lower()
        self.password = settings.admin_password
        self.display_name = settings.admin_name
        self.secret_key = settings.secret_key

    def matches_email(self, email: str) -> bool:
        return email == self.email

    def principal(self) -> Principal:
        return Principal(id=None, email=self.email, name=self.display_name, kind=KIND_ADMIN)

    def authenticate(self, email: str, password: str) -> AuthOutcome:
        if self.matches_email(email) and hmac.compare_digest(
            password.encode("utf-8"), self.password.encode("utf-8")
        ):
            return AuthOutcome(principal=self.principal())
        return AuthOutcome(failure=ErrorCode.invalid_credentials)

    def _sign(self, expires: int) -> str:
        # The password is part of the message so changing it voids old cookies.
        message = f"{self.email}:{expires}:{self.password}"
        return hmac.new(
            self.secret_key.encode(), message.encode(), hashlib.sha256
        ).hexdigest()

    def issue_remember_token(self, ttl: timedelta) -> str:
        """Stateless remember-me value for the admin: ``<expiry>.<signature>``.

        The admin has no user row, so nothing is stored; the token works with
        the database down and cannot be revoked before it expires.
        """
        expires = int((datetime.now(timezone.utc) + ttl).timestamp())
        return f"{expires}.{self._sign(expires)}"

    def verify_remember_token(self, raw_token: str | None) -> Principal | None:
        if not raw_token:
            return None
        expires, _, signature = raw_token.partition(".")
        if not expires.isdigit():
            return None
        if not hmac.compare_digest(
            signature.encode("utf-8"), self._sign(int(expires)).encode("utf-8")
        ):
            logger.warning("Rejected admin remember-me cookie with a bad signature")
            return None
        if int(expires) <= datetime.now(timezone.utc).timestamp():
            return None
        return self.principal()
