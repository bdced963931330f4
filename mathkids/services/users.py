import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mathkids.db import Database, StoreUnavailableError
from mathkids.errors import ErrorCode, service_error
from mathkids.models.user import User
from mathkids.services.common import (
    normalize_email,
    require_valid_email,
    require_valid_password,
)
from mathkids.services.passwords import PasswordHasher

logger = logging.getLogger(__name__)


def get_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == normalize_email(email)))


class Registrations:
    def __init__(
        self,
        database: Database,
        hasher: PasswordHasher,
        reserved_emails: frozenset[str] = frozenset(),
    ):
        self.database = database
        self.hasher = hasher
        self.reserved_emails = reserved_emails

    def register(
        self,
        name: str | None,
        email: str | None,
        password: str | None,
        birth_date: date | None,
        terms_accepted: bool | None,
    ) -> User:
        display_name = (name or "").strip()
        if not display_name:
            raise service_error(ErrorCode.invalid_input, "Name is required")
        normalized = require_valid_email(email)
        require_valid_password(password)
        if birth_date is None:
            raise service_error(ErrorCode.invalid_input, "Birth date is required")
        if birth_date > date.today():
            raise service_error(
                ErrorCode.invalid_input, "Birth date cannot be in the future"
            )
        if terms_accepted is not True:
            raise service_error(
                ErrorCode.invalid_input, "The terms and conditions must be accepted"
            )

        if normalized in self.reserved_emails:
            raise service_error(
                ErrorCode.duplicate_resource, "Email is already registered"
            )

        password_hash = self.hasher.hash(password)
        try:
            user = self._insert(normalized, password_hash, display_name, birth_date)
        except StoreUnavailableError:
            raise service_error(
                ErrorCode.store_unavailable,
                "Registration is temporarily unavailable",
            )
        logger.info("Registered user %s", user.id)
        return user

    def _insert(self, email, password_hash, display_name, birth_date) -> User:
        with self.database.session() as db:
            user = User(
                email=email,
                password_hash=password_hash,
                display_name=display_name,
                birth_date=birth_date,
                terms_accepted=True,
            )
            try:
                db.add(user)
                db.flush()
            except IntegrityError:
                db.rollback()
                raise service_error(
                    ErrorCode.duplicate_resource, "Email is already registered"
                )
            db.refresh(user)
            db.expunge(user)
        return user
