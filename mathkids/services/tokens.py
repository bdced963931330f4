"""Hashed, expiring tokens for remember-me sessions and password resets.

Only a bcrypt digest of each token is stored. Because bcrypt salts every
digest, a presented token cannot be looked up by value: verification scans
the live candidates for the scope and hash-checks each one. The matching row
is then claimed with a conditional UPDATE that re-checks liveness, so two
concurrent redemptions of the same token cannot both succeed.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from mathkids.models.auth import PasswordResetToken, PersistentToken
from mathkids.services.common import coerce_uuid
from mathkids.services.passwords import PasswordHasher

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _HashedTokens:
    model: type[PersistentToken] | type[PasswordResetToken]
    kind: str

    def __init__(self, hasher: PasswordHasher):
        self.hasher = hasher

    def _match(self, candidates, raw_token: str):
        for candidate in candidates:
            if self.hasher.verify(raw_token, candidate.token_hash):
                return candidate
        return None

    def revoke(self, db: Session, token_id) -> bool:
        result = db.execute(
            delete(self.model)
            .where(self.model.id == coerce_uuid(token_id))
            .execution_options(synchronize_session=False)
        )
        revoked = result.rowcount > 0
        if revoked:
            logger.info("Revoked %s token %s", self.kind, token_id)
        return revoked

    def purge_expired(self, db: Session, now: datetime | None = None) -> int:
        result = db.execute(
            delete(self.model)
            .where(self.model.expires_at <= (now or _now()))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class PersistentTokens(_HashedTokens):
    model = PersistentToken
    kind = "persistent"

    def issue(
        self,
        db: Session,
        user_id,
        ttl: timedelta,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> tuple[str, PersistentToken]:
        raw = generate_token()
        now = _now()
        record = PersistentToken(
            user_id=coerce_uuid(user_id),
            token_hash=self.hasher.hash(raw),
            expires_at=now + ttl,
            created_at=now,
            last_used_at=now,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        db.add(record)
        db.flush()
        logger.info("Issued persistent token %s for user %s", record.id, user_id)
        return raw, record

    def verify(self, db: Session, raw_token: str | None) -> PersistentToken | None:
        if not raw_token:
            return None
        now = _now()
        # The cookie carries no owner hint, so the scope is every live token.
        candidates = db.scalars(
            select(PersistentToken)
            .where(PersistentToken.expires_at > now)
            .order_by(PersistentToken.created_at.desc())
        ).all()
        match = self._match(candidates, raw_token)
        if match is None:
            return None
        result = db.execute(
            update(PersistentToken)
            .where(PersistentToken.id == match.id, PersistentToken.expires_at > now)
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Revoked or swept between the scan and the update
            return None
        db.expire(match)
        return match

    def revoke_all(self, db: Session, user_id) -> int:
        result = db.execute(
            delete(PersistentToken)
            .where(PersistentToken.user_id == coerce_uuid(user_id))
            .execution_options(synchronize_session=False)
        )
        logger.info("Revoked %d persistent tokens for user %s", result.rowcount, user_id)
        return result.rowcount


class ResetTokens(_HashedTokens):
    model = PasswordResetToken
    kind = "reset"

    def issue(
        self, db: Session, user_id, ttl: timedelta
    ) -> tuple[str, PasswordResetToken]:
        raw = generate_token()
        now = _now()
        record = PasswordResetToken(
            user_id=coerce_uuid(user_id),
            token_hash=self.hasher.hash(raw),
            expires_at=now + ttl,
            created_at=now,
            used=False,
        )
        db.add(record)
        db.flush()
        logger.info(
            "Issued reset token %s for user %s (expires in %s)", record.id, user_id, ttl
        )
        return raw, record

    def live_candidates(self, db: Session, user_id, now: datetime | None = None):
        return db.scalars(
            select(PasswordResetToken)
            .where(
                PasswordResetToken.user_id == coerce_uuid(user_id),
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > (now or _now()),
            )
            .order_by(PasswordResetToken.created_at.desc())
        ).all()

    def redeem(
        self, db: Session, raw_token: str | None, user_id
    ) -> PasswordResetToken | None:
        """Find the user's live token matching raw_token and mark it used.

        Returns None when nothing matches or when another request consumed
        the token first.
        """
        if not raw_token:
            return None
        now = _now()
        match = self._match(self.live_candidates(db, user_id, now), raw_token)
        if match is None:
            return None
        result = db.execute(
            update(PasswordResetToken)
            .where(
                PasswordResetToken.id == match.id,
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > now,
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("Reset token %s was consumed concurrently", match.id)
            return None
        db.expire(match)
        return match
