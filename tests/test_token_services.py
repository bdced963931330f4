from datetime import timedelta
from unittest.mock import patch

from mathkids.models.auth import PasswordResetToken, PersistentToken
from mathkids.services.tokens import generate_token


def _count(db_session, model):
    return db_session.query(model).count()


class TestGenerateToken:
    def test_token_is_64_hex_chars(self):
        token = generate_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert generate_token() != generate_token()


class TestPersistentTokens:
    def test_issue_stores_only_hash(self, db_session, services, user):
        raw, record = services.persistent_tokens.issue(
            db_session, user.id, timedelta(days=30), user_agent="pytest"
        )
        db_session.commit()
        assert record.token_hash != raw
        assert services.hasher.verify(raw, record.token_hash)
        assert record.user_agent == "pytest"

    def test_verify_returns_owner(self, db_session, services, user):
        raw, _ = services.persistent_tokens.issue(db_session, user.id, timedelta(days=30))
        db_session.commit()
        record = services.persistent_tokens.verify(db_session, raw)
        assert record is not None
        assert record.user_id == user.id

    def test_verify_unknown_token(self, db_session, services, user):
        services.persistent_tokens.issue(db_session, user.id, timedelta(days=30))
        db_session.commit()
        assert services.persistent_tokens.verify(db_session, generate_token()) is None

    def test_verify_missing_token(self, db_session, services):
        assert services.persistent_tokens.verify(db_session, None) is None
        assert services.persistent_tokens.verify(db_session, "") is None

    def test_expired_token_is_rejected(self, db_session, services, user):
        raw, _ = services.persistent_tokens.issue(
            db_session, user.id, timedelta(minutes=-1)
        )
        db_session.commit()
        assert services.persistent_tokens.verify(db_session, raw) is None

    def test_revoked_token_is_rejected(self, db_session, services, user):
        raw, record = services.persistent_tokens.issue(
            db_session, user.id, timedelta(days=30)
        )
        db_session.commit()
        assert services.persistent_tokens.revoke(db_session, record.id) is True
        db_session.commit()
        assert services.persistent_tokens.verify(db_session, raw) is None

    def test_token_revoked_between_scan_and_update(self, db_session, services, user):
        raw, _ = services.persistent_tokens.issue(
            db_session, user.id, timedelta(days=30)
        )
        db_session.commit()
        tokens = services.persistent_tokens
        match = tokens._match

        def match_then_revoke(candidates, raw_token):
            found = match(candidates, raw_token)
            tokens.revoke(db_session, found.id)
            return found

        with patch.object(tokens, "_match", side_effect=match_then_revoke):
            assert tokens.verify(db_session, raw) is None

    def test_revoke_unknown_id(self, db_session, services):
        from uuid import uuid4

        assert services.persistent_tokens.revoke(db_session, uuid4()) is False

    def test_revoke_all_for_user(self, db_session, services, user):
        for _ in range(3):
            services.persistent_tokens.issue(db_session, user.id, timedelta(days=30))
        db_session.commit()
        assert services.persistent_tokens.revoke_all(db_session, user.id) == 3
        db_session.commit()
        assert _count(db_session, PersistentToken) == 0

    def test_purge_expired_keeps_live_tokens(self, db_session, services, user):
        services.persistent_tokens.issue(db_session, user.id, timedelta(minutes=-5))
        raw, _ = services.persistent_tokens.issue(db_session, user.id, timedelta(days=1))
        db_session.commit()
        assert services.persistent_tokens.purge_expired(db_session) == 1
        db_session.commit()
        assert _count(db_session, PersistentToken) == 1
        assert services.persistent_tokens.verify(db_session, raw) is not None


class TestResetTokens:
    def test_redeem_marks_token_used(self, db_session, services, user):
        raw, record = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        redeemed = services.reset_tokens.redeem(db_session, raw, user.id)
        db_session.commit()
        assert redeemed is not None
        assert redeemed.id == record.id
        assert redeemed.used is True
        assert redeemed.used_at is not None

    def test_token_is_single_use(self, db_session, services, user):
        raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        assert services.reset_tokens.redeem(db_session, raw, user.id) is not None
        db_session.commit()
        assert services.reset_tokens.redeem(db_session, raw, user.id) is None

    def test_expired_token_cannot_be_redeemed(self, db_session, services, user):
        raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(minutes=-1))
        db_session.commit()
        assert services.reset_tokens.redeem(db_session, raw, user.id) is None

    def test_token_is_scoped_to_its_user(self, db_session, services, user):
        from datetime import date

        other = services.registrations.register(
            "Bia", "bia@x.com", "abcdef", date(1992, 5, 5), True
        )
        raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        assert services.reset_tokens.redeem(db_session, raw, other.id) is None
        assert services.reset_tokens.redeem(db_session, raw, user.id) is not None

    def test_live_candidates_exclude_used_and_expired(self, db_session, services, user):
        services.reset_tokens.issue(db_session, user.id, timedelta(minutes=-1))
        used_raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        _, live = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        services.reset_tokens.redeem(db_session, used_raw, user.id)
        db_session.commit()
        candidates = services.reset_tokens.live_candidates(db_session, user.id)
        assert [c.id for c in candidates] == [live.id]

    def test_purge_expired(self, db_session, services, user):
        services.reset_tokens.issue(db_session, user.id, timedelta(minutes=-1))
        services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        assert services.reset_tokens.purge_expired(db_session) == 1
        db_session.commit()
        assert _count(db_session, PasswordResetToken) == 1

    def test_concurrent_redemption_loses(self, db_session, services, user):
        raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        # Candidate list as seen by a request that scanned before the other
        # request marked the token used.
        stale = services.reset_tokens.live_candidates(db_session, user.id)
        assert services.reset_tokens.redeem(db_session, raw, user.id) is not None
        db_session.commit()

        with patch.object(
            services.reset_tokens, "live_candidates", return_value=stale
        ):
            assert services.reset_tokens.redeem(db_session, raw, user.id) is None

    def test_expired_between_scan_and_update(self, db_session, services, user):
        raw, _ = services.reset_tokens.issue(db_session, user.id, timedelta(hours=1))
        db_session.commit()
        stale = services.reset_tokens.live_candidates(db_session, user.id)
        stale[0].expires_at = stale[0].created_at
        db_session.commit()

        with patch.object(
            services.reset_tokens, "live_candidates", return_value=stale
        ):
            assert services.reset_tokens.redeem(db_session, raw, user.id) is None
