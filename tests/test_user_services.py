from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from mathkids.models.user import User


def _register(services, **overrides):
    data = {
        "name": "Ana",
        "email": "ana@x.com",
        "password": "abcdef",
        "birth_date": date(1990, 1, 1),
        "terms_accepted": True,
    }
    data.update(overrides)
    return services.registrations.register(**data)


class TestRegistrations:
    def test_register_user(self, services, db_session):
        user = _register(services)
        assert user.id is not None
        assert user.email == "ana@x.com"
        assert user.display_name == "Ana"
        stored = db_session.get(User, user.id)
        assert stored.password_hash != "abcdef"
        assert services.hasher.verify("abcdef", stored.password_hash)
        assert stored.terms_accepted is True

    def test_email_is_normalized(self, services):
        user = _register(services, email="  Ana@X.com ", name="  Ana  ")
        assert user.email == "ana@x.com"
        assert user.display_name == "Ana"

    def test_duplicate_email(self, services):
        _register(services)
        with pytest.raises(HTTPException) as exc:
            _register(services, email="ANA@x.com")
        assert exc.value.status_code == 409
        assert exc.value.detail["code"] == "duplicate_resource"

    def test_admin_email_is_reserved(self, services):
        with pytest.raises(HTTPException) as exc:
            _register(services, email="adm@email.com")
        assert exc.value.status_code == 409

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"name": "   "},
            {"email": None},
            {"email": "ana@x"},
            {"email": "ana x@x.com"},
            {"password": None},
            {"password": "abc"},
            {"password": "a" * 129},
            {"birth_date": None},
            {"terms_accepted": False},
            {"terms_accepted": None},
        ],
    )
    def test_invalid_input(self, services, overrides):
        with pytest.raises(HTTPException) as exc:
            _register(services, **overrides)
        assert exc.value.status_code == 400
        assert exc.value.detail["code"] == "invalid_input"

    def test_birth_date_in_future(self, services):
        with pytest.raises(HTTPException) as exc:
            _register(services, birth_date=date.today() + timedelta(days=1))
        assert exc.value.status_code == 400
        assert "future" in exc.value.detail["message"]

    def test_store_unavailable(self, offline_services):
        with pytest.raises(HTTPException) as exc:
            _register(offline_services)
        assert exc.value.status_code == 503
        assert exc.value.detail["code"] == "store_unavailable"
