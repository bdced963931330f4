from dataclasses import replace
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import mathkids.models  # noqa: F401
from mathkids.config import Settings
from mathkids.db import Base, Database
from mathkids.main import create_app
from mathkids.services.container import build_services
from mathkids.services.mailer import DispatchResult, EmailDispatcher


class RecordingDispatcher(EmailDispatcher):
    """Collects reset emails instead of sending them."""

    def __init__(self, settings):
        super().__init__(settings)
        self.sent = []

    @property
    def provider(self) -> str:
        return "test"

    def send_password_reset(self, to, user_name, reset_link, ttl_minutes):
        self.sent.append(
            {
                "to": to,
                "user_name": user_name,
                "reset_link": reset_link,
                "ttl_minutes": ttl_minutes,
            }
        )
        return DispatchResult(sent=True, provider=self.provider, message_id="<test>")


@pytest.fixture()
def settings():
    return Settings(
        environment="test",
        database_url="sqlite://",
        db_auto_create=False,
        bcrypt_rounds=4,
        admin_email="adm@email.com",
        admin_password="123456",
        admin_name="Administrador",
        remember_me_ttl_days=30,
        reset_token_ttl_minutes=60,
        frontend_url="http://localhost:3000",
        smtp_host="",
        cors_origins=[],
        static_dir=None,
        log_level="WARNING",
        log_format="text",
    )


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    session = Session(engine)
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def database(engine):
    return Database(engine)


@pytest.fixture()
def mailer(settings):
    return RecordingDispatcher(settings)


@pytest.fixture()
def services(settings, database, mailer):
    return build_services(settings, database=database, dispatcher=mailer)


@pytest.fixture()
def offline_services(settings, mailer):
    offline = replace(settings, database_url=None)
    return build_services(offline, database=Database(None), dispatcher=mailer)


@pytest.fixture()
def client(settings, services):
    with TestClient(create_app(settings, services)) as test_client:
        yield test_client


@pytest.fixture()
def offline_client(offline_services):
    app = create_app(offline_services.settings, offline_services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def user(services):
    return services.registrations.register(
        "Ana", "ana@x.com", "abcdef", date(1990, 1, 1), True
    )
