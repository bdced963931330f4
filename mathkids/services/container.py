import logging
from dataclasses import dataclass

from mathkids.config import Settings
from mathkids.db import Database, StoreUnavailableError
from mathkids.metrics import EXPIRED_TOKENS_PURGED
from mathkids.services.login import LoginService
from mathkids.services.mailer import EmailDispatcher
from mathkids.services.password_reset import PasswordResetService
from mathkids.services.passwords import PasswordHasher
from mathkids.services.providers import DatabaseProvider, FixedAdminProvider
from mathkids.services.tokens import PersistentTokens, ResetTokens
from mathkids.services.users import Registrations

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """Everything the auth routes need, built once per process."""

    settings: Settings
    database: Database
    hasher: PasswordHasher
    persistent_tokens: PersistentTokens
    reset_tokens: ResetTokens
    dispatcher: EmailDispatcher
    admin: FixedAdminProvider
    registrations: Registrations
    login: LoginService
    password_reset: PasswordResetService

    def purge_expired_tokens(self) -> dict[str, int]:
        with self.database.session() as db:
            purged = {
                "persistent": self.persistent_tokens.purge_expired(db),
                "reset": self.reset_tokens.purge_expired(db),
            }
        for kind, count in purged.items():
            EXPIRED_TOKENS_PURGED.labels(kind=kind).inc(count)
        return purged

    def startup(self) -> None:
        if not self.database.is_configured:
            return
        try:
            if self.settings.db_auto_create:
                self.database.create_all()
            purged = self.purge_expired_tokens()
            logger.info("Startup purge removed expired tokens: %s", purged)
        except StoreUnavailableError as exc:
            logger.warning("Database unreachable at startup: %s", exc)

    def close(self) -> None:
        self.database.dispose()


def build_services(
    settings: Settings,
    database: Database | None = None,
    dispatcher: EmailDispatcher | None = None,
) -> AuthServices:
    database = database or Database.from_settings(settings)
    dispatcher = dispatcher or EmailDispatcher(settings)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    persistent_tokens = PersistentTokens(hasher)
    reset_tokens = ResetTokens(hasher)
    admin = FixedAdminProvider(settings)
    providers = (DatabaseProvider(database, hasher), admin)
    return AuthServices(
        settings=settings,
        database=database,
        hasher=hasher,
        persistent_tokens=persistent_tokens,
        reset_tokens=reset_tokens,
        dispatcher=dispatcher,
        admin=admin,
        registrations=Registrations(
            database, hasher, reserved_emails=frozenset({admin.email})
        ),
        login=LoginService(
            settings, database, providers, persistent_tokens, admin=admin
        ),
        password_reset=PasswordResetService(
            settings,
            database,
            hasher,
            reset_tokens,
            persistent_tokens,
            dispatcher,
            admin,
        ),
    )
