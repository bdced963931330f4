import logging

from mathkids.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="mathkids.tasks.tokens.purge_expired_tokens", ignore_result=True)
def purge_expired_tokens() -> None:
    """Periodic task deleting remember-me and reset tokens past expiry.

    Verification already ignores expired rows; this only bounds table growth.
    """
    from mathkids.config import settings
    from mathkids.db import Database, StoreUnavailableError
    from mathkids.services.container import build_services

    database = Database.from_settings(settings)
    if not database.is_configured:
        logger.info("Skipping token purge, database not configured")
        return
    services = build_services(settings, database=database)
    try:
        purged = services.purge_expired_tokens()
        logger.info(
            "Purged %d persistent and %d reset tokens",
            purged["persistent"],
            purged["reset"],
        )
    except StoreUnavailableError as e:
        logger.warning("Token purge skipped, database unavailable: %s", e)
    except Exception as e:
        logger.exception("Failed to purge expired tokens: %s", e)
    finally:
        services.close()
