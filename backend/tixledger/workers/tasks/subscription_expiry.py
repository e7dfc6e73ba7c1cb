"""Periodic Celery task: move lapsed subscriptions out of "active".

Uses a raw sync session since this is a platform-level job across tenants.
"""

import structlog
from sqlalchemy.orm import Session

from tixledger.workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(name="tasks.subscription_expiry", queue="billing")
def sweep_expired_subscriptions():
    from tixledger.services.subscription_service import expire_lapsed_subscriptions_sync
    from tixledger.workers.base_task import sync_engine

    with Session(sync_engine) as db:
        result = expire_lapsed_subscriptions_sync(db)

    if result["expired"] or result["cancelled"]:
        logger.info("subscription_expiry.swept", **result)
    else:
        logger.info("subscription_expiry.nothing_to_sweep")
    return result
