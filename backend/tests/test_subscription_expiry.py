"""Tests for the periodic subscription expiry sweep."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from tixledger.models import Base
from tixledger.models.billing_plan import BillingPlan
from tixledger.models.subscription import UserSubscription
from tixledger.models.tenant import Tenant
from tixledger.services.subscription_service import expire_lapsed_subscriptions_sync

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sync_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _seed(engine, now: datetime = NOW) -> dict[str, str]:
    with Session(engine) as db:
        tenant = Tenant(user_id="producer-x", app_id="public", is_pro=False, status="active")
        db.add(tenant)
        db.flush()
        plan = BillingPlan(
            tenant_id=tenant.id, app_id="public", name="Basic", price=Decimal("199"),
            currency="INR", billing_cycle="monthly", initial_tickets=0,
        )
        db.add(plan)
        db.flush()

        def subscription(end: datetime, cancel_at_period_end: bool = False, status: str = "active"):
            sub = UserSubscription(
                tenant_id=tenant.id, user_id=tenant.user_id, app_id="public", plan_id=plan.id,
                status=status,
                current_period_start=end - timedelta(days=30),
                current_period_end=end,
                cancel_at_period_end=cancel_at_period_end,
            )
            db.add(sub)
            return sub

        lapsed = subscription(now - timedelta(days=1))
        scheduled = subscription(now - timedelta(hours=1), cancel_at_period_end=True)
        current = subscription(now + timedelta(days=10))
        already_cancelled = subscription(now - timedelta(days=5), status="cancelled")
        db.commit()
        return {
            "lapsed": str(lapsed.id),
            "scheduled": str(scheduled.id),
            "current": str(current.id),
            "already_cancelled": str(already_cancelled.id),
        }


def _statuses(engine) -> dict[str, str]:
    with Session(engine) as db:
        rows = db.execute(select(UserSubscription.id, UserSubscription.status)).all()
        return {str(sub_id): status for sub_id, status in rows}


class TestExpireLapsedSubscriptions:
    def test_sweep(self, sync_engine):
        ids = _seed(sync_engine)

        with Session(sync_engine) as db:
            result = expire_lapsed_subscriptions_sync(db, now=NOW)

        assert result == {"expired": 1, "cancelled": 1}
        statuses = _statuses(sync_engine)
        assert statuses[ids["lapsed"]] == "expired"
        assert statuses[ids["scheduled"]] == "cancelled"
        assert statuses[ids["current"]] == "active"
        assert statuses[ids["already_cancelled"]] == "cancelled"

    def test_second_sweep_finds_nothing(self, sync_engine):
        _seed(sync_engine)
        with Session(sync_engine) as db:
            expire_lapsed_subscriptions_sync(db, now=NOW)
        with Session(sync_engine) as db:
            assert expire_lapsed_subscriptions_sync(db, now=NOW) == {"expired": 0, "cancelled": 0}


class TestSweepTask:
    def test_task_uses_worker_engine(self, sync_engine):
        from tixledger.workers.tasks.subscription_expiry import sweep_expired_subscriptions

        _seed(sync_engine, now=datetime.now(timezone.utc))
        with patch("tixledger.workers.base_task.sync_engine", sync_engine):
            result = sweep_expired_subscriptions()

        assert result == {"expired": 1, "cancelled": 1}

    def test_task_logs_counts_as_structured_fields(self, sync_engine):
        from tixledger.workers.tasks import subscription_expiry

        _seed(sync_engine, now=datetime.now(timezone.utc))
        with patch("tixledger.workers.base_task.sync_engine", sync_engine), patch.object(
            subscription_expiry, "logger"
        ) as logger:
            subscription_expiry.sweep_expired_subscriptions()
            subscription_expiry.sweep_expired_subscriptions()

        assert logger.info.call_args_list[0].args == ("subscription_expiry.swept",)
        assert logger.info.call_args_list[0].kwargs == {"expired": 1, "cancelled": 1}
        assert logger.info.call_args_list[1].args == ("subscription_expiry.nothing_to_sweep",)

    def test_registered_on_beat_schedule(self):
        from tixledger.workers.celery_app import celery_app

        entry = celery_app.conf.beat_schedule["subscription-expiry-sweep"]
        assert entry["task"] == "tasks.subscription_expiry"
