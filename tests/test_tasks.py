from datetime import timedelta

from marketingpro.billing.checkout_sessions import CheckoutSessionTracker
from marketingpro.extensions import db
from marketingpro.models import CheckoutSession, CheckoutStatus, ProcessedEvent
from marketingpro.utils.dates import add_months, utcnow
from marketingpro.workers.tasks import expire_stale_checkout_sessions, purge_processed_events


def test_expiry_sweep_task(app, reload):
    session = CheckoutSessionTracker().get_or_create("user_1", "u1@example.com", "pro", 49)
    db.session.query(CheckoutSession).filter_by(id=session.id).update(
        {CheckoutSession.expires_at: utcnow() - timedelta(minutes=1)},
        synchronize_session=False,
    )
    db.session.commit()

    result = expire_stale_checkout_sessions.delay()

    assert result.get() == 1
    assert reload(CheckoutSession, session.id).status == CheckoutStatus.EXPIRED


def test_purge_task_uses_retention_setting(app):
    app.config["PROCESSED_EVENT_RETENTION_DAYS"] = 30
    db.session.add_all([
        ProcessedEvent(provider_event_id="evt_old", event_type="x", processed_at=utcnow() - timedelta(days=31)),
        ProcessedEvent(provider_event_id="evt_new", event_type="x", processed_at=utcnow() - timedelta(days=1)),
    ])
    db.session.commit()

    assert purge_processed_events.delay().get() == 1
    assert ProcessedEvent.query.count() == 1


def test_beat_schedule_registers_sweeps(app):
    schedule = app.extensions["celery"].conf.beat_schedule
    tasks = {entry["task"] for entry in schedule.values()}

    assert tasks == {
        "marketingpro.workers.tasks.expire_stale_checkout_sessions",
        "marketingpro.workers.tasks.purge_processed_events",
    }


def test_add_months_clamps_day():
    moment = utcnow().replace(year=2025, month=1, day=31)

    assert add_months(moment).date().isoformat() == "2025-02-28"
