import asyncio

import pytest

from conftest import FRIDAY, MONDAY, SATURDAY, at
from workforce.core.exceptions import StoreError
from workforce.store import ATTENDANCE, JOB_LOGS, NOTIFICATIONS


@pytest.fixture
def checked_in(container, clock):
    for employee_id in (1, 2):
        asyncio.run(container.attendance.check_in(employee_id, at=at(MONDAY, 8, 50)))
    clock.set(at(MONDAY, 18, 0))
    return container


def test_reminder_sent_once_across_ticks(checked_in, store, email):
    reminders = checked_in.reminders

    first = asyncio.run(reminders.tick(at(MONDAY, 18, 0)))
    second = asyncio.run(reminders.tick(at(MONDAY, 18, 1)))

    assert first.reminded == 2
    assert first.notifications_sent == 2
    assert first.emails_sent == 2
    assert first.errors == []
    assert second is None
    assert len(store.rows(NOTIFICATIONS, type="checkout")) == 2
    assert len(email.sent) == 2
    assert all(r["checkout_reminder_sent"] for r in store.rows(ATTENDANCE))


@pytest.mark.parametrize("day, hour, minute, reason", [
    (FRIDAY, 18, 0, "not an onsite-required day"),
    (SATURDAY, 18, 0, "not an onsite-required day"),
    (MONDAY, 17, 30, "outside the reminder window"),
    (MONDAY, 18, 2, "outside the reminder window"),
])
def test_not_eligible(container, day, hour, minute, reason):
    eligibility = asyncio.run(container.reminders.is_eligible(at(day, hour, minute)))
    assert eligibility.eligible is False
    assert eligibility.reason == reason
    assert asyncio.run(container.reminders.tick(at(day, hour, minute))) is None


def test_eligible_just_before_reminder_time(container):
    assert asyncio.run(container.reminders.is_eligible(at(MONDAY, 17, 59))).eligible


def test_completed_run_closes_the_day(checked_in):
    asyncio.run(checked_in.reminders.trigger(MONDAY))
    eligibility = asyncio.run(checked_in.reminders.is_eligible(at(MONDAY, 18, 0)))
    assert eligibility == (False, "already completed today")


def test_manual_trigger_respects_sent_flag(checked_in, store):
    first = asyncio.run(checked_in.reminders.trigger())
    second = asyncio.run(checked_in.reminders.trigger())

    assert first.reminded == 2
    assert second.reminded == 0
    assert second.total_employees == 0
    assert len(store.rows(NOTIFICATIONS, type="checkout")) == 2


def test_checked_out_employees_are_not_reminded(checked_in, store):
    record = store.rows(ATTENDANCE, employee_id=1)[0]
    asyncio.run(checked_in.attendance.check_out(record["id"], at=at(MONDAY, 17, 45)))

    result = asyncio.run(checked_in.reminders.trigger())

    assert result.total_employees == 1
    assert [n["user_id"] for n in store.rows(NOTIFICATIONS, type="checkout")] == [2]


def test_flag_is_set_even_when_delivery_fails(checked_in, store, email):
    email.failing.add("ada@example.com")

    result = asyncio.run(checked_in.reminders.trigger())

    assert result.reminded == 2
    assert result.emails_sent == 1
    assert len(result.errors) == 1 and "Ada Okafor" in result.errors[0]
    assert store.rows(ATTENDANCE, employee_id=1)[0]["checkout_reminder_sent"] is True
    logs = store.rows(JOB_LOGS, job_name="daily_checkout_monitoring", status="completed")
    assert logs[0]["job_metadata"]["errors"] == result.errors


def test_record_claimed_elsewhere_is_skipped(checked_in, store, monkeypatch):
    real_select = store.select

    async def select(table, filters=None, **kwargs):
        result = await real_select(table, filters, **kwargs)
        if table == ATTENDANCE and filters and "checkout_reminder_sent" in filters:
            # another worker claims employee 1 after the candidate list is read
            for row in store.tables[ATTENDANCE]:
                if row["employee_id"] == 1:
                    row["checkout_reminder_sent"] = True
        return result

    monkeypatch.setattr(store, "select", select)

    result = asyncio.run(checked_in.reminders.trigger())

    assert result.total_employees == 2
    assert result.skipped == 1
    assert result.reminded == 1
    assert [n["user_id"] for n in store.rows(NOTIFICATIONS, type="checkout")] == [2]


def test_overlapping_ticks_run_once(checked_in, store):
    async def both():
        return await asyncio.gather(
            checked_in.reminders.tick(at(MONDAY, 18, 0)),
            checked_in.reminders.tick(at(MONDAY, 18, 0)),
        )

    results = asyncio.run(both())

    assert sum(r is not None for r in results) == 1
    assert len(store.rows(NOTIFICATIONS, type="checkout")) == 2


def test_setup_failure_is_logged_and_raised(checked_in, store):
    store.fail("select", ATTENDANCE)

    with pytest.raises(StoreError):
        asyncio.run(checked_in.reminders.trigger())

    logs = store.rows(JOB_LOGS, job_name="daily_checkout_monitoring")
    assert [r["status"] for r in logs] == ["started", "failed"]
    assert "connection reset" in logs[1]["job_metadata"]["error"]
