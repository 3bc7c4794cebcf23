import asyncio
from datetime import timedelta

import pytest

from workforce.core.exceptions import BatchInsertError, StoreError
from workforce.services.delivery import IN_APP, deliver
from workforce.services.notifications import BATCH_SIZE, NotificationRequest, coerce_type
from workforce.store import NOTIFICATIONS, StoreResult


def _request(user_id=1, type="checkout", related_id=7, **kwargs):
    return NotificationRequest(
        user_id=user_id,
        type=type,
        title=kwargs.get("title", "Checkout Reminder"),
        message=kwargs.get("message", "Don't forget to check out."),
        related_id=related_id,
        action_url=kwargs.get("action_url"),
    )


def test_unknown_type_falls_back_to_info(container, store):
    assert coerce_type("checkout") == "checkout"
    assert coerce_type("made_up") == "info"

    created = asyncio.run(container.dispatcher.create_notification(_request(type="made_up")))

    assert created["type"] == "info"
    assert store.rows(NOTIFICATIONS)[0]["type"] == "info"


def test_new_notification_expires_after_thirty_days(container, clock):
    created = asyncio.run(container.dispatcher.create_notification(_request()))
    assert created["is_read"] is False
    assert created["created_at"] == clock.now()
    assert created["expires_at"] == clock.now() + timedelta(days=30)
    assert created["related_id"] == "7"


def test_create_safe_suppresses_duplicate_within_window(container, store, clock):
    first = asyncio.run(container.dispatcher.create_safe(_request()))
    clock.advance(minutes=2)
    second = asyncio.run(container.dispatcher.create_safe(_request()))

    assert first is not None
    assert second is None
    assert len(store.rows(NOTIFICATIONS)) == 1


def test_create_safe_allows_after_window(container, store, clock):
    asyncio.run(container.dispatcher.create_safe(_request()))
    clock.advance(minutes=6)
    assert asyncio.run(container.dispatcher.create_safe(_request())) is not None
    assert len(store.rows(NOTIFICATIONS)) == 2


def test_dedup_key_includes_related_id_and_user(container, store):
    asyncio.run(container.dispatcher.create_safe(_request(related_id=7)))
    assert asyncio.run(container.dispatcher.create_safe(_request(related_id=8))) is not None
    assert asyncio.run(container.dispatcher.create_safe(_request(related_id=None))) is not None
    assert asyncio.run(container.dispatcher.create_safe(_request(user_id=2))) is not None
    assert asyncio.run(container.dispatcher.create_safe(_request(related_id=None))) is None


def test_dedup_compares_coerced_type(container):
    asyncio.run(container.dispatcher.create_safe(_request(type="nonsense")))
    assert asyncio.run(container.dispatcher.create_safe(_request(type="info"))) is None


def test_unknown_type_warns_once_per_send(container, caplog):
    with caplog.at_level("WARNING", logger="workforce.services.notifications"):
        row = asyncio.run(container.dispatcher.create_safe(_request(type="made_up")))

    assert row["type"] == "info"
    warnings = [r for r in caplog.records if "invalid notification type" in r.getMessage()]
    assert len(warnings) == 1


def test_concurrent_create_safe_inserts_once(container, store):
    async def burst():
        return await asyncio.gather(*(container.dispatcher.create_safe(_request()) for _ in range(10)))

    results = asyncio.run(burst())

    assert sum(r is not None for r in results) == 1
    assert len(store.rows(NOTIFICATIONS)) == 1


def test_create_safe_without_dedup(container, store):
    asyncio.run(container.dispatcher.create_safe(_request(), prevent_duplicates=False))
    asyncio.run(container.dispatcher.create_safe(_request(), prevent_duplicates=False))
    assert len(store.rows(NOTIFICATIONS)) == 2


def test_conflict_lookup_failure_allows_send(container, store):
    asyncio.run(container.dispatcher.create_safe(_request()))
    store.fail("select", NOTIFICATIONS)

    assert asyncio.run(container.dispatcher.check_conflict(1, "checkout", 7)) is False
    assert asyncio.run(container.dispatcher.create_safe(_request())) is not None
    assert len(store.rows(NOTIFICATIONS)) == 2


def test_send_batch_inserts_in_chunks(container, store):
    requests = [_request(user_id=i, related_id=None) for i in range(BATCH_SIZE * 2 + 20)]

    inserted = asyncio.run(container.dispatcher.send_batch(requests))

    assert len(inserted) == 120
    assert store.calls.count(("insert", NOTIFICATIONS)) == 3
    assert len(store.rows(NOTIFICATIONS)) == 120


def test_send_batch_reports_failed_chunk(container, store, monkeypatch):
    real_insert = store.insert
    calls = []

    async def flaky_insert(table, rows):
        calls.append(len(rows))
        if len(calls) == 2:
            return StoreResult([], StoreError("disk full", table=table))
        return await real_insert(table, rows)

    monkeypatch.setattr(store, "insert", flaky_insert)
    requests = [_request(user_id=i) for i in range(BATCH_SIZE * 3)]

    with pytest.raises(BatchInsertError) as exc:
        asyncio.run(container.dispatcher.send_batch(requests))

    assert exc.value.chunk_index == 1
    assert len(exc.value.inserted) == BATCH_SIZE
    # earlier chunks are kept
    assert len(store.rows(NOTIFICATIONS)) == BATCH_SIZE
    assert calls == [BATCH_SIZE, BATCH_SIZE]


def test_notify_reports_outcomes(container, store):
    sent = asyncio.run(container.dispatcher.notify(_request()))
    duplicate = asyncio.run(container.dispatcher.notify(_request()))
    store.fail("insert", NOTIFICATIONS)
    failed = asyncio.run(container.dispatcher.notify(_request(related_id=99)))

    assert sent.ok and not sent.skipped and sent.channel == IN_APP
    assert duplicate.ok and duplicate.skipped
    assert not failed.ok and "connection reset" in failed.error


def test_deliver_times_out():
    async def slow():
        await asyncio.sleep(1)

    result = asyncio.run(deliver(IN_APP, 1, slow(), timeout=0.01))
    assert not result.ok
    assert "timed out" in result.error


def test_read_state_and_listing(container, store, clock):
    dispatcher = container.dispatcher
    for related in (1, 2, 3):
        asyncio.run(dispatcher.create_notification(_request(related_id=related)))
        clock.advance(minutes=1)
    asyncio.run(dispatcher.create_notification(_request(user_id=2)))

    listed = asyncio.run(dispatcher.list_for_user(1))
    assert [n["related_id"] for n in listed] == ["3", "2", "1"]
    assert asyncio.run(dispatcher.unread_count(1)) == 3

    marked = asyncio.run(dispatcher.mark_as_read(listed[0]["id"], 1))
    assert marked["is_read"] is True
    assert asyncio.run(dispatcher.unread_count(1)) == 2
    assert [n["related_id"] for n in asyncio.run(dispatcher.list_for_user(1, unread_only=True))] == ["2", "1"]

    # other users' notifications are out of reach
    other = store.rows(NOTIFICATIONS, user_id=2)[0]
    assert asyncio.run(dispatcher.mark_as_read(other["id"], 1)) is None
    assert asyncio.run(dispatcher.delete(other["id"], 1)) is False

    assert asyncio.run(dispatcher.mark_all_as_read(1)) == 2
    assert asyncio.run(dispatcher.unread_count(1)) == 0
    assert asyncio.run(dispatcher.delete(listed[0]["id"], 1)) is True
    assert len(store.rows(NOTIFICATIONS, user_id=1)) == 2


def test_delete_expired(container, store, clock):
    asyncio.run(container.dispatcher.create_notification(_request()))
    clock.advance(days=10)
    asyncio.run(container.dispatcher.create_notification(_request(related_id=8)))
    clock.advance(days=21)

    assert asyncio.run(container.dispatcher.delete_expired()) == 1
    assert [n["related_id"] for n in store.rows(NOTIFICATIONS)] == ["8"]


def test_store_errors_surface_from_read_side(container, store):
    store.fail("select", NOTIFICATIONS)
    with pytest.raises(StoreError):
        asyncio.run(container.dispatcher.unread_count(1))
