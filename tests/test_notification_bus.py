"""
Unit Tests for the Change Notification Bus

Initial snapshot, push on change, version gating, coalescing, deletes
and unsubscribe.
"""

import asyncio

import pytest

from internlink.core.errors import NotFoundError
from internlink.schemas.schemas import ApplicationStatus, ChangeEvent, ChangeKind
from internlink.services.application_store import InMemoryApplicationStore
from internlink.services.notification_bus import NotificationBus
from internlink.services.projection import project
from tests.conftest import SECOND_POSTING, make_application


async def next_delivery(subscription, timeout=1.0):
    return await asyncio.wait_for(anext(subscription), timeout)


async def assert_no_delivery(subscription, timeout=0.05):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(anext(subscription), timeout)


def notes(text):
    return lambda app: app.model_copy(update={"company_notes": text})


@pytest.mark.asyncio
async def test_first_delivery_is_the_current_snapshot(bus, store):
    await store.create(make_application("a-1"))
    await store.create(make_application("a-2", student_id="s-2"))

    async with bus.subscribe_by_posting("p-1") as sub:
        snapshot = await next_delivery(sub)

    assert [a.id for a in snapshot] == ["a-1", "a-2"]


@pytest.mark.asyncio
async def test_empty_scope_still_delivers_an_empty_snapshot(bus):
    async with bus.subscribe_by_student("nobody") as sub:
        assert await next_delivery(sub) == []


@pytest.mark.asyncio
async def test_student_sees_review_without_polling(bus, engine, submit, company):
    app = await submit()

    async with bus.subscribe_one(app.id) as sub:
        assert (await next_delivery(sub)).status == ApplicationStatus.pending

        await engine.update_status_and_notes(company, app.id, ApplicationStatus.shortlisted,
                                             "Great portfolio, scheduling interview next week")
        pushed = await next_delivery(sub)

    assert pushed.status == ApplicationStatus.shortlisted
    assert pushed.company_notes == "Great portfolio, scheduling interview next week"


@pytest.mark.asyncio
async def test_new_documents_are_appended_in_received_order(bus, store):
    await store.create(make_application("a-1"))

    async with bus.subscribe_by_company("Acme Robotics") as sub:
        await next_delivery(sub)
        await store.create(make_application("a-2", posting=SECOND_POSTING))
        await store.create(make_application("a-3", student_id="s-3"))
        first = await store.get("a-1")
        await store.update("a-1", notes("seen"), first.last_updated)

        latest = await next_delivery(sub)

    assert [a.id for a in latest] == ["a-1", "a-2", "a-3"]
    assert latest[0].company_notes == "seen"


@pytest.mark.asyncio
async def test_slow_consumer_gets_latest_state_not_backlog(bus, store):
    stored = await store.create(make_application())

    async with bus.subscribe_one(stored.id) as sub:
        await next_delivery(sub)
        for text in ("one", "two", "three"):
            current = await store.get(stored.id)
            await store.update(stored.id, notes(text), current.last_updated)

        assert (await next_delivery(sub)).company_notes == "three"
        await assert_no_delivery(sub)


@pytest.mark.asyncio
async def test_duplicate_and_stale_events_are_ignored(bus, store):
    stored = await store.create(make_application())
    updated = await store.update(stored.id, notes("fresh"), stored.last_updated)

    async with bus.subscribe_one(stored.id) as sub:
        assert (await next_delivery(sub)).company_notes == "fresh"

        await bus.publish(ChangeEvent(kind=ChangeKind.updated, application=stored, version=stored.last_updated))
        await bus.publish(ChangeEvent(kind=ChangeKind.updated, application=updated, version=updated.last_updated))

        await assert_no_delivery(sub)
        assert sub.current().company_notes == "fresh"


@pytest.mark.asyncio
async def test_versions_never_go_backwards(bus, store):
    stored = await store.create(make_application())
    seen = []

    async with bus.subscribe_one(stored.id) as sub:
        seen.append((await next_delivery(sub)).last_updated)
        for text in ("a", "b"):
            current = await store.get(stored.id)
            await store.update(stored.id, notes(text), current.last_updated)
            seen.append((await next_delivery(sub)).last_updated)

    assert seen == sorted(seen)
    assert len(set(seen)) == 3


@pytest.mark.asyncio
async def test_withdrawal_removes_item_and_decrements_tally(bus, engine, submit, student, company):
    app = await submit()
    other = await submit(posting_id="p-2")
    await engine.update_status(company, app.id, ApplicationStatus.accepted)

    async with bus.subscribe_by_company("Acme Robotics") as sub:
        before = project(await next_delivery(sub))
        assert before.tally.total == 2
        assert before.tally.counts[ApplicationStatus.accepted] == 1

        await engine.withdraw(student, app.id)
        after = project(await next_delivery(sub))

    assert [a.id for a in after.applications] == [other.id]
    assert after.tally.total == 1
    assert after.tally.counts[ApplicationStatus.accepted] == 0


@pytest.mark.asyncio
async def test_single_subscription_yields_none_once_then_ends(bus, store):
    stored = await store.create(make_application())

    sub = bus.subscribe_one(stored.id)
    await sub.open()
    await next_delivery(sub)

    await store.delete(stored.id)

    assert await next_delivery(sub) is None
    with pytest.raises(StopAsyncIteration):
        await next_delivery(sub)
    assert sub.closed
    assert bus.subscription_count == 0


@pytest.mark.asyncio
async def test_subscribe_to_unknown_application(bus):
    with pytest.raises(NotFoundError):
        async with bus.subscribe_one("missing"):
            pass
    assert bus.subscription_count == 0


@pytest.mark.asyncio
async def test_no_delivery_after_unsubscribe(bus, store):
    stored = await store.create(make_application())

    async with bus.subscribe_by_student("s-1") as sub:
        await next_delivery(sub)
        assert bus.subscription_count == 1

    assert bus.subscription_count == 0
    await store.update(stored.id, notes("after close"), stored.last_updated)
    with pytest.raises(StopAsyncIteration):
        await anext(sub)


@pytest.mark.asyncio
async def test_delete_during_snapshot_load_does_not_resurrect():
    class RacingStore(InMemoryApplicationStore):
        """Deletes the document after reading it, before the snapshot is returned."""

        async def query_by_posting(self, posting_id):
            applications = await super().query_by_posting(posting_id)
            await self.delete(applications[0].id)
            return applications

    store = RacingStore()
    bus = NotificationBus(store)
    await store.create(make_application())

    async with bus.subscribe_by_posting("p-1") as sub:
        assert await next_delivery(sub) == []


@pytest.mark.asyncio
async def test_close_all_ends_every_subscription(bus, store):
    await store.create(make_application())
    subs = [bus.subscribe_by_posting("p-1"), bus.subscribe_by_student("s-1")]
    for sub in subs:
        await sub.open()

    bus.close_all()

    assert bus.subscription_count == 0
    assert all(sub.closed for sub in subs)
