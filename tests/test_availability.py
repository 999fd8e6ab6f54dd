import pytest

from models import ClassInstance
from services.availability import AvailabilityValidator
from services.document_store import BOOKINGS, CANCELLED_BOOKINGS, CLASSES
from utils.errors import ErrorKind, StoreError


async def _fill_cart(cart, store, *class_ids):
    for class_id in class_ids:
        assert await cart.add_to_cart(ClassInstance.from_dict(await store.get(CLASSES, class_id)))
    return cart.entries


@pytest.mark.asyncio
async def test_requires_signed_in_user(store, cart, clock):
    entries = await _fill_cart(cart, store, "A")
    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, None)

    assert result.ok is False
    assert [i.kind for i in result.issues] == [ErrorKind.NOT_AUTHENTICATED]


@pytest.mark.asyncio
async def test_empty_cart(store, clock):
    result = await AvailabilityValidator(store, now_fn=clock).validate_cart([], "user-1")

    assert [i.kind for i in result.issues] == [ErrorKind.EMPTY_CART]


@pytest.mark.asyncio
async def test_valid_cart_passes(store, cart, clock):
    entries = await _fill_cart(cart, store, "A", "L")
    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, "user-1")

    assert result.ok is True
    assert result.issues == []


@pytest.mark.asyncio
async def test_collects_every_issue_across_entries(store, cart, clock):
    entries = await _fill_cart(cart, store, "A", "B", "P", "L")
    await store.delete(CLASSES, "A")
    await store.put(BOOKINGS, {"id": "bk1", "class_id": "L", "user_id": "user-1", "status": "confirmed"})

    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, "user-1")

    assert result.ok is False
    kinds = {(i.class_id, i.kind) for i in result.issues}
    assert kinds == {
        ("A", ErrorKind.CLASS_GONE),
        ("B", ErrorKind.CLASS_FULL),
        ("P", ErrorKind.CLASS_IN_PAST),
        ("L", ErrorKind.ALREADY_BOOKED),
    }
    assert "Aerial Basics" in result.message


@pytest.mark.asyncio
async def test_uses_server_state_not_cart_snapshot(store, cart, clock):
    entries = await _fill_cart(cart, store, "A")
    doc = await store.get(CLASSES, "A")
    await store.put(CLASSES, {**doc, "available_slots": 0})

    assert entries[0].available_slots == 5
    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, "user-1")
    assert [i.kind for i in result.issues] == [ErrorKind.CLASS_FULL]


@pytest.mark.asyncio
async def test_cancelled_bookings_do_not_block(store, cart, clock):
    entries = await _fill_cart(cart, store, "A")
    await store.put(BOOKINGS, {"id": "old", "class_id": "A", "user_id": "user-1", "status": "cancelled"})
    await store.put(CANCELLED_BOOKINGS, {"id": "older", "class_id": "A", "user_id": "user-1", "status": "cancelled"})
    await store.put(BOOKINGS, {"id": "other", "class_id": "A", "user_id": "user-2", "status": "confirmed"})

    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, "user-1")
    assert result.ok is True


@pytest.mark.asyncio
async def test_class_today_is_not_in_the_past(store, cart, clock):
    await store.put(CLASSES, {"id": "T", "course_id": "flow", "date": "2026-11-02",
                              "start_time": "07:00", "available_slots": 4})
    entries = await _fill_cart(cart, store, "T")

    result = await AvailabilityValidator(store, now_fn=clock).validate_cart(entries, "user-1")
    assert result.ok is True


@pytest.mark.asyncio
async def test_storage_failure_is_reported_as_checkout_failed(cart, store, clock):
    entries = await _fill_cart(cart, store, "A")

    class DownStore:
        async def query(self, *args):
            raise StoreError("timeout")

    result = await AvailabilityValidator(DownStore(), now_fn=clock).validate_cart(entries, "user-1")
    assert [i.kind for i in result.issues] == [ErrorKind.CHECKOUT_FAILED]
