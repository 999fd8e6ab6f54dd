import json

import pytest

from conftest import NOW
from models import Booking, BookingStatus, ClassInstance
from services.checkout import BookingCommitter
from services.document_store import BOOKINGS, CLASSES, COURSES, MemoryStore, WriteBatch
from utils.errors import ErrorKind, StoreError


async def _fill_cart(cart, store, *class_ids):
    for class_id in class_ids:
        assert await cart.add_to_cart(ClassInstance.from_dict(await store.get(CLASSES, class_id)))


async def _slots(store, class_id):
    return (await store.get(CLASSES, class_id))["available_slots"]


@pytest.mark.asyncio
async def test_checkout_creates_bookings_and_decrements(store, cart, clock, kv_storage):
    await _fill_cart(cart, store, "A", "L")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is True
    assert len(result.booking_ids) == 2
    assert len(set(result.booking_ids)) == 2
    assert await _slots(store, "A") == 4
    assert await _slots(store, "L") == 0
    assert cart.get_cart_count() == 0
    assert json.loads(kv_storage.data["cart:user-1"]) == []

    bookings = [Booking.from_dict(d) for d in await store.query(BOOKINGS, "user_id", "user-1")]
    by_class = {b.class_id: b for b in bookings}
    booking = by_class["A"]
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.created_at == NOW
    assert booking.class_name == "Morning Flow"
    assert booking.start_time == "08:00"
    assert booking.teacher == "Mina"
    assert booking.room == "Studio 1"
    assert booking.course_info.price == 12.0
    assert by_class["L"].start_time == "13:00"


@pytest.mark.asyncio
async def test_full_class_is_never_overbooked(store, cart, clock):
    await _fill_cart(cart, store, "B")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is False
    assert result.error == ErrorKind.CLASS_FULL
    assert await _slots(store, "B") == 0
    assert await store.query(BOOKINGS, "user_id", "user-1") == []


@pytest.mark.asyncio
async def test_duplicate_booking_is_rejected(store, cart, clock):
    await _fill_cart(cart, store, "A")
    first = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")
    assert first.success

    await _fill_cart(cart, store, "A")
    second = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert second.success is False
    assert second.error == ErrorKind.ALREADY_BOOKED
    assert await _slots(store, "A") == 4


@pytest.mark.asyncio
async def test_partially_valid_cart_commits_nothing(store, cart, clock):
    await _fill_cart(cart, store, "A", "B")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is False
    assert result.error == ErrorKind.CLASS_FULL
    assert await _slots(store, "A") == 5
    assert await store.query(BOOKINGS, "user_id", "user-1") == []
    assert [e.id for e in cart.entries] == ["A", "B"]


@pytest.mark.asyncio
async def test_booking_keeps_price_from_time_of_booking(store, cart, clock):
    await _fill_cart(cart, store, "A")
    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    course = await store.get(COURSES, "flow")
    await store.put(COURSES, {**course, "price": 20.0})

    booking = Booking.from_dict(await store.get(BOOKINGS, result.booking_ids[0]))
    assert booking.course_info.price == 12.0


@pytest.mark.asyncio
async def test_not_authenticated(store, cart, clock):
    await _fill_cart(cart, store, "A")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, None)

    assert result.error == ErrorKind.NOT_AUTHENTICATED
    assert cart.get_cart_count() == 1


class RacingStore(MemoryStore):
    """첫 번째 배치 직전에 다른 기기가 마지막 자리를 가져가는 상황"""

    def __init__(self, data, class_id):
        super().__init__(data)
        self.class_id = class_id
        self.commits = 0

    async def commit(self, batch):
        self.commits += 1
        if self.commits == 1:
            doc = await self.get(CLASSES, self.class_id)
            taken = {**doc, "available_slots": doc["available_slots"] - 1}
            await super().commit(WriteBatch().upsert(CLASSES, taken))
        await super().commit(batch)


@pytest.mark.asyncio
async def test_lost_race_for_last_slot_reports_class_full(kv_storage, clock):
    from conftest import seed_data
    from services.catalog import CatalogService
    from services.cart_store import CartStore

    store = RacingStore(seed_data(), "L")
    cart = CartStore(kv_storage, CatalogService(store), owner="user-1", now_fn=clock)
    await _fill_cart(cart, store, "L")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is False
    assert result.error == ErrorKind.CLASS_FULL
    assert await _slots(store, "L") == 0
    assert cart.get_cart_count() == 1


@pytest.mark.asyncio
async def test_conflict_retry_succeeds_when_slots_remain(kv_storage, clock):
    from conftest import seed_data
    from services.catalog import CatalogService
    from services.cart_store import CartStore

    store = RacingStore(seed_data(), "A")
    cart = CartStore(kv_storage, CatalogService(store), owner="user-1", now_fn=clock)
    await _fill_cart(cart, store, "A")

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is True
    assert store.commits == 2
    assert await _slots(store, "A") == 3


@pytest.mark.asyncio
async def test_write_failure_keeps_cart(store, cart, clock):
    await _fill_cart(cart, store, "A")

    async def broken_commit(batch):
        raise StoreError("service unavailable")
    store.commit = broken_commit

    result = await BookingCommitter(store, now_fn=clock).commit(cart, "user-1")

    assert result.success is False
    assert result.error == ErrorKind.CHECKOUT_FAILED
    assert cart.get_cart_count() == 1
    assert await _slots(store, "A") == 5


@pytest.mark.asyncio
async def test_duplicated_cart_blob_books_class_once(store, cart, kv_storage, catalog, clock):
    from services.cart_store import CartStore

    await _fill_cart(cart, store, "A")
    saved = json.loads(kv_storage.data["cart:user-1"])
    kv_storage.data["cart:user-1"] = json.dumps(saved + saved)

    reloaded = CartStore(kv_storage, catalog, owner="user-1", now_fn=clock)
    result = await BookingCommitter(store, now_fn=clock).commit(reloaded, "user-1")

    assert result.success is True
    assert len(result.booking_ids) == 1
    assert len(await store.query(BOOKINGS, "user_id", "user-1")) == 1
    assert await _slots(store, "A") == 4
