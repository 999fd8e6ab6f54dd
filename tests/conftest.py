from datetime import datetime

import pytest

from services.catalog import CatalogService
from services.cart_store import CartStore
from services.document_store import MemoryStore
from services.local_storage import MemoryKeyValueStorage

NOW = datetime(2026, 11, 2, 10, 0)  # Monday


def seed_data():
    return {
        "courses": [
            {"id": "flow", "name": "Morning Flow", "type": "Flow Yoga", "price": 12.0,
             "duration": "60", "description": "Gentle vinyasa", "time": "08:00"},
            {"id": "aerial", "name": "Aerial Basics", "type": "Aerial Yoga", "price": 20.0,
             "duration": "75", "description": "Hammock work", "time": ""},
        ],
        "classes": [
            {"id": "A", "course_id": "flow", "date": "2026-11-10", "start_time": "08:00",
             "teacher": "Mina", "room": "Studio 1", "available_slots": 5, "capacity": 12},
            {"id": "B", "course_id": "aerial", "date": "2026-11-11", "start_time": "18:30",
             "teacher": "Jun", "room": "Studio 2", "available_slots": 0, "capacity": 8},
            {"id": "P", "course_id": "flow", "date": "2026-10-01", "start_time": "08:00",
             "teacher": "Mina", "room": "Studio 1", "available_slots": 3},
            {"id": "L", "course_id": "aerial", "date": "11/11/2026", "start_time": {"hour": 13, "minute": 0},
             "teacher": "Jun", "room": "Studio 2", "available_slots": 1},
        ],
    }


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def store():
    return MemoryStore(seed_data())


@pytest.fixture
def kv_storage():
    return MemoryKeyValueStorage()


@pytest.fixture
def catalog(store):
    return CatalogService(store)


@pytest.fixture
def cart(kv_storage, catalog, clock):
    return CartStore(kv_storage, catalog, owner="user-1", now_fn=clock)
