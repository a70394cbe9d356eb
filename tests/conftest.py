import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from examcore import create_app, db
from examcore.services.kv_store import MemoryKeyValueStore
from examcore.services.timer_store import TimerPresetStore, TimerStore
from tests.helpers import FixedClock


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def timer_store(kv_store, clock):
    return TimerStore(kv_store, clock=clock)


@pytest.fixture
def presets(kv_store):
    return TimerPresetStore(kv_store)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
