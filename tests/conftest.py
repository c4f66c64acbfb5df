"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYSTACK__SECRET_KEY", "sk_test_paystack")
os.environ.setdefault(
    "DATABASE__URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "eventful_test_app.db"),
)
os.environ.setdefault("DEBUG", "false")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from tests.fakes import (  # noqa: E402
    DictCache,
    FixedClock,
    InMemoryStore,
    RecordingNotifier,
    StubGateway,
    make_event,
)


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return store.uow_factory


@pytest.fixture
def cache():
    return DictCache()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def future_event(store):
    """30 天后开始、单价 5000 kobo、共 10 张票的已发布活动"""
    return store.add_event(make_event(date=NOW + timedelta(days=30), creator_id=99))
