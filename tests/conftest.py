import os

# Keep test runs from writing ./logs
os.environ.setdefault("ENABLE_FILE_LOGGING", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from events import EventBus
from helpers import FakeConnectionFactory, FakeTimerFactory


@pytest.fixture
def bus():
    event_bus = EventBus()
    yield event_bus
    event_bus.shutdown()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def connections():
    return FakeConnectionFactory()
