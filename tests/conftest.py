from __future__ import annotations

import asyncio

import pytest

from hophop.app.infrastructure.messaging.inmemory.in_memory_transport import InMemoryTransport
from tests.fakes import RecordingSleep


@pytest.fixture()
def transport() -> InMemoryTransport:
    t = InMemoryTransport()
    asyncio.run(t.connect())
    return t


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
