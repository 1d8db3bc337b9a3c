"""
Общие фикстуры: фейковый API на httpx.MockTransport и клиент поверх него.
"""

import httpx
import pytest

from statportal.api.client import ApiClient
from statportal.api.storage import MemoryStorage
from statportal.services import PortalServices
from tests.helpers import BASE_URL, FakeApi, SleepRecorder


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
async def client(api, storage, sleeps):
    api_client = ApiClient(
        BASE_URL,
        timeout=5,
        retry_attempts=3,
        retry_delay=1.0,
        storage=storage,
        transport=httpx.MockTransport(api),
        sleep=sleeps,
    )
    yield api_client
    await api_client.close()


@pytest.fixture
def services(client) -> PortalServices:
    return PortalServices.create(client)
