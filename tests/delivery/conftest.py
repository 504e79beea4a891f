import aiohttp
import pytest


@pytest.fixture()
def collector():
    """ A fake hostname of the events' collector (served by `aresponses`). """
    return 'collector'


@pytest.fixture()
def destination(collector):
    return f'http://{collector}/api/events'


@pytest.fixture()
def event():
    return {
        'apiVersion': 'v1',
        'kind': 'Event',
        'metadata': {'name': 'pod1.17a', 'namespace': 'ns1', 'uid': 'uid1', 'resourceVersion': '5'},
        'reason': 'Scheduled',
        'message': 'Successfully assigned ns1/pod1 to node1',
    }


@pytest.fixture()
def delivery_settings(settings, destination):
    settings.delivery.destination = destination
    settings.delivery.cluster_id = 123
    settings.delivery.cluster_api = 'https://10.0.0.1:6443'
    return settings


@pytest.fixture()
async def session():
    async with aiohttp.ClientSession() as session:
        yield session
