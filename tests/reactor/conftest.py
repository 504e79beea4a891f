import pytest


def _make_event(name, *, rv='1', uid=None, namespace='ns1', kind='Event'):
    body = {'metadata': {'name': name, 'namespace': namespace, 'resourceVersion': rv,
                         'uid': uid or f'uid-{name}'}}
    if kind is not None:
        body['kind'] = kind
    return body


class RecordingHandler:
    """ A handler that remembers what it was called with, in order. """

    def __init__(self):
        super().__init__()
        self.calls = []

    async def on_added(self, body):
        self.calls.append(('added', body['metadata']['name']))

    async def on_deleted(self, body):
        self.calls.append(('deleted', body['metadata']['name']))

    async def on_updated(self, old, new):
        self.calls.append(('updated', new['metadata']['name']))


@pytest.fixture()
def make_event():
    return _make_event


@pytest.fixture()
def handler():
    return RecordingHandler()
