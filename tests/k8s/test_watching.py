"""
Only the tests from the K8s API (simulated) to the stream of watch-events.

Excluded: the consumption of the events by the informer & the mirror
(see ``tests/reactor/``).
"""
import asyncio
import json

import pytest

from eventrelay._cogs.clients.watching import WatchingError, continuous_watch, watch_objs

STREAM_WITH_NORMAL_EVENTS = (
    {'type': 'ADDED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '1'}}},
    {'type': 'MODIFIED', 'object': {'metadata': {'name': 'b', 'resourceVersion': '2'}}},
)
STREAM_WITH_BOOKMARK = (
    {'type': 'BOOKMARK', 'object': {'metadata': {'resourceVersion': '5'}}},
)
STREAM_WITH_UNKNOWN_EVENT = (
    {'type': 'ADDED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '1'}}},
    {'type': 'UNKNOWN', 'object': {}},
    {'type': 'DELETED', 'object': {'metadata': {'name': 'b', 'resourceVersion': '2'}}},
)
STREAM_WITH_ERROR_410GONE = (
    {'type': 'ADDED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '1'}}},
    {'type': 'ERROR', 'object': {'code': 410}},
    {'type': 'ADDED', 'object': {'metadata': {'name': 'b', 'resourceVersion': '2'}}},
)
STREAM_WITH_ERROR_CODE = (
    {'type': 'ADDED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '1'}}},
    {'type': 'ERROR', 'object': {'code': 666}},
)
EOS = (
    {'type': 'ERROR', 'object': {'code': 410}},
)


@pytest.fixture()
def stream(aresponses, hostname, resource):
    """ Feed the pre-rendered watch-streams, one per a watch request. """

    def feed(*streams, namespace=None):
        for events in streams:
            text = '\n'.join(json.dumps(event) for event in events)
            aresponses.add(hostname, resource.get_url(namespace=namespace), 'get',
                           aresponses.Response(text=text))

    return feed


async def collect(**kwargs):
    events = []
    async for event in continuous_watch(**kwargs):
        events.append(event)
    return events


async def test_normal_events_are_yielded(
        settings, api_context, resource, namespace, stream):
    stream(STREAM_WITH_NORMAL_EVENTS, EOS, namespace=namespace)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=namespace, since='0', stopper=asyncio.Future())

    assert len(events) == 2
    assert events[0]['type'] == 'ADDED'
    assert events[0]['object']['metadata']['name'] == 'a'
    assert events[1]['type'] == 'MODIFIED'
    assert events[1]['object']['metadata']['name'] == 'b'


async def test_bookmarks_are_yielded(
        settings, api_context, resource, stream):
    stream(STREAM_WITH_BOOKMARK, EOS)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='0', stopper=asyncio.Future())

    assert len(events) == 1
    assert events[0]['type'] == 'BOOKMARK'


async def test_unknown_event_type_ignored(
        settings, api_context, resource, stream, assert_logs):
    stream(STREAM_WITH_UNKNOWN_EVENT, EOS)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='0', stopper=asyncio.Future())

    assert [event['type'] for event in events] == ['ADDED', 'DELETED']
    assert_logs([r"Ignoring an unsupported event type: .*UNKNOWN"])


async def test_error_410gone_exits_normally(
        settings, api_context, resource, stream, assert_logs):
    stream(STREAM_WITH_ERROR_410GONE)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='0', stopper=asyncio.Future())

    assert len(events) == 1
    assert events[0]['object']['metadata']['name'] == 'a'
    assert_logs([r"Resource version '1' is gone"])


async def test_http_410gone_exits_normally(
        settings, api_context, resource, aresponses, hostname):
    aresponses.add(hostname, resource.get_url(), 'get',
                   aresponses.Response(status=410, reason='gone'))

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='0', stopper=asyncio.Future())

    assert events == []


async def test_unknown_error_raises_exception(
        settings, api_context, resource, stream):
    stream(STREAM_WITH_ERROR_CODE)

    events = []
    with pytest.raises(WatchingError, match='666'):
        async for event in continuous_watch(context=api_context, settings=settings,
                                            resource=resource, namespace=None, since='0',
                                            stopper=asyncio.Future()):
            events.append(event)

    assert len(events) == 1


async def test_reconnects_from_the_last_resource_version(
        resp_mocker, aresponses, hostname, settings, api_context, resource):
    first = resp_mocker(return_value=aresponses.Response(text=json.dumps(
        {'type': 'ADDED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '7'}}})))
    second = resp_mocker(return_value=aresponses.Response(text=json.dumps(EOS[0])))
    aresponses.add(hostname, resource.get_url(), 'get', first)
    aresponses.add(hostname, resource.get_url(), 'get', second)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='3', stopper=asyncio.Future())

    assert len(events) == 1
    assert first.call_args[0][0].query['resourceVersion'] == '3'
    assert second.call_args[0][0].query['resourceVersion'] == '7'


async def test_done_stopper_prevents_watching(
        settings, api_context, resource):
    stopper = asyncio.Future()
    stopper.set_result(None)

    events = await collect(context=api_context, settings=settings, resource=resource,
                           namespace=None, since='0', stopper=stopper)

    assert events == []


async def test_watch_params_are_passed(
        resp_mocker, aresponses, hostname, settings, api_context, resource):
    settings.watching.server_timeout = 123
    mock = resp_mocker(return_value=aresponses.Response(text=''))
    aresponses.add(hostname, resource.get_url(), 'get', mock)

    events = []
    async for event in watch_objs(context=api_context, settings=settings, resource=resource,
                                  namespace=None, since='9', stopper=asyncio.Future()):
        events.append(event)

    query = mock.call_args[0][0].query
    assert events == []
    assert query['watch'] == 'true'
    assert query['resourceVersion'] == '9'
    assert query['allowWatchBookmarks'] == 'true'
    assert query['timeoutSeconds'] == '123'


async def test_bookmarks_can_be_disabled(
        resp_mocker, aresponses, hostname, settings, api_context, resource):
    settings.watching.bookmarks = False
    mock = resp_mocker(return_value=aresponses.Response(text=''))
    aresponses.add(hostname, resource.get_url(), 'get', mock)

    async for _ in watch_objs(context=api_context, settings=settings, resource=resource,
                              namespace=None, stopper=asyncio.Future()):
        pass

    query = mock.call_args[0][0].query
    assert 'allowWatchBookmarks' not in query
    assert 'resourceVersion' not in query


@pytest.mark.parametrize('body', [
    b'{"type": "ADDED", "object": {"metadata": {"name": "a"}}}\n{"type": "ADDED", "obj',
    b'{"type": "ADDED", "object": {"metadata": {"name": "a"}}}\n\xff\xfe\n',
    b'{"type": "ADDED", "object": {"metadata": {"name": "a"}}}\n{"kind": "Status"}\n',
    b'{"type": "ADDED", "object": {"metadata": {"name": "a"}}}\n["ADDED"]\n',
    b'{"type": "ADDED", "object": {"metadata": {"name": "a"}}}\n{"type": "ADDED", "object": 1}\n',
], ids=['truncated', 'non-utf8', 'no-type', 'not-a-mapping', 'no-object'])
async def test_garbled_lines_raise_watching_errors(
        settings, api_context, resource, aresponses, hostname, body):
    aresponses.add(hostname, resource.get_url(namespace=None), 'get',
                   aresponses.Response(body=body))

    events = []
    with pytest.raises(WatchingError):
        async for event in continuous_watch(context=api_context, settings=settings,
                                            resource=resource, namespace=None, since='0',
                                            stopper=asyncio.Future()):
            events.append(event)

    assert len(events) == 1
