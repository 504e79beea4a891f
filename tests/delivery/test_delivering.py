import asyncio

import aiohttp
import pytest

from eventrelay._core.engines.delivery import DeliveryEnvelope, deliver


@pytest.fixture()
def envelope(event):
    return DeliveryEnvelope(payload=event, cluster_id=123, cluster_api='https://api',
                            event_type='add')


async def test_successful_delivery(
        resp_mocker, aresponses, collector, destination, session, settings, logger, envelope):
    mock = resp_mocker(return_value=aresponses.Response(status=200))
    aresponses.add(collector, '/api/events', 'post', mock)

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is True
    assert mock.call_count == 1
    request = mock.call_args[0][0]
    assert request.headers['Content-Type'] == 'application/json;charset=UTF-8'
    assert request['data'] == {
        'k8sEvent': envelope.payload,
        'clusterId': 123,
        'clusterApi': 'https://api',
        'eventType': 'add',
    }


@pytest.mark.parametrize('status', [201, 202, 204])
async def test_any_2xx_is_a_success(
        aresponses, collector, destination, session, settings, logger, envelope, status):
    aresponses.add(collector, '/api/events', 'post', aresponses.Response(status=status))

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is True


@pytest.mark.parametrize('status', [400, 404, 500, 503])
async def test_non_2xx_is_logged_and_dropped(
        aresponses, collector, destination, session, settings, logger, envelope, status,
        assert_logs):
    aresponses.add(collector, '/api/events', 'post',
                   aresponses.Response(status=status, text='go away'))

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is False
    assert_logs([rf"The collector rejected the 'add' event with HTTP {status}: 'go away'"])


async def test_connection_errors_are_logged_and_dropped(
        mocker, destination, session, settings, logger, envelope, assert_logs):
    mocker.patch.object(session, 'post', side_effect=aiohttp.ClientConnectionError("refused"))

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is False
    assert_logs([r"Failed to deliver the 'add' event to http://collector/api/events; "
                 r"dropping it: ClientConnectionError\('refused'\)"])


async def test_timeouts_are_logged_and_dropped(
        mocker, destination, session, settings, logger, envelope, assert_logs):
    mocker.patch.object(session, 'post', side_effect=asyncio.TimeoutError())

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is False
    assert_logs([r"Failed to deliver the 'add' event"])


async def test_invalid_destinations_are_logged_and_dropped(
        session, settings, logger, envelope, assert_logs):
    result = await deliver(envelope, destination='not a url', session=session,
                           settings=settings, logger=logger)

    assert result is False
    assert_logs([r"Failed to deliver the 'add' event to not a url"])


async def test_serialization_errors_are_logged_and_dropped(
        mocker, destination, session, settings, logger, assert_logs):
    envelope = DeliveryEnvelope(payload={'x': object()}, cluster_id=1, cluster_api='',
                                event_type='delete')
    post = mocker.patch.object(session, 'post')

    result = await deliver(envelope, destination=destination, session=session,
                           settings=settings, logger=logger)

    assert result is False
    assert not post.called
    assert_logs([r"Failed to serialize the 'delete' event; dropping it"])
