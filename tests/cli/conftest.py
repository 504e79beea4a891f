import functools

import click.testing
import pytest

from eventrelay.cli import main


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('eventrelay._core.reactor.running.run')


@pytest.fixture(autouse=True)
def _isolated_logging(mocker):
    return mocker.patch('eventrelay._core.actions.loggers.configure')
