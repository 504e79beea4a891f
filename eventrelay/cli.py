import dataclasses
import functools
from collections.abc import Callable
from typing import Any

import aiohttp
import click

from eventrelay._cogs.aiokits import aioflags
from eventrelay._cogs.clients import errors
from eventrelay._cogs.configs import configuration
from eventrelay._cogs.structs import credentials
from eventrelay._core.actions import loggers
from eventrelay._core.reactor import dispatching, running


@dataclasses.dataclass()
class CLIControls:
    """ Controls for embedding & testing, which are impossible to pass via CLI. """
    ready_flag: aioflags.Flag | None = None
    stop_flag: aioflags.Flag | None = None
    settings: configuration.RelaySettings | None = None
    handler: dispatching.ChangeHandler | None = None
    connection_info: credentials.ConnectionInfo | None = None


class LogFormatParamType(click.Choice):
    """ Log formats by their names (case-insensitive), converted to `LogFormat`. """

    def __init__(self) -> None:
        super().__init__([fmt.name.lower() for fmt in loggers.LogFormat], case_sensitive=False)

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        match value:
            case loggers.LogFormat():
                return value
            case _:
                return loggers.LogFormat[str(super().convert(value, param, ctx)).upper()]


LOGGING_OPTIONS = [
    click.option('-v', '--verbose', is_flag=True, help="Log the debug messages too."),
    click.option('-d', '--debug', is_flag=True, help="Same as --verbose, plus asyncio & aiohttp logs."),
    click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
    click.option('--log-format', type=LogFormatParamType(), default='full', show_default=True),
    click.option('--log-refkey', type=str, help="The field for object references in JSON logs."),
    click.option('--log-prefix/--no-log-prefix', default=None,
                 help="Prefix the messages with the objects' names (default: in text logs only)."),
]
LOGGING_KWARGS = ['verbose', 'debug', 'quiet', 'log_format', 'log_refkey', 'log_prefix']


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Add the logging options to a command, and configure the logging before it runs. """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        loggers.configure(**{key: kwargs.pop(key) for key in LOGGING_KWARGS})
        return fn(*args, **kwargs)

    for option in reversed(LOGGING_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


@click.version_option(prog_name='eventrelay')
@click.group(name='eventrelay', context_settings=dict(
    auto_envvar_prefix='EVENTRELAY',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--in-cluster', type=click.BOOL, default=True, is_flag=False, flag_value=True,
              show_default=True, help="Use the pod's service account (or a kubeconfig file if false).")
@click.option('--no-in-cluster', is_flag=True, help="Same as --in-cluster=false.")
@click.option('--apiserver', type=str, help="The URL of the API server.")
@click.option('--token', type=str, help="The bearer token for the API server.")
@click.option('--kubeconfig', type=click.Path(dir_okay=False), help="The kubeconfig file.")
@click.option('--port', type=int, default=80, show_default=True,
              help="The port of the liveness endpoint.")
@click.option('--cluster-id', '--clusterId', 'cluster_id', type=int, default=0, show_default=True,
              help="The cluster id, as known to the collector.")
@click.option('--destination', '--domeosServer', 'destination', type=str,
              help="The URL of the collector to POST the events to.")
@click.option('--resync-period', type=float, default=300, show_default=True,
              help="Seconds between the full re-listings.")
@click.option('--report-updates', is_flag=True, help="Deliver the modified events too.")
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        in_cluster: bool,
        no_in_cluster: bool,
        apiserver: str | None,
        token: str | None,
        kubeconfig: str | None,
        port: int,
        cluster_id: int,
        destination: str | None,
        resync_period: float,
        report_updates: bool,
) -> None:
    """ Start the relay: watch the cluster's events and deliver them to the collector. """
    in_cluster = in_cluster and not no_in_cluster
    if not in_cluster and not apiserver:
        raise click.UsageError("--apiserver must be set when not running in the cluster.")
    if not destination and __controls.handler is None:
        raise click.UsageError("--destination must be set to deliver the events.")

    settings = __controls.settings if __controls.settings is not None else configuration.RelaySettings()
    settings.cluster.in_cluster = in_cluster
    settings.cluster.apiserver = apiserver or None
    settings.cluster.token = token or None
    settings.cluster.kubeconfig = kubeconfig or None
    settings.probing.port = port
    settings.delivery.destination = destination or None
    settings.delivery.cluster_id = cluster_id
    settings.delivery.cluster_api = apiserver or ''
    settings.delivery.report_updates = report_updates
    settings.informing.resync_period = resync_period

    try:
        return running.run(
            settings=settings,
            handler=__controls.handler,
            connection_info=__controls.connection_info,
            stop_flag=__controls.stop_flag,
            ready_flag=__controls.ready_flag,
        )
    except credentials.LoginError as e:
        raise click.ClickException(f"Cannot login to the API server: {e}") from e
    except (errors.APIError, aiohttp.ClientError) as e:
        raise click.ClickException(f"Cannot communicate with the API server: {e!r}") from e
