"""
The main relay module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the relay's top-level interface,
# as it is seen by the embedding apps. So, we export the individual names.

from eventrelay._cogs.configs.configuration import (
    RelaySettings,
)
from eventrelay._cogs.helpers.typedefs import (
    Logger,
)
from eventrelay._cogs.helpers.versions import (
    version as __version__,
)
from eventrelay._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from eventrelay._core.actions.loggers import (
    configure,
    LogFormat,
)
from eventrelay._core.engines.delivery import (
    DeliveryEnvelope,
    EventReporter,
    deliver,
)
from eventrelay._core.reactor.dispatching import (
    ChangeHandler,
)
from eventrelay._core.reactor.running import (
    run,
    relay,
    spawn_tasks,
    run_tasks,
)

__all__ = [
    'RelaySettings',
    'Logger',
    'LoginError',
    'ConnectionInfo',
    'configure',
    'LogFormat',
    'DeliveryEnvelope',
    'EventReporter',
    'deliver',
    'ChangeHandler',
    'run',
    'relay',
    'spawn_tasks',
    'run_tasks',
]
