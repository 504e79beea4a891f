"""
Logging of the relay: formats, formatters, and per-object loggers.

Most of the relay's messages are about specific events (the watched objects),
e.g. their delivery failures. Such messages are logged via `ObjectLogger`,
which carries the object's reference with every log record, so that
the formatters can render it either as a ``[namespace/name]`` prefix
in the text logs, or as a separate field in the JSON logs.
"""
import copy
import enum
import logging
from collections.abc import Mapping, MutableMapping
from typing import TYPE_CHECKING, Any, TextIO

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from eventrelay._cogs.helpers import typedefs
from eventrelay._cogs.structs import bodies

logger = logging.getLogger('eventrelay.objects')

# The log record's attribute with the object's reference, as set by `ObjectLogger`.
REF_ATTR = 'k8s_ref'

# A key for object references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'object'

# Severities as understood by most log collectors, from the lowest level up.
SEVERITIES: list[tuple[int, str]] = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]

# Third-party loggers that are only shown in the debug mode.
NOISY_LOGGERS = ['asyncio', 'aiohttp.access']


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # a marker only, never used as a format string


def get_severity(levelno: int) -> str:
    for threshold, severity in SEVERITIES:
        if levelno <= threshold:
            return severity
    return 'fatal'


def get_prefix(ref: Mapping[str, Any]) -> str:
    name = ref.get('name', '')
    namespace = ref.get('namespace')
    return f"[{namespace}/{name}]" if namespace else f"[{name}]"


class ObjectFormatter(logging.Formatter):
    """ A base class for all formatters that understand the object references. """


class ObjectTextFormatter(ObjectFormatter, logging.Formatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """
    A JSON formatter with the object's reference and the severity as fields.

    The reference's raw attribute is not dumped as is: it is renamed
    to the configured key (``object`` by default), or omitted if the key is empty.
    """

    def __init__(self, *args: Any, refkey: str | None = None, **kwargs: Any) -> None:
        reserved_attrs = set(kwargs.pop('reserved_attrs', RESERVED_ATTRS)) | {REF_ATTR}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, reserved_attrs=reserved_attrs, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = getattr(record, REF_ATTR, None)
        if ref is not None and self.refkey:
            log_record[self.refkey] = ref
        log_record.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    """ Prepend the messages about objects with the objects' names. """

    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, REF_ATTR, None)
        if ref is not None:
            # The same record goes to all handlers: modify only a copy of it.
            record = copy.copy(record)
            record.msg = f"{get_prefix(ref)} {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger for messages about a specific object (a K8s event).

    Only the object's reference is carried with the records, not the object itself.
    """

    def __init__(self, *, body: bodies.RawBody) -> None:
        super().__init__(logger, {REF_ATTR: bodies.build_object_reference(body)})

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # Keep the call's own extras next to the reference; plain adapters drop them.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


if TYPE_CHECKING:
    _StreamHandler = logging.StreamHandler[TextIO]
else:
    _StreamHandler = logging.StreamHandler


class _RelayStreamHandler(_StreamHandler):
    """ A marker of the relay's own handler, replaced on every re-configuration. """


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> None:
    """
    Configure the root logger for the relay (usually from CLI).

    Repeated calls replace the previously installed handler instead of adding one more.
    """
    if debug or verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = _RelayStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format,
                                        log_prefix=log_prefix,
                                        log_refkey=log_refkey))
    root = logging.getLogger()
    for old_handler in [h for h in root.handlers if isinstance(h, _RelayStreamHandler)]:
        root.removeHandler(old_handler)
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.propagate = bool(debug)
        if not debug:
            noisy.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> ObjectFormatter:
    """
    Pick a formatter for the log format.

    The prefixes are on by default in the text logs, and off in the JSON logs,
    which carry the references as a separate field.
    """
    if log_prefix is None:
        log_prefix = log_format is not LogFormat.JSON

    match log_format, bool(log_prefix):
        case LogFormat.JSON, True:
            return ObjectPrefixingJsonFormatter(refkey=log_refkey)
        case LogFormat.JSON, False:
            return ObjectJsonFormatter(refkey=log_refkey)
        case LogFormat(value=fmt) | (str() as fmt), True:
            return ObjectPrefixingTextFormatter(fmt)
        case LogFormat(value=fmt) | (str() as fmt), False:
            return ObjectTextFormatter(fmt)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
