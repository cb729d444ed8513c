"""Root logger configuration for the client.

Everything goes through the root logger: the gateway's request lines, the
status exceptions, the notifications mirrored from
:data:`~ExpenseSplitter.ui.actions.signals` and Qt's own messages. Records land
on stdout and in the in-memory :class:`TankHandler`. Bearer tokens are masked
before a record reaches either.
"""
import logging
import re
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..ui.actions import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# httpx logs one INFO line per request; the gateway already logs its own.
QUIET_LOGGERS = {
    'httpx': logging.WARNING,
    'httpcore': logging.WARNING,
    'asyncio': logging.WARNING,
}

_BEARER = re.compile(r'(Bearer\s+)[^\s\'",]+', re.IGNORECASE)


def set_logging_level(level):
    """
    Sets the logging level for the root logger and its handlers.

    Args:
        level (int): One of the standard logging levels.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in (
            logging.DEBUG,
            logging.INFO,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
    ):
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def redact(message):
    """Mask the token of every ``Bearer <token>`` in ``message``."""
    return _BEARER.sub(r'\1***', message)


class CredentialFilter(logging.Filter):
    """Replaces bearer tokens in a record's message before it is handled."""

    def filter(self, record):
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def qt_message_handler(mode, context, message):
    """Forward Qt messages to the 'Qt' logger."""
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode in (QtMsgType.QtCriticalMsg, QtMsgType.QtFatalMsg):
        logger.critical(message)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the root logger for the client.

    Installs the tank (and optionally a stdout handler), both behind a
    :class:`CredentialFilter`, and lowers the verbosity of the HTTP stack's loggers.

    Args:
        enable_stream_handler (bool): Attach a stdout stream handler.
        enable_qt_handler (bool): Route Qt messages through Python logging.
        log_level (int): Level for the root logger and its handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, log_level))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    credential_filter = CredentialFilter()

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        stream_handler.addFilter(credential_filter)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    tank_handler.addFilter(credential_filter)
    root_logger.addHandler(tank_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Return the TankHandler attached to the root logger, or None."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps formatted records in memory so a log viewer can show them later.

    An ERROR or worse raises :attr:`signals.showLogs`.

    Attributes:
        tank (list[tuple[int, str]]): Level and formatted message pairs.
    """

    def __init__(self):
        super().__init__()
        self.tank = []

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, message))
            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except Exception:
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """Return the stored messages with a level of at least ``level``."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
