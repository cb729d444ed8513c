"""Application-wide Qt signals for ExpenseSplitter.

This module provides:
    - Signals: custom Qt signals for user notifications (the toast layer listens to
      ``error`` and ``success``), navigation and log display.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for notifications and UI events."""
    error = QtCore.Signal(str)
    success = QtCore.Signal(str)

    navigated = QtCore.Signal(str)

    showLogs = QtCore.Signal()

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.error.connect(lambda msg: logging.debug(f'Error notification: {msg}'))
        self.success.connect(lambda msg: logging.debug(f'Success notification: {msg}'))


signals = Signals()
