# tests/test_log.py
"""
Tests for ExpenseSplitter.log.log
(covers TankHandler, credential masking, the Qt bridge and the setup helpers).

Run:
    python -m unittest tests.test_log
"""
import logging
import time
from typing import List

from PySide6.QtCore import QtMsgType

from ExpenseSplitter.log.log import (
    TankHandler,
    get_tank,
    qt_message_handler,
    set_logging_level,
    setup_logging,
)
from ExpenseSplitter.ui.actions import signals
from tests.base import BaseTestCase


class LogModuleTests(BaseTestCase):
    """
    Each test starts with a fresh root logger configured by
    setup_logging(enable_stream_handler=False).
    """

    def setUp(self) -> None:
        super().setUp()

        # enable logging
        logging.disable(logging.NOTSET)

        setup_logging(enable_stream_handler=False,
                      enable_qt_handler=False,
                      log_level=logging.DEBUG)

        self.root_logger = logging.getLogger()
        self.tank: TankHandler = get_tank()

    def tearDown(self) -> None:
        setup_logging(enable_qt_handler=False)
        super().tearDown()

    def test_tank_bulk_append_speed(self):
        self.tank.clear_logs()
        n = 10_000
        t0 = time.perf_counter()
        for i in range(n):
            logging.debug('bulk-%05d', i)
        elapsed = time.perf_counter() - t0

        self.assertLessEqual(elapsed, 2.0, f'logging {n} messages took {elapsed:.2f}s')
        self.assertEqual(len(self.tank.tank), n)

    def test_set_logging_level_accepts_valid_levels(self):
        set_logging_level(logging.ERROR)
        self.assertEqual(self.root_logger.level, logging.ERROR)
        for h in self.root_logger.handlers:
            self.assertEqual(h.level, logging.ERROR)

    def test_set_logging_level_rejects_non_int(self):
        with self.assertRaises(ValueError):
            set_logging_level('INFO')  # type: ignore[arg-type]

    def test_set_logging_level_rejects_unknown(self):
        with self.assertRaises(ValueError):
            set_logging_level(1234)

    def test_tank_handler_stores_and_filters(self):
        self.tank.clear_logs()
        logging.debug('dbg message')
        logging.error('err message')
        self.assertEqual(len(self.tank.tank), 2)
        errs: List[str] = self.tank.get_logs(logging.ERROR)
        self.assertEqual(len(errs), 1)
        self.assertIn('err message', errs[0])
        self.tank.clear_logs()
        self.assertEqual(len(self.tank.tank), 0)

    def test_emit_triggers_showLogs_on_error(self):
        triggered: List[bool] = []

        def _slot() -> None:
            triggered.append(True)

        signals.showLogs.connect(_slot)
        try:
            logging.warning('should not emit')
            self.assertFalse(triggered)
            logging.error('should emit signal')
            self.assertTrue(triggered)
        finally:
            signals.showLogs.disconnect(_slot)

    def test_failed_request_is_logged(self):
        from ExpenseSplitter.status import status

        self.tank.clear_logs()
        status.ServerError(status_code=500)
        self.assertTrue(any('HTTP 500' in m for m in self.tank.get_logs(logging.ERROR)))

    def test_notifications_are_logged(self):
        self.tank.clear_logs()
        signals.error.emit('Failed to load groups')
        self.assertTrue(any('Failed to load groups' in m for m in self.tank.get_logs()))

    def test_qt_message_handler_maps_to_logging(self):
        qt_message_handler(QtMsgType.QtInfoMsg, None, 'Qt info')
        qt_message_handler(QtMsgType.QtWarningMsg, None, 'Qt warn\n')
        qt_message_handler(QtMsgType.QtCriticalMsg, None, 'Qt critical')
        msgs = self.tank.get_logs()
        self.assertTrue(any('Qt info' in m for m in msgs))
        self.assertTrue(any('Qt warn' in m for m in msgs))
        self.assertTrue(any('Qt critical' in m for m in self.tank.get_logs(logging.CRITICAL)))

    def test_setup_logging_installs_tank_handler_only(self):
        self.assertEqual(
            [type(h) for h in self.root_logger.handlers],
            [TankHandler],
        )

    def test_bearer_tokens_are_masked(self):
        self.tank.clear_logs()
        logging.debug('Authorization: %s', 'Bearer T-secret-123')
        logging.info('headers={"Authorization": "Bearer abc.def"}')

        logs = self.tank.get_logs()
        self.assertTrue(all('T-secret-123' not in m and 'abc.def' not in m for m in logs))
        self.assertIn('Authorization: Bearer ***', logs[0])
        self.assertIn('"Bearer ***"', logs[1])

    def test_http_stack_loggers_are_quiet(self):
        self.assertEqual(logging.getLogger('httpx').level, logging.WARNING)
        self.assertEqual(logging.getLogger('httpcore').level, logging.WARNING)

        self.tank.clear_logs()
        logging.getLogger('httpx').info('HTTP Request: GET /api/groups "HTTP/1.1 200 OK"')
        self.assertEqual(self.tank.get_logs(), [])
