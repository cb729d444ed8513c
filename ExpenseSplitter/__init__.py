"""
ExpenseSplitter: client for a shared-expense splitting service.

This package provides:

- :mod:`ExpenseSplitter.core` – Credential storage, auth change notifications, the API gateway,
  the route guard and the dashboard and group ledger controllers.
- :mod:`ExpenseSplitter.app` – The composition root and route table (:class:`ExpenseSplitter.app.Application`).
- :mod:`ExpenseSplitter.settings` – Client configuration with schema validation, and Babel formatting.
- :mod:`ExpenseSplitter.status` – Status codes and the API error taxonomy.
- :mod:`ExpenseSplitter.log` – In-app logging with an in-memory log tank.

Use :func:`ExpenseSplitter.exec_` to open a path and print the resulting page.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ExpenseSplitter requires Python 3.11 or higher.')

__version__ = '0.0.0'
__description__ = 'ExpenseSplitter: client for splitting shared expenses within groups.'

from .log import log

log.setup_logging()


def exec_(path: str = None) -> None:
    """Start the application headless, open ``path`` and log the page it lands on.

    The path defaults to the first command line argument, or the dashboard.

    Initializes the QCoreApplication, runs the navigation on an asyncio event loop
    and closes the HTTP client on the way out.
    """
    import asyncio
    import logging

    from PySide6 import QtCore

    from . import app

    if path is None:
        path = sys.argv[1] if len(sys.argv) > 1 else '/'

    qapp = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    logging.debug(f'Running as {qapp.applicationName()}')

    async def run() -> None:
        application = app.Application()
        try:
            await application.start(path)
            page = await application.settle()
            logging.info(f'Opened "{page.path}" as "{page.view}".')
        finally:
            await application.close()

    asyncio.run(run())


if __name__ == '__main__':
    exec_()
