"""Composition root and route table.

:class:`Application` builds exactly one settings object, auth session, API
gateway, auth service and navigation bar model, and hands the same instances to
every guard and page controller it creates.

Routes:

    ========================  ==============  ==========================
    Path                      Guard           Page
    ========================  ==============  ==========================
    ``/login``                public only     login (AuthService)
    ``/``                     protected       DashboardController
    ``/group/<groupId>``      protected       GroupLedgerController
    anything else             none            redirect to ``/``
    ========================  ==============  ==========================
"""
import asyncio
import dataclasses
import datetime
import enum
import logging
import re
from decimal import Decimal
from typing import Any, Dict, Optional, Set, Tuple, Union

import httpx
from PySide6 import QtCore

from .core.api import ApiGateway
from .core.auth import AuthService, Navbar
from .core.groups import DashboardController
from .core.guard import AuthGuard, GuardPolicy, HOME_PATH, LOGIN_PATH, Render
from .core.ledger import GroupLedgerController
from .core.session import AuthSession, CredentialStore
from .settings import lib, locale
from .ui.actions import signals

MAX_REDIRECTS: int = 5


class View(enum.StrEnum):
    Nothing = 'nothing'
    Loading = 'loading'
    Login = 'login'
    Dashboard = 'dashboard'
    Group = 'group'


ROUTES: Tuple[Tuple[re.Pattern, View, GuardPolicy], ...] = (
    (re.compile(r'^/login/?$'), View.Login, GuardPolicy.PublicOnly),
    (re.compile(r'^/$'), View.Dashboard, GuardPolicy.Protected),
    (re.compile(r'^/group/(?P<group_id>[^/]+)/?$'), View.Group, GuardPolicy.Protected),
)


def resolve(path: str) -> Optional[Tuple[View, GuardPolicy, Dict[str, str]]]:
    """Match ``path`` against the route table."""
    path = (path or '').split('?', 1)[0] or '/'
    for pattern, view, policy in ROUTES:
        match = pattern.match(path)
        if match:
            return view, policy, match.groupdict()
    return None


@dataclasses.dataclass
class Page:
    """What is currently on screen."""
    path: str
    view: View
    guard: Optional[AuthGuard] = None
    controller: Any = None


class Application(QtCore.QObject):
    """Owns the shared services and the current page.

    Signals:
        pageChanged (object): Emitted with each new Page.
    """
    pageChanged = QtCore.Signal(object)

    def __init__(self, settings: Optional[lib.SettingsAPI] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.settings = settings or lib.SettingsAPI()

        session_config = self.settings.get_section('session')
        store = CredentialStore(
            self.settings.token_path,
            ttl_days=session_config['ttl_days'],
            scope_path=session_config['path'],
            same_site=session_config['same_site'],
        )
        self.session = AuthSession(store, self)
        self.gateway = ApiGateway(self.session, self.settings.base_url, transport=transport)
        self.auth = AuthService(self.session, self.gateway, self.settings.ttl_days)
        self.navbar = Navbar(self.session, self.gateway, self)

        self.page: Optional[Page] = None
        self._navigation: int = 0
        self._pending: Set[asyncio.Task] = set()

    async def start(self, path: str = HOME_PATH) -> Page:
        """Mount the navigation bar and open ``path``."""
        self.navbar.mount()
        return await self.navigate(path)

    async def close(self) -> None:
        pending, self._pending = self._pending, set()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._teardown()
        self.navbar.unmount()
        await self.gateway.aclose()

    def _teardown(self) -> None:
        if self.page is None:
            return
        if self.page.guard is not None:
            self.page.guard.unmount()
        unmount = getattr(self.page.controller, 'unmount', None)
        if unmount:
            unmount()

    def _build_controller(self, view: View, params: Dict[str, str]) -> Any:
        if view == View.Dashboard:
            return DashboardController(self.gateway)
        if view == View.Group:
            return GroupLedgerController(self.gateway, params['group_id'])
        return self.auth

    async def navigate(self, path: str, _redirects: int = 0) -> Page:
        """Open ``path``, following redirects, and return the resulting page."""
        if _redirects > MAX_REDIRECTS:
            raise RuntimeError(f'Too many redirects while opening "{path}".')

        self._navigation += 1
        navigation = self._navigation
        self._teardown()
        self.page = None

        route = resolve(path)
        if route is None:
            logging.debug(f'No route for "{path}", redirecting to {HOME_PATH}.')
            return await self.navigate(HOME_PATH, _redirects + 1)
        view, policy, params = route

        guard = AuthGuard(self.session, self.gateway, policy)
        guard.mount()
        await guard.wait()
        if navigation != self._navigation:
            guard.unmount()
            return self.page

        render = guard.render()
        if render in (Render.RedirectToLogin, Render.RedirectHome):
            guard.unmount()
            target = LOGIN_PATH if render == Render.RedirectToLogin else HOME_PATH
            logging.debug(f'Guard redirects "{path}" to "{target}".')
            return await self.navigate(target, _redirects + 1)

        guard.stateChanged.connect(lambda state: self._on_guard_state_changed(guard, state))

        if render != Render.Children:
            page = Page(path, View.Loading if render == Render.Loading else View.Nothing, guard)
            self._show(page)
            return page

        controller = self._build_controller(view, params)
        page = Page(path, view, guard, controller)
        self._show(page)

        mount = getattr(controller, 'mount', None)
        if mount:
            mount()
            await controller.fetch()
        return page

    def _show(self, page: Page) -> None:
        self.page = page
        logging.debug(f'Showing "{page.view}" for "{page.path}".')
        self.pageChanged.emit(page)
        signals.navigated.emit(page.path)

    def _on_guard_state_changed(self, guard: AuthGuard, state: str) -> None:
        # The guard of the current page changed its mind (e.g. logout); render the path again.
        if self.page is None or self.page.guard is not guard:
            return
        logging.debug(f'Guard state changed to "{state}", re-rendering "{self.page.path}".')
        self._pending.add(asyncio.get_running_loop().create_task(self.navigate(self.page.path)))

    async def settle(self) -> Optional[Page]:
        """Wait for re-renders triggered by auth changes and return the current page.

        Raises:
            Exception: The first error raised by any of the re-renders.
        """
        errors = []
        while self._pending:
            tasks, self._pending = self._pending, set()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            errors.extend(r for r in results if isinstance(r, Exception))
        if errors:
            raise errors[0]
        return self.page

    def format_amount(self, value: Union[Decimal, float, int]) -> str:
        """Format an amount in the configured locale and currency."""
        metadata = self.settings.get_section('metadata')
        return locale.format_currency_value(value, metadata['locale'], metadata['currency'])

    def format_date(self, value: Union[str, datetime.date, None]) -> str:
        return locale.format_date_value(value, self.settings.get_section('metadata')['locale'])

    async def export_report(self) -> Optional[str]:
        """Save the open group's report to the reports directory."""
        controller = self.page.controller if self.page else None
        if not isinstance(controller, GroupLedgerController):
            logging.debug('No group is open, nothing to export.')
            return None
        return await controller.export_report(self.settings.report_dir)
