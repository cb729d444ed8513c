"""
Login, logout and the signed-in user shown by the navigation bar.

Every credential write goes through :class:`~ExpenseSplitter.core.session.AuthSession`,
which broadcasts the change to guards and the navigation bar.
"""
import asyncio
import logging
from typing import Optional

from PySide6 import QtCore

from . import api
from .api import ApiGateway
from .models import User
from .session import AuthSession
from ..status import status
from ..ui.actions import signals


class AuthService:
    """Signs the user in and out.

    Args:
        session: The process-wide auth session.
        gateway: API gateway bound to the same session.
        ttl_days: Lifetime of the credential stored on login.
    """

    def __init__(self, session: AuthSession, gateway: ApiGateway, ttl_days: Optional[int] = None) -> None:
        self.session = session
        self.gateway = gateway
        self.ttl_days = ttl_days

    async def login(self, email: str, password: str) -> bool:
        """
        Exchange email and password for a token and store it.

        Returns:
            bool: True when signed in. Failures are reported through ``signals.error``.
        """
        email = (email or '').strip()
        if not email or not password:
            signals.error.emit('Email and password are required.')
            return False

        try:
            data = await self.gateway.request(
                api.AUTH_LOGIN, method='POST', body={'email': email, 'password': password}, auth=False,
            )
        except status.ApiError as ex:
            signals.error.emit(ex.user_message('Login failed'))
            return False

        token = data.get('token') if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            logging.error('Login response did not contain a token.')
            signals.error.emit('Login failed')
            return False

        self.session.set(token, self.ttl_days)
        logging.info(f'Signed in as {email}.')
        signals.success.emit('Logged in successfully!')
        return True

    def logout(self) -> None:
        """Remove the credential. Subscribed guards redirect to the login page."""
        logging.info('Signing out.')
        self.session.clear()


class Navbar(QtCore.QObject):
    """Model behind the navigation bar: who is signed in.

    The user is resolved from the server on mount and again after every auth
    change; it is never persisted.

    Signals:
        userChanged (object): Emitted with the new User or None.
    """
    userChanged = QtCore.Signal(object)

    def __init__(self, session: AuthSession, gateway: ApiGateway,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.session = session
        self.gateway = gateway

        self._user: Optional[User] = None
        self._mounted: bool = False
        self._generation: int = 0
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = None

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def is_signed_in(self) -> bool:
        return self.session.get() is not None

    @property
    def display_name(self) -> str:
        return f'Welcome, {self._user.name if self._user and self._user.name else "User"}'

    def mount(self) -> None:
        """Start tracking the session. Requires a running event loop."""
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribe = self.session.subscribe(self.refresh)
        self.refresh()

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    @QtCore.Slot()
    def refresh(self) -> None:
        if not self._mounted:
            return
        self._generation += 1
        generation = self._generation

        if self.session.get() is None:
            self._set_user(None, generation)
            return
        self._task = asyncio.get_running_loop().create_task(self._resolve(generation))

    async def _resolve(self, generation: int) -> None:
        try:
            data = await self.gateway.request(api.AUTH_ME)
        except status.ApiError:
            self._set_user(None, generation)
            return

        user_data = data.get('user') if isinstance(data, dict) else None
        self._set_user(User.from_dict(user_data) if isinstance(user_data, dict) else None, generation)

    def _set_user(self, user: Optional[User], generation: int) -> None:
        if not self._mounted or generation != self._generation:
            return
        if user == self._user:
            return
        self._user = user
        self.userChanged.emit(user)

    async def wait(self) -> Optional[User]:
        """Wait for any pending user lookup and return the user."""
        while self._task is not None and not self._task.done():
            await self._task
        return self._user

    def logout(self) -> None:
        self.session.clear()
