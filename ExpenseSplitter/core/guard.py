"""Route guard deciding whether a view may render for the current session.

One state machine, two policies:

    - ``protected``: confirms the credential with the server (who-am-I) before
      rendering children; redirects to the login page only once the server has
      rejected it or no credential exists.
    - ``public_only``: keeps signed-in users away from public pages (login); only
      the local presence of a credential is checked, without a server round trip.

Checks run asynchronously. Each carries a generation number and its result is
applied only while the guard is mounted and the check is still the latest one.
"""
import asyncio
import enum
import logging
from typing import Optional

from PySide6 import QtCore

from . import api
from .api import ApiGateway
from .session import AuthSession
from ..status import status

LOGIN_PATH: str = '/login'
HOME_PATH: str = '/'


class AuthState(enum.StrEnum):
    Unknown = 'unknown'
    Authenticated = 'authenticated'
    Unauthenticated = 'unauthenticated'
    Indeterminate = 'indeterminate'


class GuardPolicy(enum.StrEnum):
    Protected = 'protected'
    PublicOnly = 'public_only'


class Render(enum.StrEnum):
    """What the hosting view should show for the guard's current state."""
    Nothing = 'nothing'
    Loading = 'loading'
    Children = 'children'
    RedirectToLogin = 'redirect_to_login'
    RedirectHome = 'redirect_home'


class AuthGuard(QtCore.QObject):
    """Authentication state machine for one mounted view.

    Signals:
        stateChanged (str): Emitted with the new :class:`AuthState` value.
    """
    stateChanged = QtCore.Signal(str)

    def __init__(self, session: AuthSession, gateway: ApiGateway,
                 policy: GuardPolicy = GuardPolicy.Protected,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.session = session
        self.gateway = gateway
        self.policy = GuardPolicy(policy)

        self._state: AuthState = AuthState.Unknown
        self._mounted: bool = False
        self._generation: int = 0
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        """Start guarding: subscribe to auth changes and run the first check.

        Must be called from a running event loop when the policy is ``protected``.
        """
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribe = self.session.subscribe(self.check)
        logging.debug(f'Guard mounted ({self.policy}).')
        self.check()

    def unmount(self) -> None:
        """Stop guarding. Results of checks still in flight are discarded."""
        if not self._mounted:
            return
        self._mounted = False
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        logging.debug(f'Guard unmounted ({self.policy}).')

    @QtCore.Slot()
    def check(self) -> None:
        """Re-derive the state from the session. Called on mount and on every auth change."""
        if not self._mounted:
            return

        self._generation += 1
        generation = self._generation

        token = self.session.get()
        if not token:
            self._set_state(AuthState.Unauthenticated, generation)
            return

        if self.policy == GuardPolicy.PublicOnly:
            self._set_state(AuthState.Authenticated, generation)
            return

        self._task = asyncio.get_running_loop().create_task(self._verify(generation))

    async def _verify(self, generation: int) -> None:
        try:
            await self.gateway.request(api.AUTH_ME)
        except status.AuthError:
            # The gateway has already cleared the rejected credential and published.
            self._set_state(AuthState.Unauthenticated, generation)
        except status.ApiError as ex:
            logging.debug(f'Could not confirm the session ({ex.kind}).')
            self._set_state(AuthState.Indeterminate, generation)
        else:
            self._set_state(AuthState.Authenticated, generation)

    def _set_state(self, state: AuthState, generation: int) -> None:
        if not self._mounted or generation != self._generation:
            logging.debug(f'Discarding stale guard result "{state}".')
            return
        if state == self._state:
            return
        logging.debug(f'Guard ({self.policy}): {self._state} -> {state}')
        self._state = state
        self.stateChanged.emit(state.value)

    async def wait(self) -> AuthState:
        """Wait until no check is in flight and return the resulting state."""
        while self._task is not None and not self._task.done():
            await self._task
        return self._state

    def render(self) -> Render:
        """Map the current state onto what the view should show."""
        if self.policy == GuardPolicy.PublicOnly:
            return {
                AuthState.Unknown: Render.Nothing,
                AuthState.Authenticated: Render.RedirectHome,
            }.get(self._state, Render.Children)

        return {
            AuthState.Authenticated: Render.Children,
            AuthState.Unauthenticated: Render.RedirectToLogin,
        }.get(self._state, Render.Loading)
