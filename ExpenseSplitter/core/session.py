"""Persisted bearer credential and the auth-change notification channel.

:class:`CredentialStore` keeps the token on disk with an expiry, path scope and
same-site policy. :class:`AuthSession` wraps a store and broadcasts
``authChanged`` from every write, so any component holding the session learns
about logins, logouts and invalidations without a shared global.
"""
import datetime
import json
import logging
import pathlib
from typing import Any, Callable, Dict, Optional

from PySide6 import QtCore

DEFAULT_TTL_DAYS: int = 7


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class CredentialStore:
    """Read and write the persisted token.

    The store never talks to the server: whether the token is still accepted is
    established lazily by the auth guard.

    Args:
        path: JSON file holding the credential.
        ttl_days: Default lifetime of a newly set credential.
        scope_path: Path scope recorded with the credential.
        same_site: Same-site policy recorded with the credential.
    """

    def __init__(self, path: pathlib.Path, ttl_days: int = DEFAULT_TTL_DAYS,
                 scope_path: str = '/', same_site: str = 'lax') -> None:
        self.path = pathlib.Path(path)
        self.ttl_days = ttl_days
        self.scope_path = scope_path
        self.same_site = same_site

    def _discard(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as ex:
            logging.error(f'Could not remove {self.path}: {ex}')

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open('r', encoding='utf-8') as f:
                data = json.load(f)
            expires = datetime.datetime.fromisoformat(data['expires'])
            if not isinstance(data['token'], str) or not data['token']:
                raise ValueError('Empty token')
            expired = expires <= _now()
        except (OSError, ValueError, KeyError, TypeError) as ex:
            logging.error(f'Failed to load credential, removing {self.path}: {ex}')
            self._discard()
            return None

        if expired:
            logging.debug('Stored credential has expired.')
            self._discard()
            return None
        return data

    def get(self) -> Optional[str]:
        """Return the current token, or None if there is no unexpired credential."""
        data = self._read()
        return data['token'] if data else None

    def expires(self) -> Optional[datetime.datetime]:
        """Return the expiry of the current credential, or None."""
        data = self._read()
        return datetime.datetime.fromisoformat(data['expires']) if data else None

    def set(self, token: str, ttl_days: Optional[int] = None) -> None:
        """Persist ``token`` with an expiry of ``ttl_days`` from now.

        Raises:
            ValueError: If the token is empty.
        """
        if not token:
            raise ValueError('Cannot store an empty token.')

        ttl_days = self.ttl_days if ttl_days is None else ttl_days
        data = {
            'token': token,
            'expires': (_now() + datetime.timedelta(days=ttl_days)).isoformat(),
            'path': self.scope_path,
            'same_site': self.same_site,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as f:
            json.dump(data, f, indent=4)
        logging.debug(f'Credential saved to {self.path}, expires {data["expires"]}.')

    def clear(self) -> None:
        """Remove the credential unconditionally."""
        if self.path.exists():
            logging.debug(f'Deleting {self.path}...')
        self.path.unlink(missing_ok=True)


class AuthSession(QtCore.QObject):
    """The process-wide auth session: credential access plus change broadcast.

    Every write publishes ``authChanged`` in the same call, so a reader is never
    left holding a value it was not told changed. Subscribers run synchronously,
    in registration order, inside :meth:`publish`.

    Signals:
        authChanged (): Emitted after any credential write.
    """
    authChanged = QtCore.Signal()

    def __init__(self, store: CredentialStore, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.store = store

    def get(self) -> Optional[str]:
        return self.store.get()

    def set(self, token: str, ttl_days: Optional[int] = None) -> None:
        self.store.set(token, ttl_days)
        self.publish()

    def clear(self) -> None:
        self.store.clear()
        self.publish()

    def invalidate(self, token: str) -> bool:
        """Clear the credential after the server rejected ``token``.

        Only clears (and publishes) if ``token`` is still the stored one: a
        rejection of an older token must not log out a newer session, and
        concurrent rejections of the same token publish once.

        Returns:
            bool: True if the credential was cleared.
        """
        if self.store.get() != token:
            logging.debug('Rejected token is no longer current, nothing to invalidate.')
            return False
        logging.info('Credential rejected by the server, signing out.')
        self.clear()
        return True

    def publish(self) -> None:
        """Notify every subscriber that the auth state changed."""
        logging.debug('Auth change published.')
        self.authChanged.emit()

    def subscribe(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Register ``handler`` for auth changes.

        Returns:
            A function that removes the registration. Calling it twice is a no-op.
        """
        self.authChanged.connect(handler)
        connected = True

        def unsubscribe() -> None:
            nonlocal connected
            if not connected:
                return
            connected = False
            self.authChanged.disconnect(handler)

        return unsubscribe
