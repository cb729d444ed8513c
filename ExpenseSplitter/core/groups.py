"""Dashboard controller: the signed-in user's groups."""
import logging
from typing import Optional, Tuple

from PySide6 import QtCore

from . import api
from .api import ApiGateway
from .ledger import LoadStatus
from .models import Group, GroupCategory
from ..status import status
from ..ui.actions import signals


class DashboardController(QtCore.QObject):
    """Lists the user's groups and creates new ones.

    Signals:
        statusChanged (str): Emitted with the new LoadStatus value.
        groupsChanged (object): Emitted with the tuple of groups after each fetch.
    """
    statusChanged = QtCore.Signal(str)
    groupsChanged = QtCore.Signal(object)

    def __init__(self, gateway: ApiGateway, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.gateway = gateway

        self._status: LoadStatus = LoadStatus.Loading
        self._groups: Tuple[Group, ...] = ()
        self._mounted: bool = False
        self._mount_id: int = 0
        self._generation: int = 0

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def groups(self) -> Tuple[Group, ...]:
        return self._groups

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._mount_id += 1

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self._mount_id += 1
        self._generation += 1
        self._groups = ()

    def _set_status(self, value: LoadStatus) -> None:
        if value == self._status:
            return
        self._status = value
        self.statusChanged.emit(value.value)

    async def fetch(self) -> bool:
        """Fetch the group list. Returns True if it was updated."""
        if not self._mounted:
            return False
        self._generation += 1
        generation = self._generation
        self._set_status(LoadStatus.Loading)

        try:
            data = await self.gateway.request(api.GROUPS)
            groups = tuple(Group.from_dict(g) for g in data.get('groups') or [])
        except (AttributeError, TypeError, KeyError, ValueError) as ex:
            logging.error(f'Malformed group list: {ex!r}')
            error: Optional[status.ApiError] = status.ServerError()
        except status.ApiError as ex:
            error = ex
        else:
            error = None

        if not self._mounted or generation != self._generation:
            logging.debug('Discarding stale group list.')
            return False

        if error is not None:
            self._set_status(LoadStatus.Error)
            signals.error.emit(error.user_message('Failed to load groups'))
            return False

        self._groups = groups
        self._set_status(LoadStatus.Ready)
        self.groupsChanged.emit(groups)
        return True

    async def create_group(self, name: str, description: str = '',
                           category: str = GroupCategory.Other.value) -> bool:
        """Create a group and re-fetch the list."""
        if not self._mounted:
            return False
        name = (name or '').strip()
        if not name:
            signals.error.emit('Group name is required.')
            return False
        if category not in set(GroupCategory):
            signals.error.emit(f'Unknown group category "{category}".')
            return False

        mount_id = self._mount_id
        body = {'name': name, 'description': description or '', 'category': category}
        try:
            await self.gateway.request(api.GROUPS, method='POST', body=body)
        except status.ApiError as ex:
            if self._mounted and mount_id == self._mount_id:
                signals.error.emit(ex.user_message('Failed to create group'))
            return False

        if not self._mounted or mount_id != self._mount_id:
            return False
        signals.success.emit('Group created successfully!')
        await self.fetch()
        return True
