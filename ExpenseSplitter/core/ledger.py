"""Group ledger controller: one group's expenses, settlements and summary.

The controller holds a single :class:`~ExpenseSplitter.core.models.GroupSnapshot`
built from four concurrent requests (group, expenses, settlements, summary).
A snapshot is published only when all four succeed; on any failure the previous
snapshot stays and an error notification is emitted.

Every mutation is a single request followed, on success, by a full re-fetch.
Settlements and the summary are computed by the server from the expenses, so
the response of a mutation is never merged into local state.

Results that arrive after the controller was unmounted, and fetches overtaken by
a newer fetch, are discarded.
"""
import asyncio
import dataclasses
import enum
import io
import logging
import pathlib
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from PySide6 import QtCore

from . import api
from .api import ApiGateway
from .models import (
    Expense,
    ExpenseCategory,
    Group,
    GroupSnapshot,
    Settlement,
    Summary,
    to_decimal,
)
from ..status import status
from ..ui.actions import signals


class LoadStatus(enum.StrEnum):
    Loading = 'loading'
    Ready = 'ready'
    Error = 'error'


def report_filename(group_id: str) -> str:
    return f'expense-report-{group_id}.csv'


def count_report_rows(text: str) -> Optional[int]:
    """Return the number of data rows in a CSV report, or None if pandas can't read it.

    The report is saved as the server sent it, so this only feeds the log.
    """
    try:
        return len(pd.read_csv(io.StringIO(text)))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as ex:
        logging.warning(f'Could not read report as CSV: {ex}')
        return None


@dataclasses.dataclass(frozen=True)
class ExpenseForm:
    """State of the add/edit expense form.

    The same form serves both modes: with ``edit_mode`` set, submitting updates
    the expense ``expense_id`` in full; otherwise it creates a new expense.
    """
    description: str = ''
    amount: str = ''
    category: str = ExpenseCategory.Other.value
    paid_by: str = ''
    edit_mode: bool = False
    expense_id: Optional[str] = None

    @classmethod
    def from_expense(cls, expense: Expense) -> 'ExpenseForm':
        return cls(
            description=expense.description,
            amount=str(expense.amount),
            category=expense.category or ExpenseCategory.Other.value,
            paid_by=expense.paid_by.id if expense.paid_by else '',
            edit_mode=True,
            expense_id=expense.id,
        )

    def validate(self, member_ids: Sequence[str]) -> Decimal:
        """Check the form before it is sent.

        Returns:
            Decimal: The parsed amount.

        Raises:
            status.ValidationError: With a user-facing message.
        """
        if not self.description.strip():
            raise status.ValidationError('Description is required.')
        try:
            amount = to_decimal(self.amount)
        except ValueError:
            raise status.ValidationError('Amount must be a number.') from None
        if amount <= 0:
            raise status.ValidationError('Amount must be greater than zero.')
        if self.category not in set(ExpenseCategory):
            raise status.ValidationError(f'Unknown category "{self.category}".')
        if not self.paid_by:
            raise status.ValidationError('Select who paid for the expense.')
        if self.paid_by not in member_ids:
            raise status.ValidationError('The payer must be a member of the group.')
        if self.edit_mode and not self.expense_id:
            raise status.ValidationError('No expense selected for editing.')
        return amount

    def to_payload(self, group_id: str, amount: Decimal, participants: Sequence[str]) -> Dict[str, Any]:
        return {
            'groupId': group_id,
            'description': self.description.strip(),
            'amount': float(amount),
            'category': self.category,
            'paidBy': self.paid_by,
            'participants': list(participants),
        }


def _build_snapshot(group_id: str, group_data: Any, expenses_data: Any,
                    settlements_data: Any, summary_data: Any) -> GroupSnapshot:
    """Build a snapshot from the four response bodies.

    Raises:
        status.ServerError: If a body does not have the expected shape.
    """
    try:
        group = Group.from_dict(group_data['group'])
        expenses = tuple(Expense.from_dict(e) for e in expenses_data.get('expenses') or [])
        settlements = tuple(Settlement.from_dict(s) for s in settlements_data.get('settlements') or [])
        summary_json = summary_data.get('summary')
        summary = Summary.from_dict(summary_json) if summary_json else None
    except (KeyError, TypeError, AttributeError, ValueError) as ex:
        logging.error(f'Malformed group data for "{group_id}": {ex!r}')
        raise status.ServerError() from ex

    if group.id and group.id != group_id:
        logging.error(f'Requested group "{group_id}" but the server returned "{group.id}".')
        raise status.ServerError()
    return GroupSnapshot(group=group, expenses=expenses, settlements=settlements, summary=summary)


class GroupLedgerController(QtCore.QObject):
    """Synchronizes the view of a single group with the server.

    Signals:
        statusChanged (str): Emitted with the new :class:`LoadStatus` value.
        snapshotChanged (object): Emitted with each newly published GroupSnapshot.
        formChanged (object): Emitted with the ExpenseForm whenever it changes.
    """
    statusChanged = QtCore.Signal(str)
    snapshotChanged = QtCore.Signal(object)
    formChanged = QtCore.Signal(object)

    def __init__(self, gateway: ApiGateway, group_id: str,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        if not group_id:
            raise ValueError('A group id is required.')
        self.gateway = gateway
        self.group_id = str(group_id)

        self._status: LoadStatus = LoadStatus.Loading
        self._snapshot: Optional[GroupSnapshot] = None
        self._form: ExpenseForm = ExpenseForm()

        self._mounted: bool = False
        self._mount_id: int = 0
        self._generation: int = 0

    # -- state ---------------------------------------------------------------

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def snapshot(self) -> Optional[GroupSnapshot]:
        return self._snapshot

    @property
    def group(self) -> Optional[Group]:
        return self._snapshot.group if self._snapshot else None

    @property
    def expenses(self) -> Tuple[Expense, ...]:
        return self._snapshot.expenses if self._snapshot else ()

    @property
    def settlements(self) -> Tuple[Settlement, ...]:
        return self._snapshot.settlements if self._snapshot else ()

    @property
    def summary(self) -> Optional[Summary]:
        return self._snapshot.summary if self._snapshot else None

    @property
    def form(self) -> ExpenseForm:
        return self._form

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._mount_id += 1
        logging.debug(f'Ledger for group "{self.group_id}" mounted.')

    def unmount(self) -> None:
        """Tear down the view: pending results are dropped and local state discarded."""
        if not self._mounted:
            return
        self._mounted = False
        self._mount_id += 1
        self._generation += 1
        self._snapshot = None
        self._form = ExpenseForm()
        logging.debug(f'Ledger for group "{self.group_id}" unmounted.')

    def _is_live(self, mount_id: int) -> bool:
        return self._mounted and mount_id == self._mount_id

    def _set_status(self, value: LoadStatus) -> None:
        if value == self._status:
            return
        self._status = value
        self.statusChanged.emit(value.value)

    # -- fetch ---------------------------------------------------------------

    async def fetch(self) -> bool:
        """Fetch group, expenses, settlements and summary concurrently.

        Returns:
            bool: True if a new snapshot was published.
        """
        if not self._mounted:
            logging.debug('Fetch requested on an unmounted ledger, ignoring.')
            return False

        self._generation += 1
        generation = self._generation
        self._set_status(LoadStatus.Loading)

        gid = self.group_id
        results = await asyncio.gather(
            self.gateway.request(api.group_path(gid)),
            self.gateway.request(api.group_expenses_path(gid)),
            self.gateway.request(api.settlements_path(gid)),
            self.gateway.request(api.settlement_summary_path(gid)),
            return_exceptions=True,
        )

        if not self._mounted or generation != self._generation:
            logging.debug(f'Discarding stale fetch for group "{gid}".')
            return False

        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, status.ApiError):
                raise error

        try:
            if errors:
                # The group request comes first, so its error wins.
                raise errors[0]
            snapshot = _build_snapshot(gid, *results)
        except status.ApiError as ex:
            self._set_status(LoadStatus.Error)
            signals.error.emit(ex.user_message('Failed to load group data'))
            return False

        self._snapshot = snapshot
        self._set_status(LoadStatus.Ready)
        logging.debug(
            f'Group "{gid}" loaded: {len(snapshot.expenses)} expenses, '
            f'{len(snapshot.settlements)} settlements.'
        )
        self.snapshotChanged.emit(snapshot)
        return True

    # -- mutations -----------------------------------------------------------

    async def _mutate(self, url: str, method: str, body: Any, success: str, failure: str,
                      use_server_message: bool = True,
                      on_success: Optional[Callable[[], None]] = None) -> bool:
        """Send one mutating request and re-fetch everything when it succeeds."""
        if not self._mounted:
            logging.debug(f'{method} {url} requested on an unmounted ledger, ignoring.')
            return False
        mount_id = self._mount_id

        try:
            await self.gateway.request(url, method=method, body=body)
        except status.ApiError as ex:
            if self._is_live(mount_id):
                signals.error.emit(ex.user_message(failure) if use_server_message else failure)
            return False

        if not self._is_live(mount_id):
            logging.debug(f'{method} {url} finished after unmount, skipping refresh.')
            return False

        signals.success.emit(success)
        if on_success:
            on_success()
        await self.fetch()
        return True

    async def add_member(self, email: str) -> bool:
        """Add the user registered under ``email`` to the group."""
        email = (email or '').strip()
        if not email:
            signals.error.emit('Email address is required.')
            return False
        return await self._mutate(
            api.group_members_path(self.group_id), 'POST', {'email': email},
            'Member added successfully!', 'Failed to add member',
        )

    async def delete_expense(self, expense_id: str) -> bool:
        return await self._mutate(
            api.expense_path(expense_id), 'DELETE', None,
            'Expense deleted successfully!', 'Failed to delete expense',
            use_server_message=False,
        )

    async def settle(self, settlement_id: str) -> bool:
        """Mark a settlement as paid."""
        return await self._mutate(
            api.settle_path(settlement_id), 'PUT', None,
            'Payment marked as settled!', 'Failed to settle payment',
            use_server_message=False,
        )

    # -- expense form --------------------------------------------------------

    def _set_form(self, form: ExpenseForm) -> None:
        self._form = form
        self.formChanged.emit(form)

    def begin_create(self) -> ExpenseForm:
        """Open a blank form for a new expense."""
        self._set_form(ExpenseForm())
        return self._form

    def begin_edit(self, expense: Union[Expense, str]) -> ExpenseForm:
        """Open the form pre-populated from ``expense`` (or its id) in edit mode.

        Raises:
            KeyError: If an id is given that is not in the current snapshot.
        """
        if not isinstance(expense, Expense):
            found = next((e for e in self.expenses if e.id == expense), None)
            if found is None:
                raise KeyError(f'No expense "{expense}" in group "{self.group_id}".')
            expense = found
        self._set_form(ExpenseForm.from_expense(expense))
        return self._form

    def update_form(self, **fields: Any) -> ExpenseForm:
        """Change fields of the open form, e.g. ``update_form(amount='12.50')``."""
        self._set_form(dataclasses.replace(self._form, **fields))
        return self._form

    def close_form(self) -> None:
        self._set_form(ExpenseForm())

    async def submit_expense(self) -> bool:
        """Create or update the expense described by the form.

        The form is kept for correction when validation or the request fails,
        and cleared on success.
        """
        form = self._form
        group = self.group
        if group is None:
            signals.error.emit('Failed to save expense')
            return False

        member_ids: List[str] = group.member_ids
        try:
            amount = form.validate(member_ids)
        except status.ValidationError as ex:
            signals.error.emit(ex.user_message('Failed to save expense'))
            return False

        payload = form.to_payload(self.group_id, amount, member_ids)
        if form.edit_mode:
            return await self._mutate(
                api.expense_path(form.expense_id), 'PUT', payload,
                'Expense updated successfully!', 'Failed to save expense',
                on_success=self.close_form,
            )
        return await self._mutate(
            api.EXPENSES, 'POST', payload,
            'Expense added successfully!', 'Failed to save expense',
            on_success=self.close_form,
        )

    # -- report --------------------------------------------------------------

    async def export_report(self, path: Optional[Union[str, pathlib.Path]] = None) -> Optional[str]:
        """Download the group's CSV report.

        Args:
            path: Optional file or directory to write the report to. A directory
                receives ``expense-report-<groupId>.csv``.

        Returns:
            The CSV text, or None on failure.
        """
        if not self._mounted:
            return None
        mount_id = self._mount_id

        try:
            text = await self.gateway.request_text(api.settlement_report_path(self.group_id))
        except status.ApiError as ex:
            if self._is_live(mount_id):
                signals.error.emit(ex.user_message('Failed to export report'))
            return None

        if not self._is_live(mount_id):
            return None

        rows = count_report_rows(text)
        if rows is not None:
            logging.debug(f'Report for group "{self.group_id}" has {rows} rows')

        if path is not None:
            path = pathlib.Path(path)
            if path.is_dir():
                path = path / report_filename(self.group_id)
            try:
                path.write_text(text, encoding='utf-8')
            except OSError as ex:
                logging.error(f'Could not write report to {path}: {ex}')
                signals.error.emit('Failed to export report')
                return None
            logging.debug(f'Report written to {path}')

        signals.success.emit('Report exported successfully!')
        return text
