"""Unittest base classes and an in-memory backend for a clean test environment."""
import asyncio
import dataclasses
import json
import logging
import os
import re
import shutil
import unittest
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from PySide6 import QtCore

from ExpenseSplitter.core.api import ApiGateway
from ExpenseSplitter.core.session import AuthSession, CredentialStore
from ExpenseSplitter.settings import lib
from ExpenseSplitter.ui.actions import signals

# Keep test runs away from the user's real app data directory
QtCore.QStandardPaths.setTestModeEnabled(True)

TOKEN: str = 'T'

ALICE: Dict[str, Any] = {'_id': 'U1', 'name': 'Alice', 'email': 'a@x.com'}
BOB: Dict[str, Any] = {'_id': 'U2', 'name': 'Bob', 'email': 'b@x.com'}
CAROL: Dict[str, Any] = {'_id': 'U3', 'name': 'Carol', 'email': 'c@x.com'}

REPORT_CSV: str = (
    'Date,Description,Category,Amount,Paid By\n'
    '2025-01-05,Dinner,food,30.00,Alice\n'
    '2025-01-06,Hotel,accommodation,120.00,Bob\n'
)


@dataclasses.dataclass
class Override:
    """A canned response (or transport failure) for one method and path."""
    status_code: int = 200
    json: Any = None
    text: Optional[str] = None
    error: Optional[type] = None
    content: Optional[bytes] = None
    headers: Optional[Dict[str, str]] = None


class Gate:
    """Holds a request until the test opens it."""

    def __init__(self) -> None:
        self.reached = asyncio.Event()
        self.released = asyncio.Event()

    def open(self) -> None:
        self.released.set()


class FakeBackend:
    """In-memory stand-in for the expense splitting server.

    Serves the same routes and response shapes as the real backend through
    :class:`httpx.MockTransport`. Every request is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.users: Dict[str, Dict[str, Any]] = {u['_id']: dict(u) for u in (ALICE, BOB, CAROL)}
        self.passwords: Dict[str, str] = {'a@x.com': 'p', 'b@x.com': 'p'}
        self.tokens: Dict[str, str] = {TOKEN: 'U1', 'T2': 'U2'}

        self.groups: Dict[str, Dict[str, Any]] = {
            'G1': {
                '_id': 'G1',
                'name': 'Lisbon',
                'description': 'Weekend away',
                'category': 'trip',
                'members': [{'userId': 'U1'}, {'userId': 'U2'}],
                'createdAt': '2025-01-01T10:00:00.000Z',
            },
        }
        self.expenses: Dict[str, Dict[str, Any]] = {
            'E1': {
                '_id': 'E1',
                'groupId': 'G1',
                'description': 'Dinner',
                'amount': 30,
                'category': 'food',
                'date': '2025-01-05T00:00:00.000Z',
                'paidBy': 'U1',
                'participants': ['U1', 'U2'],
            },
            'E2': {
                '_id': 'E2',
                'groupId': 'G1',
                'description': 'Hotel',
                'amount': 120,
                'category': 'accommodation',
                'date': '2025-01-06T00:00:00.000Z',
                'paidBy': 'U2',
                'participants': ['U1', 'U2'],
            },
        }
        self.settlements: Dict[str, Dict[str, Any]] = {
            'S1': {'_id': 'S1', 'groupId': 'G1', 'from': 'U1', 'to': 'U2', 'amount': 45, 'settled': False},
        }
        self.report: str = REPORT_CSV

        self.requests: List[httpx.Request] = []
        self.overrides: Dict[Tuple[str, str], Override] = {}
        self.gates: Dict[Tuple[str, str], Gate] = {}
        self._counter: int = 0

        self.routes: List[Tuple[str, re.Pattern, Callable[..., httpx.Response]]] = [
            ('POST', re.compile(r'^/api/auth/login$'), self.login),
            ('GET', re.compile(r'^/api/auth/me$'), self.me),
            ('GET', re.compile(r'^/api/groups$'), self.list_groups),
            ('POST', re.compile(r'^/api/groups$'), self.create_group),
            ('GET', re.compile(r'^/api/groups/(?P<gid>[^/]+)$'), self.get_group),
            ('POST', re.compile(r'^/api/groups/(?P<gid>[^/]+)/members$'), self.add_member),
            ('GET', re.compile(r'^/api/expenses/group/(?P<gid>[^/]+)$'), self.list_expenses),
            ('POST', re.compile(r'^/api/expenses$'), self.create_expense),
            ('PUT', re.compile(r'^/api/expenses/(?P<eid>[^/]+)$'), self.update_expense),
            ('DELETE', re.compile(r'^/api/expenses/(?P<eid>[^/]+)$'), self.delete_expense),
            ('GET', re.compile(r'^/api/settlements/(?P<gid>[^/]+)/summary$'), self.summary),
            ('GET', re.compile(r'^/api/settlements/(?P<gid>[^/]+)/report$'), self.export_report),
            ('PUT', re.compile(r'^/api/settlements/(?P<sid>[^/]+)/settle$'), self.settle),
            ('GET', re.compile(r'^/api/settlements/(?P<gid>[^/]+)$'), self.list_settlements),
        ]

    # -- test controls -------------------------------------------------------

    def override(self, method: str, path: str, status_code: int = 200, json: Any = None,
                 text: Optional[str] = None, error: Optional[type] = None,
                 content: Optional[bytes] = None, headers: Optional[Dict[str, str]] = None) -> None:
        """Answer ``method path`` with a canned response until :meth:`restore` is called."""
        self.overrides[(method, path)] = Override(status_code, json, text, error, content, headers)

    def restore(self, method: str, path: str) -> None:
        self.overrides.pop((method, path), None)

    def gate(self, method: str, path: str) -> Gate:
        """Hold requests to ``method path`` until the returned gate is opened."""
        gate = Gate()
        self.gates[(method, path)] = gate
        return gate

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    # -- transport -----------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        gate = self.gates.get(key)
        if gate:
            gate.reached.set()
            await gate.released.wait()

        override = self.overrides.get(key)
        if override:
            if override.error:
                raise override.error('Connection refused', request=request)
            if override.content is not None:
                return httpx.Response(override.status_code, content=override.content, headers=override.headers)
            if override.text is not None:
                return httpx.Response(override.status_code, text=override.text)
            if override.json is not None:
                return httpx.Response(override.status_code, json=override.json)
            return httpx.Response(override.status_code)

        for method, pattern, view in self.routes:
            match = pattern.match(request.url.path)
            if method != request.method or not match:
                continue
            if view != self.login and self._caller(request) is None:
                return httpx.Response(401, json={'message': 'Not authorized, token failed'})
            body = json.loads(request.content) if request.content else {}
            return view(request, body, **match.groupdict())

        return httpx.Response(404, json={'message': 'Route not found'})

    def _caller(self, request: httpx.Request) -> Optional[str]:
        header = request.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return None
        return self.tokens.get(header[len('Bearer '):])

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f'{prefix}{100 + self._counter}'

    def _user(self, user_id: str) -> Dict[str, Any]:
        return dict(self.users[user_id])

    def _group(self, gid: str) -> Dict[str, Any]:
        group = dict(self.groups[gid])
        group['members'] = [{'userId': self._user(m['userId'])} for m in group['members']]
        return group

    def _expense(self, eid: str) -> Dict[str, Any]:
        expense = dict(self.expenses[eid])
        expense['paidBy'] = self._user(expense['paidBy'])
        return expense

    def _settlement(self, sid: str) -> Dict[str, Any]:
        settlement = dict(self.settlements[sid])
        settlement['from'] = self._user(settlement['from'])
        settlement['to'] = self._user(settlement['to'])
        return settlement

    # -- routes --------------------------------------------------------------

    def login(self, request, body):
        email = body.get('email')
        if not email or self.passwords.get(email) != body.get('password'):
            return httpx.Response(401, json={'message': 'Invalid credentials'})
        user = next(u for u in self.users.values() if u['email'] == email)
        token = next(t for t, uid in self.tokens.items() if uid == user['_id'])
        return httpx.Response(200, json={'token': token, 'user': dict(user)})

    def me(self, request, body):
        return httpx.Response(200, json={'user': self._user(self._caller(request))})

    def list_groups(self, request, body):
        caller = self._caller(request)
        groups = [
            self._group(gid) for gid, g in self.groups.items()
            if any(m['userId'] == caller for m in g['members'])
        ]
        return httpx.Response(200, json={'groups': groups})

    def create_group(self, request, body):
        if not body.get('name'):
            return httpx.Response(400, json={'message': 'Group name is required'})
        gid = self._next_id('G')
        self.groups[gid] = {
            '_id': gid,
            'name': body['name'],
            'description': body.get('description', ''),
            'category': body.get('category', 'other'),
            'members': [{'userId': self._caller(request)}],
            'createdAt': '2025-02-01T10:00:00.000Z',
        }
        return httpx.Response(201, json={'group': self._group(gid)})

    def get_group(self, request, body, gid):
        if gid not in self.groups:
            return httpx.Response(404, json={'message': 'Group not found'})
        return httpx.Response(200, json={'group': self._group(gid)})

    def add_member(self, request, body, gid):
        user = next((u for u in self.users.values() if u['email'] == body.get('email')), None)
        if user is None:
            return httpx.Response(404, json={'message': 'User not found'})
        members = self.groups[gid]['members']
        if any(m['userId'] == user['_id'] for m in members):
            return httpx.Response(400, json={'message': 'User is already a member'})
        members.append({'userId': user['_id']})
        return httpx.Response(200, json={'group': self._group(gid)})

    def list_expenses(self, request, body, gid):
        expenses = [self._expense(eid) for eid, e in self.expenses.items() if e['groupId'] == gid]
        return httpx.Response(200, json={'expenses': expenses})

    def create_expense(self, request, body):
        if body.get('groupId') not in self.groups:
            return httpx.Response(404, json={'message': 'Group not found'})
        eid = self._next_id('E')
        self.expenses[eid] = {
            '_id': eid,
            'groupId': body['groupId'],
            'description': body['description'],
            'amount': body['amount'],
            'category': body['category'],
            'date': '2025-02-01T00:00:00.000Z',
            'paidBy': body['paidBy'],
            'participants': body['participants'],
        }
        return httpx.Response(201, json={'expense': self._expense(eid)})

    def update_expense(self, request, body, eid):
        if eid not in self.expenses:
            return httpx.Response(404, json={'message': 'Expense not found'})
        for field in ('description', 'amount', 'category', 'paidBy', 'participants'):
            if field in body:
                self.expenses[eid][field] = body[field]
        return httpx.Response(200, json={'expense': self._expense(eid)})

    def delete_expense(self, request, body, eid):
        if eid not in self.expenses:
            return httpx.Response(404, json={'message': 'Expense not found'})
        del self.expenses[eid]
        return httpx.Response(200, json={'message': 'Expense removed'})

    def list_settlements(self, request, body, gid):
        settlements = [self._settlement(sid) for sid, s in self.settlements.items() if s['groupId'] == gid]
        return httpx.Response(200, json={'settlements': settlements})

    def summary(self, request, body, gid):
        expenses = [e for e in self.expenses.values() if e['groupId'] == gid]
        pending = [s for s in self.settlements.values() if s['groupId'] == gid and not s['settled']]
        return httpx.Response(200, json={'summary': {
            'totalExpenses': sum(e['amount'] for e in expenses),
            'totalUnsettled': sum(s['amount'] for s in pending),
            'pendingSettlements': len(pending),
        }})

    def export_report(self, request, body, gid):
        return httpx.Response(200, text=self.report, headers={'Content-Type': 'text/csv'})

    def settle(self, request, body, sid):
        if sid not in self.settlements:
            return httpx.Response(404, json={'message': 'Settlement not found'})
        self.settlements[sid]['settled'] = True
        return httpx.Response(200, json={'settlement': self._settlement(sid)})


class EnvironmentMixin:
    """Prepares a headless Qt environment and a fresh client config."""

    config_paths: lib.ConfigPaths
    settings: lib.SettingsAPI

    def _prepare_environment(self) -> None:
        # Ensure headless Qt
        if 'QT_QPA_PLATFORM' not in os.environ:
            os.environ['QT_QPA_PLATFORM'] = 'offscreen'
            logging.debug('QT_QPA_PLATFORM set to offscreen for headless testing.')

        if not QtCore.QCoreApplication.instance():
            QtCore.QCoreApplication([])  # type: ignore
            logging.debug('QtCore.QCoreApplication initialized for tests.')

        self.config_paths = lib.ConfigPaths()
        self._remove_app_data()

        self.settings = lib.SettingsAPI()
        logging.debug('SettingsAPI reinitialized.')

        self.errors: List[str] = []
        self.successes: List[str] = []
        self._on_error = lambda msg: self.errors.append(msg)
        self._on_success = lambda msg: self.successes.append(msg)
        signals.error.connect(self._on_error)
        signals.success.connect(self._on_success)

    def _clean_environment(self) -> None:
        signals.error.disconnect(self._on_error)
        signals.success.disconnect(self._on_success)
        self._remove_app_data()

    def _remove_app_data(self) -> None:
        for directory in (self.config_paths.config_dir, self.config_paths.report_dir):
            if directory.exists():
                shutil.rmtree(directory)
                logging.debug(f'Removed test directory {directory}')


class BaseTestCase(EnvironmentMixin, unittest.TestCase):
    """Base test case that sets up and tears down a temporary config directory."""

    def setUp(self) -> None:
        self._prepare_environment()

    def tearDown(self) -> None:
        self._clean_environment()


class BaseAsyncTestCase(EnvironmentMixin, unittest.IsolatedAsyncioTestCase):
    """Base test case wiring a session and gateway to a :class:`FakeBackend`."""

    backend: FakeBackend
    session: AuthSession
    gateway: ApiGateway

    async def asyncSetUp(self) -> None:
        self._prepare_environment()

        self.backend = FakeBackend()
        self.transport = httpx.MockTransport(self.backend.handle)

        self.session = AuthSession(CredentialStore(self.settings.token_path))
        self.gateway = ApiGateway(self.session, self.settings.base_url, transport=self.transport)

        self.published: List[bool] = []
        self._unsubscribe_counter = self.session.subscribe(lambda: self.published.append(True))

    async def asyncTearDown(self) -> None:
        self._unsubscribe_counter()
        await self.gateway.aclose()
        self._clean_environment()

    def sign_in(self, token: str = TOKEN) -> None:
        """Store ``token`` without notifying subscribers."""
        self.session.store.set(token)
