"""Thin asynchronous gateway to the backend HTTP API.

Attaches the current credential, serializes JSON bodies, and turns every
failure into one :class:`~ExpenseSplitter.status.status.ApiError` subclass:

    - 401/403 -> AuthError (the rejected credential is invalidated)
    - no response -> NetworkError
    - other 4xx -> ValidationError
    - 5xx, unexpected status or malformed body -> ServerError

Each call is a single attempt with no timeout; callers decide what a failure means.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from .session import AuthSession
from ..status import status

AUTH_ME: str = '/api/auth/me'
AUTH_LOGIN: str = '/api/auth/login'
GROUPS: str = '/api/groups'
EXPENSES: str = '/api/expenses'


def group_path(group_id: str) -> str:
    return f'{GROUPS}/{group_id}'


def group_members_path(group_id: str) -> str:
    return f'{GROUPS}/{group_id}/members'


def group_expenses_path(group_id: str) -> str:
    return f'{EXPENSES}/group/{group_id}'


def expense_path(expense_id: str) -> str:
    return f'{EXPENSES}/{expense_id}'


def settlements_path(group_id: str) -> str:
    return f'/api/settlements/{group_id}'


def settlement_summary_path(group_id: str) -> str:
    return f'/api/settlements/{group_id}/summary'


def settlement_report_path(group_id: str) -> str:
    return f'/api/settlements/{group_id}/report'


def settle_path(settlement_id: str) -> str:
    return f'/api/settlements/{settlement_id}/settle'


def _parse_error_payload(response: httpx.Response) -> Dict[str, Any]:
    """Parse an error body as JSON, falling back to an empty dict."""
    try:
        payload = response.json()
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


class ApiGateway:
    """Send requests to the backend on behalf of the current session.

    Args:
        session: The auth session providing (and invalidating) the credential.
        base_url: Backend base URL.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(self, session: AuthSession, base_url: str,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.session = session
        self.base_url = base_url.rstrip('/')
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=None,
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, url: str, method: str, body: Any, headers: Optional[Dict[str, str]],
                    auth: bool = True) -> httpx.Response:
        token = self.session.get() if auth else None

        request_headers: Dict[str, str] = {}
        if token:
            request_headers['Authorization'] = f'Bearer {token}'
        if body is not None:
            request_headers['Content-Type'] = 'application/json'
        request_headers.update(headers or {})

        logging.debug(f'{method} {url}')
        try:
            response = await self._client.request(
                method,
                url,
                content=json.dumps(body) if body is not None else None,
                headers=request_headers,
            )
        except httpx.DecodingError as ex:
            logging.error(f'Malformed response body from {method} {url}: {ex!r}')
            raise status.ServerError() from ex
        except httpx.RequestError as ex:
            logging.error(f'{method} {url} failed without a response: {ex!r}')
            raise status.NetworkError() from ex

        if 200 <= response.status_code < 300:
            return response

        payload = _parse_error_payload(response)
        error = status.error_for_status(response.status_code, payload)
        if isinstance(error, status.AuthError) and token:
            self.session.invalidate(token)
        raise error

    async def request(self, url: str, method: str = 'GET', body: Any = None,
                      headers: Optional[Dict[str, str]] = None, auth: bool = True) -> Any:
        """
        Send a request and return the parsed JSON response body.

        Args:
            url: Path relative to the base URL, e.g. '/api/groups'.
            method: HTTP method.
            body: JSON-serializable request body, or None.
            headers: Extra headers, applied last.
            auth: Attach the stored credential. False for anonymous calls such as login.

        Returns:
            The decoded JSON body; an empty body reads as ``{}``.

        Raises:
            status.ApiError: On any failure, see the module docstring.
        """
        response = await self._send(url, method, body, headers, auth)
        if not response.content:
            return {}
        try:
            return response.json()
        except (ValueError, UnicodeDecodeError) as ex:
            logging.error(f'Malformed response body from {method} {url}: {ex}')
            raise status.ServerError(status_code=response.status_code) from ex

    async def request_text(self, url: str, method: str = 'GET', body: Any = None,
                           headers: Optional[Dict[str, str]] = None) -> str:
        """
        Send a request and return the raw response text.

        Raises:
            status.ApiError: On any failure, see the module docstring.
        """
        response = await self._send(url, method, body, headers)
        return response.text
