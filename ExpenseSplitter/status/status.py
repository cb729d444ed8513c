"""Status definitions and exceptions for ExpenseSplitter.

This module provides:
    - Status: enumeration of possible client states
    - ErrorKind: the failure taxonomy shared by every API call
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - ApiError and its subclasses (AuthError, NetworkError, ValidationError, ServerError)
    - error_for_status: map an HTTP status code and error payload onto the taxonomy
"""
import enum
import logging
from typing import Any, Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of client status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Authentication status
    NotAuthenticated = enum.auto()

    # Request status
    ServiceUnavailable = enum.auto()
    RequestInvalid = enum.auto()
    ServerError = enum.auto()


class ErrorKind(enum.StrEnum):
    """Kind of failure an API call ended with."""
    Auth = 'auth'
    Network = 'network'
    Validation = 'validation'
    Server = 'server'


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the client config.',
    Status.ConfigInvalid: 'The client config seems to be incomplete, or contains invalid values.',

    Status.NotAuthenticated: 'Your session is no longer valid. Please log in again.',

    Status.ServiceUnavailable: 'The server could not be reached. Please check your connection.',
    Status.RequestInvalid: 'The server rejected the request.',
    Status.ServerError: 'The server failed to process the request.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in ExpenseSplitter.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    log_level = logging.ERROR

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.log(self.log_level, exception_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the client configuration file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the client configuration is invalid or malformed."""
    status = Status.ConfigInvalid


class ApiError(BaseStatusException):
    """A failed API call.

    Every failure leaving the API gateway is an instance of one of the subclasses
    below, so callers only ever handle a single taxonomy.

    Attributes:
        kind (ErrorKind): Failure kind.
        status_code (Optional[int]): HTTP status, ``None`` when no response arrived.
        payload (dict): Parsed error body, ``{}`` when it could not be parsed.
        message (Optional[str]): Server-provided message, if any.
    """
    status = Status.ServerError
    kind = ErrorKind.Server

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 payload: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.payload: Dict[str, Any] = payload if isinstance(payload, dict) else {}

        server_message = self.payload.get('message')
        self.message: Optional[str] = message or (server_message if isinstance(server_message, str) else None)

        context = self.message or ''
        if status_code is not None:
            context = f'(HTTP {status_code}) {context}'.strip()
        super().__init__(context or None)

    def user_message(self, fallback: str) -> str:
        """Return the server message when there is one, otherwise ``fallback``."""
        return self.message or fallback


class AuthError(ApiError):
    """401/403: the credential is missing, invalid or expired."""
    status = Status.NotAuthenticated
    kind = ErrorKind.Auth
    log_level = logging.WARNING


class NetworkError(ApiError):
    """Transport failure: no response was received."""
    status = Status.ServiceUnavailable
    kind = ErrorKind.Network


class ValidationError(ApiError):
    """4xx other than 401/403, or a request rejected before it was sent."""
    status = Status.RequestInvalid
    kind = ErrorKind.Validation
    log_level = logging.WARNING


class ServerError(ApiError):
    """5xx, unexpected status or malformed response body."""
    status = Status.ServerError
    kind = ErrorKind.Server


def error_for_status(status_code: int, payload: Optional[Dict[str, Any]] = None) -> ApiError:
    """
    Build the exception matching a non-2xx HTTP status.

    Args:
        status_code (int): HTTP status of the response.
        payload (dict, optional): Parsed error body.

    Returns:
        ApiError: An AuthError, ValidationError or ServerError instance.
    """
    if status_code in (401, 403):
        return AuthError(status_code=status_code, payload=payload)
    if 400 <= status_code < 500:
        return ValidationError(status_code=status_code, payload=payload)
    return ServerError(status_code=status_code, payload=payload)
