"""Status package: enums and exceptions for handling client state and errors.

This package defines:
    - Status: a StrEnum of possible client states
    - ErrorKind: the four failure kinds every API call is classified into
    - STATUS_MESSAGE: default user-facing messages per status
    - ApiError and its kind-specific subclasses raised by the API gateway
"""
