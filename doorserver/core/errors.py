"""Error kinds shared by the deciders and the HTTP / chat adapters.

Adapters map ``ErrorKind`` to a status code; they never inspect the reason
text to decide how to respond.
"""
from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    MALFORMED_REQUEST = "malformed_request"
    UNAUTHORIZED = "unauthorized"
    UPSTREAM_FAILURE = "upstream_failure"
    CONFIGURATION = "configuration"


STATUS_CODES = {
    ErrorKind.MALFORMED_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.UPSTREAM_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AccessDenied(Exception):
    def __init__(self, kind: ErrorKind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @classmethod
    def malformed(cls, reason: str) -> "AccessDenied":
        return cls(ErrorKind.MALFORMED_REQUEST, reason)

    @classmethod
    def unauthorized(cls, reason: str) -> "AccessDenied":
        return cls(ErrorKind.UNAUTHORIZED, reason)


class ConfigurationError(Exception):
    """Raised at startup when the server cannot be configured."""

    kind = ErrorKind.CONFIGURATION
