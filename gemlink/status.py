"""Gemini status codes and their classes."""

from enum import Enum, IntEnum

from gemlink.errors import UnknownStatus


class StatusCode(IntEnum):
    INPUT = 10
    SENSITIVE_INPUT = 11
    SUCCESS = 20
    REDIRECT = 30
    PERMANENT_REDIRECT = 31
    TEMP_FAILURE = 40
    SERVER_UNAVAILABLE = 41
    CGI_ERROR = 42
    PROXY_ERROR = 43
    SLOW_DOWN = 44
    PERM_FAILURE = 50
    NOT_FOUND = 51
    GONE = 52
    PROXY_REQUEST_REFUSED = 53
    BAD_REQUEST = 59
    CERT_REQUIRED = 60
    CERT_NOT_AUTHORISED = 61
    CERT_NOT_VALID = 62


class StatusClass(Enum):
    """Status class, valued by the tens digit of the codes it groups."""
    INPUT = 1
    SUCCESS = 2
    REDIRECT = 3
    TEMPORARY_FAILURE = 4
    PERMANENT_FAILURE = 5
    CLIENT_CERTIFICATE_REQUIRED = 6


MIN_CODE = 10
MAX_CODE = 69


def classify(code: int) -> StatusClass:
    """Return the StatusClass of this code, or raise UnknownStatus."""
    if not MIN_CODE <= code <= MAX_CODE:
        raise UnknownStatus(code)
    return StatusClass(code // 10)


def get_status_name(code: int) -> str:
    """Return the name of this code if it has one, else "UNKNOWN"."""
    try:
        return StatusCode(code).name
    except ValueError:
        return "UNKNOWN"
