"""
=============================================================================
CCS PROTOCOL COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  messages.py   Discovery literals, ERROR reply, line framing        │
    │  request.py    Operation enum, request parsing, 32-bit evaluation   │
    └─────────────────────────────────────────────────────────────────────┘

The protocol layer is pure: no sockets, no threads, no counters. The
session handler feeds it one decoded line at a time.

=============================================================================
"""

from .messages import (
    DISCOVERY_PROBE,
    DISCOVERY_REPLY,
    DISCOVERY_MAX_SIZE,
    ERROR_REPLY,
    LINE_TERMINATOR,
    ENCODING,
)
from .request import (
    Operation,
    ArithmeticRequest,
    MalformedRequest,
    WrongTokenCount,
    InvalidArgument,
    UnknownOperation,
    DivisionByZero,
    INT32_MIN,
    INT32_MAX,
    parse_request,
    parse_int32,
    evaluate_line,
    wrap_int32,
    truncating_divide,
)

__all__ = [
    # Messages
    "DISCOVERY_PROBE",
    "DISCOVERY_REPLY",
    "DISCOVERY_MAX_SIZE",
    "ERROR_REPLY",
    "LINE_TERMINATOR",
    "ENCODING",
    # Requests
    "Operation",
    "ArithmeticRequest",
    "parse_request",
    "parse_int32",
    "evaluate_line",
    "wrap_int32",
    "truncating_divide",
    "INT32_MIN",
    "INT32_MAX",
    # Errors
    "MalformedRequest",
    "WrongTokenCount",
    "InvalidArgument",
    "UnknownOperation",
    "DivisionByZero",
]
