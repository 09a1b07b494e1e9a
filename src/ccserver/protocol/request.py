"""
=============================================================================
ARITHMETIC REQUEST PARSING AND EVALUATION
=============================================================================

A request is one text line made of three whitespace-separated tokens:

    ADD 2 3
    │   │ │
    │   │ └── ARG2: signed decimal integer
    │   └──── ARG1: signed decimal integer
    └──────── OP: ADD, SUB, MUL or DIV (any letter case)

=============================================================================
PARSER PIPELINE
=============================================================================

    "mul -3 5"
        │
        ▼
    ┌───────────────────────────────────────────────────────────────────┐
    │  1. Split on whitespace ───────────────────────────────────────►  │
    │     │  len != 3?          → WrongTokenCount                       │
    │     ▼                                                             │
    │  2. Parse ARG1 and ARG2 ───────────────────────────────────────►  │
    │     │  not [+-]?digits?   → InvalidArgument                       │
    │     │  outside int32?     → InvalidArgument                       │
    │     ▼                                                             │
    │  3. Resolve OP ────────────────────────────────────────────────►  │
    │     │  not ADD/SUB/MUL/DIV → UnknownOperation                     │
    │     ▼                                                             │
    │  4. Evaluate ──────────────────────────────────────────────────►  │
    │        DIV by zero        → DivisionByZero                        │
    └───────────────────────────────────────────────────────────────────┘
        │
        ▼
      -15

Every failure is a MalformedRequest. The session answers ERROR, counts it,
and keeps the connection open.

=============================================================================
32-BIT ARITHMETIC
=============================================================================

Arguments and results are 32-bit signed integers. Python ints never
overflow, so results are folded back into [-2**31, 2**31 - 1] with
two's-complement wrap-around:

    ADD 2147483647 1      → -2147483648
    MUL 65536 65536       → 0
    DIV -2147483648 -1    → -2147483648

Division truncates toward zero (DIV -7 2 → -3), unlike Python's //
which floors (-7 // 2 == -4).

=============================================================================
"""

import re
from dataclasses import dataclass
from enum import Enum


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# ASCII digits only. int() alone would also accept "1_000", " 7" and
# non-ASCII digits.
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


# =============================================================================
# ERRORS
# =============================================================================

class MalformedRequest(ValueError):
    """
    Raised when a request line cannot be evaluated to a number.

    Carries a short machine-readable reason used in access logs:

        token_count       wrong number of tokens
        argument          ARG1/ARG2 is not a 32-bit integer
        operation         OP is not ADD/SUB/MUL/DIV
        division_by_zero  DIV with ARG2 == 0
    """

    reason = "malformed"

    def __init__(self, message: str):
        super().__init__(message)


class WrongTokenCount(MalformedRequest):
    reason = "token_count"


class InvalidArgument(MalformedRequest):
    reason = "argument"


class UnknownOperation(MalformedRequest):
    reason = "operation"


class DivisionByZero(MalformedRequest):
    reason = "division_by_zero"


# =============================================================================
# OPERATIONS
# =============================================================================

class Operation(Enum):
    """The closed set of supported operations."""

    ADD = "ADD"
    SUB = "SUB"
    MUL = "MUL"
    DIV = "DIV"

    @classmethod
    def from_token(cls, token: str) -> "Operation":
        """
        Resolve an operation name, ignoring letter case.

        Raises:
            UnknownOperation: For any other token.
        """
        try:
            return cls(token.upper())
        except ValueError:
            raise UnknownOperation(f"Unknown operation: {token!r}") from None

    def apply(self, left: int, right: int) -> int:
        """
        Compute left OP right with 32-bit wrap-around.

        Raises:
            DivisionByZero: For DIV with right == 0.
        """
        if self is Operation.ADD:
            return wrap_int32(left + right)
        if self is Operation.SUB:
            return wrap_int32(left - right)
        if self is Operation.MUL:
            return wrap_int32(left * right)
        if self is Operation.DIV:
            if right == 0:
                raise DivisionByZero("Division by zero")
            return wrap_int32(truncating_divide(left, right))
        raise AssertionError(f"Unhandled operation: {self!r}")


def wrap_int32(value: int) -> int:
    """Fold an arbitrary int into the signed 32-bit range."""
    value &= 0xFFFFFFFF
    if value > INT32_MAX:
        value -= 2 ** 32
    return value


def truncating_divide(left: int, right: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(left) // abs(right)
    if (left < 0) != (right < 0):
        return -quotient
    return quotient


def parse_int32(token: str) -> int:
    """
    Parse a signed decimal 32-bit integer.

    Raises:
        InvalidArgument: If the token is not ASCII [+-]digits or does not
                         fit in 32 bits.
    """
    if not INTEGER_PATTERN.fullmatch(token):
        raise InvalidArgument(f"Not an integer: {token!r}")

    value = int(token)
    if not INT32_MIN <= value <= INT32_MAX:
        raise InvalidArgument(f"Integer out of range: {token!r}")
    return value


# =============================================================================
# REQUESTS
# =============================================================================

@dataclass(frozen=True)
class ArithmeticRequest:
    """A parsed request line."""

    operation: Operation
    left: int
    right: int

    def evaluate(self) -> int:
        """Compute the result. Raises DivisionByZero for DIV x 0."""
        return self.operation.apply(self.left, self.right)

    def __str__(self) -> str:
        return f"{self.operation.value} {self.left} {self.right}"


def parse_request(line: str) -> ArithmeticRequest:
    """
    Parse one request line (without its line terminator).

    Arguments are checked before the operation name, so "FOO x 1" is
    reported as a bad argument rather than an unknown operation.

    Raises:
        WrongTokenCount, InvalidArgument, UnknownOperation
    """
    tokens = line.split()
    if len(tokens) != 3:
        raise WrongTokenCount(f"Expected 3 tokens, got {len(tokens)}")

    op_token, left_token, right_token = tokens
    left = parse_int32(left_token)
    right = parse_int32(right_token)
    operation = Operation.from_token(op_token)

    return ArithmeticRequest(operation, left, right)


def evaluate_line(line: str) -> tuple[ArithmeticRequest, int]:
    """
    Parse and evaluate a request line in one step.

    Returns:
        (request, result)

    Raises:
        MalformedRequest: For any line that does not produce a result.
    """
    request = parse_request(line)
    return request, request.evaluate()
