"""
Shared error kinds used across layers (Domain/Core/API).

This package exposes ErrorKind at `shared.codes` and keeps
gateway-specific constants under `shared.codes.payment_codes`.
"""
from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds (single source of truth).

    Domain and application code only ever speak in kinds; the HTTP status
    for each kind is decided at the transport boundary (core.exceptions).
    """

    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    UNPROCESSABLE = "UNPROCESSABLE"
    INTERNAL = "INTERNAL"


__all__ = ["ErrorKind"]
