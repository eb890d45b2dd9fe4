"""Exceptions raised by account workflows."""

from __future__ import annotations


class PreconditionError(RuntimeError):
    """Raised when an operation is invoked before the state it needs exists."""


class ExternalServiceError(RuntimeError):
    """Raised when mail delivery or the mailing-list API fails."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class DuplicateAccountError(Exception):
    """Raised by persistence when a unique index rejects an insert or update."""

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} has already been taken")
        self.field = field


class AccountNotFoundError(ValueError):
    """Raised when an account id does not resolve to a stored account."""

    def __init__(self, message: str = "account not found") -> None:
        super().__init__(message)


class InvalidReferenceError(Exception):
    """Raised by persistence when a foreign key rejects an insert or update."""

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is invalid")
        self.field = field
