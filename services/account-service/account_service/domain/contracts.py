"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .account import Account

# field name -> messages, in the order the checks produced them
ValidationErrors = dict[str, list[str]]


@dataclass(slots=True)
class CreateAccountInput:
    """Profile and credential fields submitted by the registration flow.

    ``password_hash`` and ``password_salt`` are produced by the caller; this
    service never sees a clear-text password.
    """

    email: str
    family_name: str
    given_name: str
    handle_name: str
    birthday: date | None
    class_year_id: int | None
    password_hash: str
    password_salt: str
    email_mobile: str | None = None
    admin: bool = False


@dataclass(slots=True)
class CreationResult:
    """Outcome of the registration flow: an account or the field errors that blocked it."""

    account: Account | None = None
    errors: ValidationErrors = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.account is not None and not self.errors
