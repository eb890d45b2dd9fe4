"""Field validation for account records prior to persistence."""

from __future__ import annotations

import re
from typing import Protocol

from .account import Account, ClassYear
from .contracts import CreateAccountInput, ValidationErrors

INSTITUTIONAL_EMAIL = re.compile(r"[0-9a-zA-Z_\-]+@(eis|med)\.hokudai\.ac\.jp")

BLANK = "can't be blank"
INVALID = "is invalid"
TAKEN = "has already been taken"

REQUIRED_FIELDS = (
    "family_name",
    "given_name",
    "handle_name",
    "birthday",
    "password_hash",
    "class_year_id",
)


class AccountLookup(Protocol):
    """Read-side queries the validator needs from persistence."""

    def handle_name_taken(self, handle_name: str, exclude_account_id: int | None) -> bool: ...

    def list_contact_emails(self, exclude_account_id: int | None) -> list[str]: ...

    def get_class_year(self, class_year_id: int) -> ClassYear | None: ...


def _blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class AccountValidator:
    """Collects every field error for a candidate account instead of stopping at the first."""

    def __init__(self, lookup: AccountLookup) -> None:
        self._lookup = lookup

    def validate(
        self,
        candidate: CreateAccountInput | Account,
        account_id: int | None = None,
    ) -> ValidationErrors:
        """Return ``field -> messages`` for every failed check; empty when valid.

        ``account_id`` identifies the record being re-validated so that it does
        not collide with itself in the uniqueness scans.
        """
        errors: ValidationErrors = {}

        def add(field: str, message: str) -> None:
            errors.setdefault(field, []).append(message)

        if _blank(candidate.email):
            add("email", BLANK)
        elif not INSTITUTIONAL_EMAIL.fullmatch(candidate.email):
            add("email", INVALID)

        for name in REQUIRED_FIELDS:
            if _blank(getattr(candidate, name)):
                add(name, BLANK)

        if not _blank(candidate.class_year_id) and self._lookup.get_class_year(candidate.class_year_id) is None:
            add("class_year_id", INVALID)

        if not _blank(candidate.handle_name) and self._lookup.handle_name_taken(
            candidate.handle_name, account_id
        ):
            add("handle_name", TAKEN)

        # email and email_mobile share one pool across all other accounts
        taken = {email for email in self._lookup.list_contact_emails(account_id) if not _blank(email)}
        if not _blank(candidate.email) and candidate.email in taken:
            add("email", TAKEN)
        if not _blank(candidate.email_mobile) and candidate.email_mobile in taken:
            add("email_mobile", TAKEN)

        return errors
