from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from .errors import PreconditionError


class ActivationState(str, Enum):
    unconfirmed = "pending"
    active = "active"


class ApprovalState(str, Enum):
    waiting = "waiting"
    approved = "approved"
    rejected = "rejected"


@dataclass(slots=True)
class ClassYear:
    """Cohort an account belongs to; decides which mailing list it joins."""

    class_year_id: int
    name: str
    ml_list_id: int | None = None


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered portal user."""

    account_id: int | None
    email: str
    password_hash: str
    password_salt: str
    family_name: str
    given_name: str
    handle_name: str
    birthday: date
    class_year_id: int
    email_mobile: str | None = None
    activation_state: ActivationState = ActivationState.unconfirmed
    approval_state: ApprovalState = ApprovalState.waiting
    activation_token: str | None = None
    activation_token_expires_at: datetime | None = None
    reset_password_token: str | None = None
    reset_password_token_expires_at: datetime | None = None
    reset_password_email_sent_at: datetime | None = None
    last_login_at: datetime | None = None
    last_logout_at: datetime | None = None
    last_activity_at: datetime | None = None
    last_login_from_ip_address: str | None = None
    ml_member_id: int | None = None
    admin: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.family_name} {self.given_name}"

    @property
    def is_active(self) -> bool:
        return self.activation_state is ActivationState.active

    @property
    def is_approved(self) -> bool:
        return self.approval_state is ApprovalState.approved

    def activation_url(self, host: str) -> str:
        """Return the link that redeems this account's activation token."""
        if not self.activation_token:
            raise PreconditionError("activation_token is not generated")
        return f"http://{host}/activate/?activation_token={self.activation_token}"

    def reset_password_url(self, host: str) -> str:
        """Return the link that lets the owner choose a new password."""
        if not self.reset_password_token:
            raise PreconditionError("reset_password_token is not generated")
        return f"http://{host}/reset_password/?reset_password_token={self.reset_password_token}"
