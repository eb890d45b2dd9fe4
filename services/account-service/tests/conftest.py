from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from account_service.api import routes
from account_service.config import Settings
from account_service.domain.account import Account, ActivationState, ApprovalState, ClassYear
from account_service.domain.contracts import CreateAccountInput
from account_service.domain.errors import AccountNotFoundError, DuplicateAccountError, ExternalServiceError
from account_service.domain.service import AccountService


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviours, unique indexes included."""

    def __init__(self) -> None:
        self.accounts: dict[int, Account] = {}
        self.class_years: dict[int, ClassYear] = {}
        self.update_calls = 0
        self._seq = 0

    def create_account(self, account: Account) -> Account:
        for other in self.accounts.values():
            if other.handle_name == account.handle_name:
                raise DuplicateAccountError("handle_name")
            if other.email == account.email:
                raise DuplicateAccountError("email")
        self._seq += 1
        now = datetime.now(timezone.utc)
        stored = replace(account, account_id=self._seq, created_at=now, updated_at=now)
        self.accounts[stored.account_id] = stored
        return replace(stored)

    def update_account(self, account: Account) -> Account:
        if account.account_id not in self.accounts:
            raise AccountNotFoundError(f"account {account.account_id} not found")
        self.update_calls += 1
        stored = replace(account)
        self.accounts[account.account_id] = stored
        return replace(stored)

    def get_account(self, account_id: int) -> Account | None:
        account = self.accounts.get(account_id)
        return replace(account) if account else None

    def find_by_activation_token(self, token: str) -> Account | None:
        for account in self.accounts.values():
            if account.activation_token == token:
                return replace(account)
        return None

    def handle_name_taken(self, handle_name: str, exclude_account_id: int | None) -> bool:
        return any(
            account.handle_name == handle_name and account.account_id != exclude_account_id
            for account in self.accounts.values()
        )

    def list_contact_emails(self, exclude_account_id: int | None) -> list[str]:
        emails = []
        for account in self.accounts.values():
            if account.account_id == exclude_account_id:
                continue
            emails.extend(value for value in (account.email, account.email_mobile) if value and value.strip())
        return emails

    def list_waiting_approval(self) -> list[Account]:
        return [
            replace(account)
            for account in self.accounts.values()
            if account.activation_state is ActivationState.active
            and account.approval_state is ApprovalState.waiting
        ]

    def list_admins(self) -> list[Account]:
        return [
            replace(account)
            for account in self.accounts.values()
            if account.admin
            and account.activation_state is ActivationState.active
            and account.approval_state is ApprovalState.approved
        ]

    def get_class_year(self, class_year_id: int) -> ClassYear | None:
        return self.class_years.get(class_year_id)

    def seed(self, **overrides) -> Account:
        """Store an account directly, bypassing validation and post-create actions."""
        self._seq += 1
        values = dict(
            account_id=self._seq,
            email=f"user{self._seq}@med.hokudai.ac.jp",
            password_hash="hash",
            password_salt="salt",
            family_name="Family",
            given_name=f"Given{self._seq}",
            handle_name=f"handle{self._seq}",
            birthday=date(2000, 1, 1),
            class_year_id=1,
        )
        values.update(overrides)
        account = Account(**values)
        self.accounts[account.account_id] = account
        return replace(account)


@dataclass
class SentMail:
    template_key: str
    to: list[str]
    context: dict[str, str]


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[SentMail] = []
        self.fail = False

    def send(self, template_key: str, to: list[str], **context: str) -> None:
        if self.fail:
            raise ExternalServiceError("mail", "relay refused connection")
        self.sent.append(SentMail(template_key, list(to), dict(context)))


@dataclass
class FakeMailingList:
    members: dict[tuple[str, str, str], int] = field(default_factory=dict)
    subscriptions: list[tuple[int, int]] = field(default_factory=list)
    next_member_id: int = 100
    fail_add: bool = False

    def find_or_create_member(self, name: str, email: str, email_sub: str | None) -> int:
        key = (name, email, email_sub or "")
        if key not in self.members:
            self.members[key] = self.next_member_id
            self.next_member_id += 1
        return self.members[key]

    def add_member(self, list_id: int, member_id: int) -> None:
        if self.fail_add:
            raise ExternalServiceError("mailing-list", f"GET /lists/{list_id}/add_member returned 500")
        self.subscriptions.append((list_id, member_id))


@pytest.fixture
def settings() -> Settings:
    return Settings(public_host="example.org", smtp_host="")


@pytest.fixture
def repository() -> FakeRepository:
    repo = FakeRepository()
    repo.class_years[1] = ClassYear(class_year_id=1, name="2024", ml_list_id=7)
    repo.class_years[2] = ClassYear(class_year_id=2, name="2025", ml_list_id=None)
    return repo


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def mailing_list() -> FakeMailingList:
    return FakeMailingList()


@pytest.fixture
def service(repository, mailer, mailing_list, settings) -> AccountService:
    return AccountService(repository, mailer, mailing_list, settings)


@pytest.fixture
def make_input():
    """Build a registration payload that passes validation unless overridden."""

    def _make(**overrides) -> CreateAccountInput:
        values = dict(
            email="taro_sato@med.hokudai.ac.jp",
            email_mobile="taro@example.com",
            family_name="Sato",
            given_name="Taro",
            handle_name="taro",
            birthday=date(2001, 4, 2),
            class_year_id=1,
            password_hash="$2b$10$abcdefghijk",
            password_salt="pepper",
        )
        values.update(overrides)
        return CreateAccountInput(**values)

    return _make


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = service

    with TestClient(app) as client:
        yield client
