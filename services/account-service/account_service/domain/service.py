"""Account service orchestrating validation, persistence, and post-create actions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Protocol

from .account import Account, ActivationState, ApprovalState, ClassYear
from .contracts import CreateAccountInput, CreationResult, ValidationErrors
from .errors import AccountNotFoundError, DuplicateAccountError, ExternalServiceError, InvalidReferenceError
from .validation import INVALID, TAKEN, AccountValidator
from ..config import Settings
from ..metrics import ACCOUNTS_CREATED, HOOK_FAILURES, VALIDATION_FAILURES
from ..security.tokens import is_expired, issue_token

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    def create_account(self, account: Account) -> Account: ...

    def update_account(self, account: Account) -> Account: ...

    def get_account(self, account_id: int) -> Account | None: ...

    def find_by_activation_token(self, token: str) -> Account | None: ...

    def handle_name_taken(self, handle_name: str, exclude_account_id: int | None) -> bool: ...

    def list_contact_emails(self, exclude_account_id: int | None) -> list[str]: ...

    def list_waiting_approval(self) -> list[Account]: ...

    def list_admins(self) -> list[Account]: ...

    def get_class_year(self, class_year_id: int) -> ClassYear | None: ...


class MailDelivery(Protocol):
    def send(self, template_key: str, to: list[str], **context: str) -> None: ...


class MailingList(Protocol):
    def find_or_create_member(self, name: str, email: str, email_sub: str | None) -> int: ...

    def add_member(self, list_id: int, member_id: int) -> None: ...


class AccountService:
    """Account lifecycle workflows backed by Postgres storage."""

    def __init__(
        self,
        repository: AccountStore,
        mailer: MailDelivery,
        mailing_list: MailingList,
        settings: Settings,
    ) -> None:
        """Store the collaborators used by registration and notification flows."""
        self._repository = repository
        self._mailer = mailer
        self._mailing_list = mailing_list
        self._settings = settings
        self._validator = AccountValidator(repository)

    def validate(
        self, candidate: CreateAccountInput | Account, account_id: int | None = None
    ) -> ValidationErrors:
        """Run every field check against ``candidate`` without touching storage state."""
        return self._validator.validate(candidate, account_id)

    def create_account(self, payload: CreateAccountInput) -> CreationResult:
        """Validate, persist, then run the post-create actions for a new account.

        Field errors come back on the result and nothing is written. An
        :class:`ExternalServiceError` from a post-create action propagates; the
        account stays persisted in that case.
        """
        errors = self.validate(payload)
        if errors:
            VALIDATION_FAILURES.inc()
            logger.info("account validation failed for %s: %s", payload.email, sorted(errors))
            return CreationResult(errors=errors)

        token, expires_at = issue_token(self._settings.activation_token_ttl_seconds)
        candidate = Account(
            account_id=None,
            email=payload.email,
            password_hash=payload.password_hash,
            password_salt=payload.password_salt,
            family_name=payload.family_name,
            given_name=payload.given_name,
            handle_name=payload.handle_name,
            birthday=payload.birthday,
            class_year_id=payload.class_year_id,
            email_mobile=payload.email_mobile or None,
            activation_state=ActivationState.unconfirmed,
            approval_state=ApprovalState.waiting,
            activation_token=token,
            activation_token_expires_at=expires_at,
            admin=payload.admin,
        )
        try:
            account = self._repository.create_account(candidate)
        except DuplicateAccountError as exc:
            # a concurrent registration won the race past the pre-check
            VALIDATION_FAILURES.inc()
            return CreationResult(errors={exc.field: [TAKEN]})
        except InvalidReferenceError as exc:
            # the class year was removed after validation
            VALIDATION_FAILURES.inc()
            return CreationResult(errors={exc.field: [INVALID]})

        ACCOUNTS_CREATED.inc()
        logger.info("account %s created for %s", account.account_id, account.email)
        account = self.on_created(account)
        return CreationResult(account=account)

    def on_created(self, account: Account) -> Account:
        """Send the confirmation mail, then register the account on its cohort list."""
        self._run_hook("activation_email", self.send_activation_email, account)
        return self._run_hook("mailing_list", self.register_mailing_list_member, account)

    def _run_hook(self, name: str, action: Callable[[Account], Account | None], account: Account) -> Account:
        try:
            result = action(account)
        except ExternalServiceError:
            HOOK_FAILURES.labels(hook=name).inc()
            logger.exception("post-create action %s failed for account %s", name, account.account_id)
            raise
        return account if result is None else result

    def send_activation_email(self, account: Account) -> None:
        self._mailer.send(
            "email_confirmation_on_create",
            [account.email],
            full_name=account.full_name,
            activation_url=self.activation_url(account),
        )

    def register_mailing_list_member(self, account: Account) -> Account:
        """Subscribe the account to its cohort's mailing list and store the member id."""
        if account.ml_member_id is not None:
            logger.info(
                "account %s already linked to mailing-list member %s, skipping",
                account.account_id,
                account.ml_member_id,
            )
            return account

        class_year = self._repository.get_class_year(account.class_year_id)
        if class_year is None or class_year.ml_list_id is None:
            raise ExternalServiceError(
                "mailing-list", f"class year {account.class_year_id} has no mailing list"
            )

        member_id = self._mailing_list.find_or_create_member(
            account.full_name, account.email, account.email_mobile
        )
        self._mailing_list.add_member(class_year.ml_list_id, member_id)
        account.ml_member_id = member_id
        logger.info(
            "account %s joined list %s as member %s", account.account_id, class_year.ml_list_id, member_id
        )
        return self._repository.update_account(account)

    def send_reset_password_instructions(self, account: Account) -> None:
        self._mailer.send(
            "reset_password_instructions",
            [account.email],
            full_name=account.full_name,
            reset_password_url=self.reset_password_url(account),
        )

    def issue_reset_password_token(self, account_id: int) -> Account:
        """Mint a reset-password token, persist it, and mail the reset link."""
        account = self._require_account(account_id)
        now = datetime.now(timezone.utc)
        account.reset_password_token, account.reset_password_token_expires_at = issue_token(
            self._settings.reset_password_token_ttl_seconds, now
        )
        account.reset_password_email_sent_at = now
        account = self._repository.update_account(account)
        self.send_reset_password_instructions(account)
        return account

    def activate(self, token: str) -> Account:
        """Redeem an activation token, moving the account from unconfirmed to active."""
        account = self._repository.find_by_activation_token(token) if token else None
        if account is None:
            raise ValueError("invalid activation token")
        if is_expired(account.activation_token_expires_at):
            raise ValueError("activation token expired")
        account.activation_state = ActivationState.active
        account.activation_token = None
        account.activation_token_expires_at = None
        logger.info("account %s activated", account.account_id)
        return self._repository.update_account(account)

    def approve(self, account_id: int) -> Account:
        """Grant administrator approval to a waiting account."""
        account = self._require_account(account_id)
        if account.approval_state is ApprovalState.approved:
            return account
        if account.approval_state is ApprovalState.rejected:
            raise ValueError("account approval was rejected")
        account.approval_state = ApprovalState.approved
        logger.info("account %s approved", account.account_id)
        return self._repository.update_account(account)

    def send_approval_digest(self) -> tuple[list[Account], list[Account]]:
        """Mail every admin one list of the accounts waiting for approval."""
        admins = self._repository.list_admins()
        waiting = self._repository.list_waiting_approval()
        if not admins:
            logger.info("approval digest skipped: no admins, %d waiting account(s)", len(waiting))
            return admins, waiting

        self._mailer.send(
            "approval_request",
            [admin.email for admin in admins],
            count=str(len(waiting)),
            waiting="\n".join(
                f"- {account.full_name} ({account.handle_name}) <{account.email}>" for account in waiting
            )
            or "(none)",
        )
        return admins, waiting

    def get_account(self, account_id: int) -> Account | None:
        return self._repository.get_account(account_id)

    def activation_url(self, account: Account) -> str:
        return account.activation_url(self._settings.public_host)

    def reset_password_url(self, account: Account) -> str:
        return account.reset_password_url(self._settings.public_host)

    def _require_account(self, account_id: int) -> Account:
        account = self._repository.get_account(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account
