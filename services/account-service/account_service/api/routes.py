"""HTTP route definitions for the account service."""

from __future__ import annotations

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.account import Account
from ..domain.contracts import CreateAccountInput
from ..domain.errors import ExternalServiceError
from ..domain.service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    account_id: int
    email: str
    email_mobile: str | None
    full_name: str
    handle_name: str
    birthday: date
    class_year_id: int
    activation_state: str
    approval_state: str
    ml_member_id: int | None
    admin: bool
    created_at: datetime | None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            email=account.email,
            email_mobile=account.email_mobile,
            full_name=account.full_name,
            handle_name=account.handle_name,
            birthday=account.birthday,
            class_year_id=account.class_year_id,
            activation_state=account.activation_state.name,
            approval_state=account.approval_state.name,
            ml_member_id=account.ml_member_id,
            admin=account.admin,
            created_at=account.created_at,
        )


class CreateAccountRequest(BaseModel):
    """Registration payload; the password arrives already hashed."""

    email: str = ""
    email_mobile: str | None = None
    family_name: str = ""
    given_name: str = ""
    handle_name: str = ""
    birthday: date | None = None
    class_year_id: int | None = None
    password_hash: str = ""
    password_salt: str = ""


class ActivateRequest(BaseModel):
    activation_token: str = Field(..., min_length=1)


class ApprovalDigestResponse(BaseModel):
    """Counts reported after an approval digest run."""

    admins: int
    waiting: int
    sent: bool


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    service: AccountService = Depends(get_service),
):
    """Register an account, then send its confirmation mail and join its cohort list."""
    try:
        result = service.create_account(
            CreateAccountInput(
                email=payload.email,
                email_mobile=payload.email_mobile,
                family_name=payload.family_name,
                given_name=payload.given_name,
                handle_name=payload.handle_name,
                birthday=payload.birthday,
                class_year_id=payload.class_year_id,
                password_hash=payload.password_hash,
                password_salt=payload.password_salt,
            )
        )
    except ExternalServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"account created but post-create action failed: {exc}",
        ) from exc
    if not result.ok:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"errors": result.errors},
        )
    return AccountResponse.from_domain(result.account)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    account = service.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    return AccountResponse.from_domain(account)


@router.post("/accounts/activate", response_model=AccountResponse)
def activate_account(
    payload: ActivateRequest,
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Redeem the token mailed on registration."""
    try:
        account = service.activate(payload.activation_token)
    except ValueError as exc:
        raise _http_error_from_value_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/accounts/{account_id}/approve", response_model=AccountResponse)
def approve_account(
    account_id: int,
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.approve(account_id)
    except ValueError as exc:
        raise _http_error_from_value_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/accounts/{account_id}/reset-password", status_code=status.HTTP_202_ACCEPTED)
def reset_password(
    account_id: int,
    service: AccountService = Depends(get_service),
) -> dict[str, str]:
    """Issue a reset-password token and mail the link to the account owner."""
    try:
        service.issue_reset_password_token(account_id)
    except ValueError as exc:
        raise _http_error_from_value_error(exc) from exc
    except ExternalServiceError as exc:
        logger.error("reset password for account %s failed: %s", account_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return {"status": "sent"}


@router.post("/admin/approval-digest", response_model=ApprovalDigestResponse)
def send_approval_digest(
    service: AccountService = Depends(get_service),
) -> ApprovalDigestResponse:
    """Mail administrators the list of accounts waiting for approval."""
    try:
        admins, waiting = service.send_approval_digest()
    except ExternalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return ApprovalDigestResponse(
        admins=len(admins),
        waiting=len(waiting),
        sent=bool(admins),
    )


def _http_error_from_value_error(exc: ValueError) -> HTTPException:
    message = str(exc).lower()
    status_code = status.HTTP_400_BAD_REQUEST
    if "not found" in message:
        status_code = status.HTTP_404_NOT_FOUND
    return HTTPException(status_code=status_code, detail=str(exc))
