"""Database repository for account and cohort data."""

from __future__ import annotations

from datetime import datetime, timezone

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, ActivationState, ApprovalState, ClassYear
from .domain.errors import AccountNotFoundError, DuplicateAccountError, InvalidReferenceError

ACCOUNT_COLUMNS = (
    "account_id",
    "email",
    "password_hash",
    "password_salt",
    "family_name",
    "given_name",
    "handle_name",
    "birthday",
    "class_year_id",
    "email_mobile",
    "activation_state",
    "approval_state",
    "activation_token",
    "activation_token_expires_at",
    "reset_password_token",
    "reset_password_token_expires_at",
    "reset_password_email_sent_at",
    "last_login_at",
    "last_logout_at",
    "last_activity_at",
    "last_login_from_ip_address",
    "ml_member_id",
    "admin",
    "created_at",
    "updated_at",
)

# every column except the generated key and the timestamps the repository stamps
WRITABLE_COLUMNS = ACCOUNT_COLUMNS[1:-2]

SELECT_ACCOUNT = f"SELECT {', '.join(ACCOUNT_COLUMNS)} FROM accounts"

UNIQUE_CONSTRAINTS = {
    "accounts_handle_name_key": "handle_name",
    "accounts_email_key": "email",
}

FOREIGN_KEYS = {
    "accounts_class_year_id_fkey": "class_year_id",
}


class AccountRepository:
    """Postgres-backed account persistence."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_account(self, account: Account) -> Account:
        """Insert a new account and return it with its generated id and timestamps."""
        now = datetime.now(timezone.utc)
        columns = (*WRITABLE_COLUMNS, "created_at", "updated_at")
        values = (*self._writable_values(account), now, now)
        placeholders = ", ".join(["%s"] * len(columns))
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts ({', '.join(columns)})
                        VALUES ({placeholders})
                        RETURNING {', '.join(ACCOUNT_COLUMNS)}
                        """,
                        values,
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    raise self._duplicate_error(exc) from exc
                except errors.ForeignKeyViolation as exc:
                    conn.rollback()
                    raise self._reference_error(exc) from exc
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def update_account(self, account: Account) -> Account:
        """Write every mutable column of ``account`` back to its row."""
        assignments = ", ".join(f"{column} = %s" for column in WRITABLE_COLUMNS)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        UPDATE accounts
                        SET {assignments}, updated_at = %s
                        WHERE account_id = %s
                        RETURNING {', '.join(ACCOUNT_COLUMNS)}
                        """,
                        (*self._writable_values(account), datetime.now(timezone.utc), account.account_id),
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    raise self._duplicate_error(exc) from exc
                except errors.ForeignKeyViolation as exc:
                    conn.rollback()
                    raise self._reference_error(exc) from exc
                row = cur.fetchone()
                conn.commit()
        if row is None:
            raise AccountNotFoundError(f"account {account.account_id} not found")
        return self._map_record(row)

    def get_account(self, account_id: int) -> Account | None:
        """Fetch an account by id or return ``None``."""
        return self._fetch_one(f"{SELECT_ACCOUNT} WHERE account_id = %s", (account_id,))

    def find_by_activation_token(self, token: str) -> Account | None:
        return self._fetch_one(f"{SELECT_ACCOUNT} WHERE activation_token = %s", (token,))

    def handle_name_taken(self, handle_name: str, exclude_account_id: int | None) -> bool:
        """Return ``True`` when another account already uses ``handle_name``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT 1 FROM accounts
                    WHERE handle_name = %s AND account_id IS DISTINCT FROM %s
                    LIMIT 1
                    """,
                    (handle_name, exclude_account_id),
                )
                return cur.fetchone() is not None

    def list_contact_emails(self, exclude_account_id: int | None) -> list[str]:
        """Return every email and email_mobile value held by other accounts, blanks dropped."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT email, email_mobile FROM accounts
                    WHERE account_id IS DISTINCT FROM %s
                    """,
                    (exclude_account_id,),
                )
                rows = cur.fetchall()
        return [value for row in rows for value in row if value and value.strip()]

    def list_waiting_approval(self) -> list[Account]:
        """Accounts that confirmed their email but are not yet approved."""
        return self._fetch_all(
            f"{SELECT_ACCOUNT} WHERE activation_state = %s AND approval_state = %s ORDER BY account_id",
            (ActivationState.active.value, ApprovalState.waiting.value),
        )

    def list_admins(self) -> list[Account]:
        """Active, approved accounts carrying the admin flag."""
        return self._fetch_all(
            f"""
            {SELECT_ACCOUNT}
            WHERE activation_state = %s AND approval_state = %s AND admin
            ORDER BY account_id
            """,
            (ActivationState.active.value, ApprovalState.approved.value),
        )

    def get_class_year(self, class_year_id: int) -> ClassYear | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT class_year_id, name, ml_list_id FROM class_years WHERE class_year_id = %s",
                    (class_year_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return ClassYear(class_year_id=row[0], name=row[1], ml_list_id=row[2])

    def _fetch_one(self, query: str, params: tuple) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def _fetch_all(self, query: str, params: tuple) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _writable_values(self, account: Account) -> tuple:
        values = []
        for column in WRITABLE_COLUMNS:
            value = getattr(account, column)
            if isinstance(value, (ActivationState, ApprovalState)):
                value = value.value
            values.append(value)
        return tuple(values)

    def _duplicate_error(self, exc: errors.UniqueViolation) -> DuplicateAccountError:
        constraint = exc.diag.constraint_name or ""
        return DuplicateAccountError(UNIQUE_CONSTRAINTS.get(constraint, constraint or "account"))

    def _reference_error(self, exc: errors.ForeignKeyViolation) -> InvalidReferenceError:
        return InvalidReferenceError(FOREIGN_KEYS.get(exc.diag.constraint_name or "", "class_year_id"))

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        data = dict(zip(ACCOUNT_COLUMNS, row))
        data["activation_state"] = ActivationState(data["activation_state"])
        data["approval_state"] = ApprovalState(data["approval_state"])
        return Account(**data)
