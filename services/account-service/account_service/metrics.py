"""Prometheus collectors for account lifecycle events."""

from __future__ import annotations

from prometheus_client import Counter

ACCOUNTS_CREATED = Counter(
    "accounts_created_total",
    "Accounts persisted by the registration flow.",
)

VALIDATION_FAILURES = Counter(
    "account_validation_failures_total",
    "Registration attempts rejected by field validation.",
)

HOOK_FAILURES = Counter(
    "account_hook_failures_total",
    "Post-create actions that raised an external service error.",
    ["hook"],
)

NOTIFICATIONS_SENT = Counter(
    "account_notifications_sent_total",
    "Mail notifications handed to the delivery service.",
    ["template"],
)
