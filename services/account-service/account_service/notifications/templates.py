"""Mail templates keyed by the name callers pass to the mailer."""

from __future__ import annotations

from dataclasses import dataclass
from string import Template


@dataclass(frozen=True)
class MailTemplate:
    subject: str
    body: Template

    def render(self, **context: str) -> tuple[str, str]:
        return self.subject, self.body.substitute(context)


TEMPLATES: dict[str, MailTemplate] = {
    "email_confirmation_on_create": MailTemplate(
        subject="[Portal] Confirm your email address",
        body=Template(
            "$full_name,\n\n"
            "Thank you for registering. Open the link below to confirm your address:\n\n"
            "$activation_url\n\n"
            "Your account becomes usable once an administrator approves it.\n"
        ),
    ),
    "reset_password_instructions": MailTemplate(
        subject="[Portal] Reset your password",
        body=Template(
            "$full_name,\n\n"
            "A password reset was requested for your account. Open the link below to choose a new password:\n\n"
            "$reset_password_url\n\n"
            "If you did not request this, you can ignore this message.\n"
        ),
    ),
    "approval_request": MailTemplate(
        subject="[Portal] Accounts waiting for approval",
        body=Template(
            "The following $count account(s) confirmed their email and are waiting for approval:\n\n"
            "$waiting\n"
        ),
    ),
}


def get_template(key: str) -> MailTemplate:
    """Return the template registered under ``key``."""
    try:
        return TEMPLATES[key]
    except KeyError as exc:
        raise KeyError(f"unknown mail template: {key}") from exc
