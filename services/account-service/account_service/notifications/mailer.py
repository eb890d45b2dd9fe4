"""SMTP mail delivery for account notifications."""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText

from ..config import Settings
from ..domain.errors import ExternalServiceError
from ..metrics import NOTIFICATIONS_SENT
from .templates import get_template

logger = logging.getLogger(__name__)


class Mailer:
    """Renders a named template and hands it to the configured SMTP relay."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.enabled = bool(settings.smtp_host)

    def send(self, template_key: str, to: list[str], **context: str) -> None:
        """Deliver ``template_key`` to every address in ``to``.

        Raises :class:`ExternalServiceError` when the relay refuses the message
        or cannot be reached within ``smtp_timeout_seconds``.
        """
        subject, body = get_template(template_key).render(**context)

        if not self.enabled:
            logger.info("smtp disabled, not delivering %s to %s:\n%s", template_key, ", ".join(to), body)
            NOTIFICATIONS_SENT.labels(template=template_key).inc()
            return

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self._settings.mail_from
        msg["To"] = ", ".join(to)

        try:
            with smtplib.SMTP(
                self._settings.smtp_host,
                self._settings.smtp_port,
                timeout=self._settings.smtp_timeout_seconds,
            ) as server:
                if self._settings.smtp_use_tls:
                    server.starttls()
                if self._settings.smtp_username:
                    server.login(self._settings.smtp_username, self._settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("failed to deliver %s to %s: %s", template_key, ", ".join(to), exc)
            raise ExternalServiceError("mail", str(exc)) from exc

        NOTIFICATIONS_SENT.labels(template=template_key).inc()
        logger.info("delivered %s to %d recipient(s)", template_key, len(to))
