"""HTTP client for the external mailing-list service."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..domain.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class MailingListClient:
    """Thin JSON client over the mailing-list API's member and list resources."""

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        headers = {"Accept": "application/json"}
        if settings.mailing_list_api_key:
            headers["Authorization"] = f"Bearer {settings.mailing_list_api_key}"
        self._client = httpx.Client(
            base_url=settings.mailing_list_url,
            timeout=settings.mailing_list_timeout_seconds,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def find_or_create_member(self, name: str, email: str, email_sub: str | None) -> int:
        """Return the id of the member matching all three fields, creating it when absent."""
        criteria = {"name": name, "email": email, "email_sub": email_sub or ""}
        found = self._request("GET", "/members", params=criteria)
        if found is not None and not isinstance(found, list):
            raise ExternalServiceError("mailing-list", "GET /members returned an unexpected body")
        if found:
            return self._member_id(found[0], "GET /members")
        created = self._request("POST", "/members", json=criteria)
        member_id = self._member_id(created, "POST /members")
        logger.info("created mailing-list member %s for %s", member_id, email)
        return member_id

    def add_member(self, list_id: int, member_id: int) -> None:
        """Subscribe ``member_id`` to the list ``list_id``."""
        self._request("GET", f"/lists/{list_id}/add_member", params={"member_id": member_id})

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError("mailing-list", f"{method} {path} timed out") from exc
        except httpx.RequestError as exc:
            raise ExternalServiceError("mailing-list", f"{method} {path} unreachable: {exc}") from exc
        if not response.is_success:
            raise ExternalServiceError(
                "mailing-list", f"{method} {path} returned {response.status_code}"
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalServiceError("mailing-list", f"{method} {path} returned a non-JSON body") from exc

    def _member_id(self, payload: Any, source: str) -> int:
        try:
            return int(payload["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError("mailing-list", f"{source} returned no member id") from exc
