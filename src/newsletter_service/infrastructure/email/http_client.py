"""Email transport over a Postmark-style HTTP API."""
from __future__ import annotations

import logging

import httpx

from newsletter_service.application.ports.email import (
    PermanentTransportError,
    TransientTransportError,
)

logger = logging.getLogger(__name__)

# Rejections of the recipient or the message itself. Any other failure,
# including a bad server token or a wrong base URL, is retried.
_PERMANENT_STATUSES = frozenset({400, 406, 422})


class HttpEmailClient:
    """Implements application.ports.email.EmailTransport."""

    def __init__(
        self,
        base_url: str,
        sender: str,
        authorization_token: str,
        timeout: float,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sender = sender
        self._authorization_token = authorization_token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def send(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        body = {
            "From": self._sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html_body,
            "TextBody": text_body,
        }
        try:
            response = await self._client.post(
                "/email",
                json=body,
                headers={"X-Postmark-Server-Token": self._authorization_token},
            )
        except httpx.TimeoutException as exc:
            raise TransientTransportError(f"Timed out sending to {recipient}") from exc
        except httpx.TransportError as exc:
            raise TransientTransportError(f"Connection error sending to {recipient}: {exc}") from exc

        status = response.status_code
        if status < 400:
            logger.debug("Email API accepted message to %s (%d)", recipient, status)
            return
        detail = f"Email API returned {status} for {recipient}: {response.text[:200]}"
        if status in _PERMANENT_STATUSES:
            raise PermanentTransportError(detail)
        raise TransientTransportError(detail)

    async def aclose(self) -> None:
        await self._client.aclose()
