from __future__ import annotations

from typing import Protocol


class TransportError(Exception):
    """Base class for email transport failures."""


class TransientTransportError(TransportError):
    """Timeout, 5xx, throttling or connection error. Worth retrying."""


class PermanentTransportError(TransportError):
    """The provider rejected the message itself (bad recipient, bad payload)."""


class EmailTransport(Protocol):
    async def send(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None: ...
