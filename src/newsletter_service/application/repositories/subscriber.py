from __future__ import annotations

from typing import Protocol


class SubscriberDirectory(Protocol):
    async def list_confirmed_addresses(self) -> list[str]: ...
