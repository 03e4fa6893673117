from __future__ import annotations

from enum import StrEnum


class SubscriptionStatus(StrEnum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"


class DeliveryOutcome(StrEnum):
    SENT = "sent"
    RETRY = "retry"
    DROPPED = "dropped"
