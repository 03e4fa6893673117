from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    """Another request holds the idempotency key and has not finished yet."""


class ValidationError(AppError):
    pass


class IdempotencyFinalizeError(AppError):
    """Finalize was called on a record that is missing or already finalized."""
