from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from newsletter_service.infrastructure.db.base import Base


class DeliveryTaskModel(Base):
    __tablename__ = "issue_delivery_queue"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True,
    )
    newsletter_issue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("newsletter_issues.id"),
        nullable=False,
    )
    recipient_address: Mapped[str] = mapped_column(String(320), nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    enqueued_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "newsletter_issue_id",
            "recipient_address",
            name="uq_delivery_task_issue_recipient",
        ),
        Index("ix_delivery_queue_due", "next_attempt_at", "id"),
    )
