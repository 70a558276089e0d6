"""
Rate limit policy model: one request window attached to an API key.

Each row is both the policy (limit + window length) and its live counter
state (requests in the current window + reset_at). Modeled one-to-many from
api_keys for extensibility; in practice a key has one policy.

`requests <= limit` is NOT a table constraint. reset_at is always the
window start plus window_seconds.
"""

import uuid
import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from trivia_api.core.database import Base


class RateLimit(Base):
    """Per-key request window and its counter."""

    __tablename__ = "rate_limits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_key_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    limit: Mapped[int] = mapped_column(Integer, nullable=False)
    window_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    requests: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    reset_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("\"limit\" > 0", name="ck_rate_limit_positive"),
        CheckConstraint("window_seconds > 0", name="ck_rate_window_positive"),
        CheckConstraint("requests >= 0", name="ck_rate_requests_non_neg"),
    )

    def __repr__(self) -> str:
        return (
            f"<RateLimit key={self.api_key_id!s:.8} "
            f"{self.requests}/{self.limit} per {self.window_seconds}s>"
        )
