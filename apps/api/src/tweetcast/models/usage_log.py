"""
Usage log model for per-user credit accounting.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tweetcast.models.base import Base, UUIDMixin

if TYPE_CHECKING:
    from tweetcast.models.user import User


class UsageLog(UUIDMixin, Base):
    """One billable pipeline action performed on behalf of a user."""

    __tablename__ = "usage_logs"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="usage_logs")

    def __repr__(self) -> str:
        """Return string representation of the usage log."""
        return f"<UsageLog {self.action} x{self.credits_used}>"
