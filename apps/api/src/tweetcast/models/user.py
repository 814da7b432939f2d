"""
User model.

Users own podcasts and carry the Twitter credentials used to fetch their
timelines.
"""

from typing import TYPE_CHECKING

from sqlalchemy import Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tweetcast.models.base import Base, TimestampMixin, UUIDMixin
from tweetcast.models.enums import SubscriptionTier

if TYPE_CHECKING:
    from tweetcast.models.podcast import Podcast
    from tweetcast.models.usage_log import UsageLog


class User(UUIDMixin, TimestampMixin, Base):
    """
    A Twitter account that creates podcasts.

    Attributes:
        id: Unique identifier (UUID)
        email: Optional contact email
        twitter_id: Twitter user id
        twitter_username: Twitter handle without the @
        twitter_access_token: OAuth access token for user-context calls
        subscription_tier: Billing tier
        voice_preference: Preferred ElevenLabs voice id
    """

    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    twitter_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    twitter_username: Mapped[str] = mapped_column(String(50), nullable=False)
    twitter_display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    twitter_profile_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    twitter_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    twitter_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        Enum(
            SubscriptionTier,
            name="subscription_tier",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=SubscriptionTier.FREE,
    )
    voice_preference: Mapped[str | None] = mapped_column(String(50), nullable=True)

    podcasts: Mapped[list["Podcast"]] = relationship(
        "Podcast",
        back_populates="user",
    )
    usage_logs: Mapped[list["UsageLog"]] = relationship(
        "UsageLog",
        back_populates="user",
    )

    def __repr__(self) -> str:
        """Return string representation of the user."""
        return f"<User @{self.twitter_username}>"
