"""
Podcast model.

A podcast is created by the producer with status ``processing`` and is then
mutated only as a side effect of pipeline stages: fetching sets its tweet
count, assembly sets its audio location, duration and final status.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tweetcast.models.base import Base, UUIDMixin
from tweetcast.models.enums import PodcastStatus, SourceType

if TYPE_CHECKING:
    from tweetcast.models.tweet import PodcastTweet
    from tweetcast.models.user import User


class Podcast(UUIDMixin, Base):
    """
    Podcast generated from a social-media source.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Owning user
        title: Podcast title
        description: Optional description
        source_type: Kind of source the posts come from
        source_identifier: URL, username, hashtag or timeline owner
        status: processing, completed or failed
        audio_url: Locator of the final assembled audio
        duration_seconds: Final audio length
        tweet_count: Number of posts gathered by the fetch stage
    """

    __tablename__ = "podcasts"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[SourceType] = mapped_column(
        Enum(
            SourceType,
            name="source_type",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    source_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[PodcastStatus] = mapped_column(
        Enum(
            PodcastStatus,
            name="podcast_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=PodcastStatus.PROCESSING,
        index=True,
    )
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tweet_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="podcasts")
    podcast_tweets: Mapped[list["PodcastTweet"]] = relationship(
        "PodcastTweet",
        back_populates="podcast",
        order_by="PodcastTweet.sequence_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """Return string representation of the podcast."""
        return f"<Podcast {self.id} [{self.status.value}]>"

    def mark_completed(self, audio_url: str, duration_seconds: int) -> None:
        """
        Record the assembled audio and mark the podcast completed.

        Applying this to an already-completed podcast refreshes the audio
        location and duration; the status is never moved back to
        processing on the way.
        """
        self.audio_url = audio_url
        self.duration_seconds = duration_seconds
        self.status = PodcastStatus.COMPLETED
