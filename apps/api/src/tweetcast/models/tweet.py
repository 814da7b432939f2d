"""
Tweet cache and podcast/tweet link models.

Tweets are cached by their Twitter id; a cached row is never overwritten by
a later fetch, only enriched with emotion labels by the analysis stage.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tweetcast.models.base import Base

if TYPE_CHECKING:
    from tweetcast.models.podcast import Podcast


class Tweet(Base):
    """
    Cached post from the social-media API.

    Attributes:
        id: Twitter post id
        author_username: Handle of the author
        text: Post text
        created_at: When the post was published
        like_count: Likes at fetch time
        retweet_count: Retweets at fetch time
        emotion_type: Classifier label (set by the analysis stage)
        emotion_confidence: Classifier confidence, two decimals
        emotion_indicators: Words or cues the classifier relied on
        cached_at: When the row was first inserted
    """

    __tablename__ = "tweets"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    author_username: Mapped[str] = mapped_column(String(50), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retweet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emotion_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    emotion_confidence: Mapped[Decimal | None] = mapped_column(
        Numeric(3, 2),
        nullable=True,
    )
    emotion_indicators: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        doc="JSON: {'indicators': [...]} from the classifier",
    )
    cached_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    podcast_tweets: Mapped[list["PodcastTweet"]] = relationship(
        "PodcastTweet",
        back_populates="tweet",
    )

    def __repr__(self) -> str:
        """Return string representation of the tweet."""
        return f"<Tweet {self.id} @{self.author_username}>"

    def apply_emotion(
        self,
        emotion_type: str,
        confidence: float,
        indicators: list[str],
    ) -> None:
        """Store a classifier result, rounding confidence to the column scale."""
        self.emotion_type = emotion_type
        self.emotion_confidence = Decimal(str(round(confidence, 2)))
        self.emotion_indicators = {"indicators": list(indicators)}


class PodcastTweet(Base):
    """Ordered membership of a cached tweet in a podcast."""

    __tablename__ = "podcast_tweets"

    podcast_id: Mapped[UUID] = mapped_column(
        ForeignKey("podcasts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tweet_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("tweets.id"),
        primary_key=True,
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="podcast_tweets")
    tweet: Mapped["Tweet"] = relationship("Tweet", back_populates="podcast_tweets")
