"""
Tweet source: the SocialMediaClient backed by the Twitter API v2.

Maps a podcast source (timeline, username, hashtag, thread URL) onto the
matching Twitter calls and converts the results to FetchedPost values.
"""

import logging

from tweetcast.core.exceptions import ValidationError
from tweetcast.integrations.twitter_client import TweetData, TwitterClient
from tweetcast.models.enums import SourceType
from tweetcast.schemas.payloads import tweet_id_from_url
from tweetcast.services.collaborators import FetchedPost, FetchOptions, SocialMediaClient

logger = logging.getLogger(__name__)


def parse_tweet_url(url: str) -> str:
    """
    Extract the tweet id from a status URL.

    Raises:
        ValidationError: If the URL is not a tweet status link
    """
    tweet_id = tweet_id_from_url(url)
    if tweet_id is None:
        raise ValidationError(
            f"Not a tweet URL: {url}",
            field="source_value",
        )
    return tweet_id


def _to_post(tweet: TweetData) -> FetchedPost:
    return FetchedPost(
        id=tweet.id,
        author_username=tweet.author_username,
        text=tweet.text,
        created_at=tweet.created_at,
        like_count=tweet.like_count,
        retweet_count=tweet.retweet_count,
        is_retweet=tweet.is_retweet,
        is_reply=tweet.is_reply,
    )


class TwitterTweetSource(SocialMediaClient):
    """SocialMediaClient over the Twitter API v2."""

    name = "twitter"

    def __init__(self, client: TwitterClient) -> None:
        self._client = client

    def fetch(
        self,
        source_type: SourceType,
        source_value: str,
        options: FetchOptions,
    ) -> list[FetchedPost]:
        filters = options.filters
        date_range = filters.date_range
        start = date_range.start if date_range else None
        end = date_range.end if date_range else None

        if source_type == SourceType.TIMELINE:
            if not options.user_twitter_id:
                raise ValidationError(
                    "Timeline source needs the podcast owner's Twitter id",
                    field="source_value",
                )
            tweets = self._client.get_user_timeline(
                options.user_twitter_id,
                max_results=options.max_results,
                start_time=start,
                end_time=end,
                exclude_retweets=not filters.include_retweets,
                exclude_replies=not filters.include_replies,
            )
        elif source_type == SourceType.USERNAME:
            user = self._client.get_user_by_username(source_value)
            tweets = self._client.get_user_timeline(
                user.id,
                max_results=options.max_results,
                start_time=start,
                end_time=end,
                exclude_retweets=not filters.include_retweets,
                exclude_replies=not filters.include_replies,
            )
        elif source_type == SourceType.HASHTAG:
            query = f"#{source_value.lstrip('#')}"
            if not filters.include_retweets:
                query += " -is:retweet"
            if not filters.include_replies:
                query += " -is:reply"
            tweets = self._client.search_recent(
                query,
                max_results=options.max_results,
                start_time=start,
                end_time=end,
            )
        elif source_type == SourceType.URL:
            tweets = self._client.get_thread(parse_tweet_url(source_value))
        else:
            raise ValidationError(f"Unsupported source type: {source_type}", field="source_type")

        logger.debug(
            f"Twitter returned {len(tweets)} tweets for {source_type.value}:{source_value}"
        )
        return [_to_post(tweet) for tweet in tweets]


__all__ = ["TwitterTweetSource", "parse_tweet_url"]
