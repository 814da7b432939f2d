"""
fetch_tweets stage: collect the source posts for a podcast.
"""

import logging
from typing import Any

from tweetcast.core.exceptions import NotFoundError
from tweetcast.models import PodcastTweet, Tweet, User
from tweetcast.models.enums import JobType, SourceType, UsageAction
from tweetcast.schemas.payloads import FetchTweetsPayload, TweetFilters, as_utc
from tweetcast.services.collaborators import FetchedPost, FetchOptions, SocialMediaClient
from tweetcast.services.tweet_source import parse_tweet_url
from tweetcast.workers.executor import JobContext
from tweetcast.workers.stages.base import StageRoutine

logger = logging.getLogger(__name__)


def apply_local_filters(
    posts: list[FetchedPost],
    filters: TweetFilters,
    thread: bool = False,
) -> list[FetchedPost]:
    """
    Apply the filters the upstream API cannot apply.

    Minimum likes and excluded keywords are always applied here. Retweet and
    reply exclusion and the date range are also re-checked in case the source
    ignored them; a thread keeps its replies since they are the thread.
    """
    keywords = [k.lower() for k in filters.exclude_keywords if k.strip()]
    date_range = filters.date_range
    kept = []
    for post in posts:
        if post.is_retweet and not filters.include_retweets:
            continue
        if post.is_reply and not (filters.include_replies or thread):
            continue
        if filters.minimum_likes is not None and post.like_count < filters.minimum_likes:
            continue
        if date_range and not date_range.start <= as_utc(post.created_at) <= date_range.end:
            continue
        text = post.text.lower()
        if any(keyword in text for keyword in keywords):
            continue
        kept.append(post)
    return kept


class FetchTweetsStage(StageRoutine[FetchTweetsPayload]):
    """
    Fetch posts, cache them and link them to the podcast in order.

    Result:
        {"tweet_ids": [...], "count": n}
    """

    job_type = JobType.FETCH_TWEETS
    payload_model = FetchTweetsPayload

    def __init__(self, session_factory, client: SocialMediaClient, max_results: int = 50) -> None:
        super().__init__(session_factory)
        self._client = client
        self._max_results = max_results

    def run(self, payload: FetchTweetsPayload, ctx: JobContext) -> dict[str, Any]:
        podcast_id = str(payload.podcast_id)
        filters = payload.filters or TweetFilters()

        if payload.source_type == SourceType.URL:
            parse_tweet_url(payload.source_value)

        with self.session() as db:
            podcast = self.get_podcast(db, payload.podcast_id)
            user = db.get(User, podcast.user_id)
            if user is None:
                raise NotFoundError(resource_type="User", resource_id=str(podcast.user_id))
            user_id = user.id
            user_twitter_id = user.twitter_id

        ctx.report_progress(10)

        posts = self.call(
            self._client,
            self._client.fetch,
            payload.source_type,
            payload.source_value,
            FetchOptions(
                user_twitter_id=user_twitter_id,
                max_results=self._max_results,
                filters=filters,
            ),
            podcast_id=podcast_id,
        )
        fetched = len(posts)
        posts = apply_local_filters(
            posts, filters, thread=payload.source_type == SourceType.URL
        )

        ctx.logger.info(
            f"Fetched {fetched} posts from {payload.source_type.value}:"
            f"{payload.source_value}, kept {len(posts)}"
        )
        ctx.report_progress(50)

        # A post can appear twice in a thread search; keep first occurrence
        seen: set[str] = set()
        ordered: list[FetchedPost] = []
        for post in posts:
            if post.id not in seen:
                seen.add(post.id)
                ordered.append(post)

        with self.session() as db:
            for order, post in enumerate(ordered):
                if db.get(Tweet, post.id) is None:
                    db.add(
                        Tweet(
                            id=post.id,
                            author_username=post.author_username,
                            text=post.text,
                            created_at=post.created_at,
                            like_count=post.like_count,
                            retweet_count=post.retweet_count,
                        )
                    )
                db.merge(
                    PodcastTweet(
                        podcast_id=payload.podcast_id,
                        tweet_id=post.id,
                        sequence_order=order,
                    )
                )

            podcast = self.get_podcast(db, payload.podcast_id)
            podcast.tweet_count = len(ordered)
            self.log_usage(db, user_id, UsageAction.TWEETS_FETCHED, credits_used=1)

        ctx.report_progress(100)

        tweet_ids = [p.id for p in ordered]
        return {"tweet_ids": tweet_ids, "count": len(tweet_ids)}
