"""
Twitter API v2 client.

Read-only access with an app bearer token:
- User lookup by username
- User timelines (retweet/reply exclusion, date window)
- Single tweet lookup
- Recent search (hashtags, conversation threads)

Documentation: https://developer.twitter.com/en/docs/twitter-api
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import ExternalServiceError, NotFoundError
from tweetcast.integrations.base_client import SyncBaseHTTPClient

logger = logging.getLogger(__name__)

TWEET_FIELDS = "created_at,public_metrics,author_id,conversation_id,referenced_tweets"

# Search endpoints reject max_results below 10; timelines below 5
SEARCH_MIN_RESULTS = 10
TIMELINE_MIN_RESULTS = 5
MAX_RESULTS = 100


def format_timestamp(value: datetime) -> str:
    """RFC 3339 timestamp in UTC, as the v2 API expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class TwitterUser:
    """A user object from the v2 API."""

    id: str
    username: str
    name: str | None = None
    profile_image_url: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "TwitterUser":
        return cls(
            id=data["id"],
            username=data["username"],
            name=data.get("name"),
            profile_image_url=data.get("profile_image_url"),
        )


@dataclass
class TweetData:
    """A tweet object from the v2 API, with the author's username resolved."""

    id: str
    text: str
    author_id: str | None
    author_username: str
    created_at: datetime
    like_count: int = 0
    retweet_count: int = 0
    conversation_id: str | None = None
    is_retweet: bool = False
    is_reply: bool = False

    @classmethod
    def from_api_response(
        cls,
        data: dict[str, Any],
        usernames: dict[str, str] | None = None,
    ) -> "TweetData":
        metrics = data.get("public_metrics") or {}
        references = {ref.get("type") for ref in data.get("referenced_tweets") or []}
        author_id = data.get("author_id")
        created_at = data.get("created_at")
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            author_id=author_id,
            author_username=(usernames or {}).get(author_id or "", author_id or "unknown"),
            created_at=parse_timestamp(created_at) if created_at else datetime.now(UTC),
            like_count=int(metrics.get("like_count", 0)),
            retweet_count=int(metrics.get("retweet_count", 0)),
            conversation_id=data.get("conversation_id"),
            is_retweet="retweeted" in references,
            is_reply="replied_to" in references,
        )


class TwitterClient(SyncBaseHTTPClient):
    """
    Synchronous client for the Twitter API v2.

    Example:
        ```python
        client = TwitterClient()
        user = client.get_user_by_username("alice")
        tweets = client.get_user_timeline(user.id, max_results=20)
        ```
    """

    def __init__(
        self,
        bearer_token: str | None = None,
        settings: Settings | None = None,
        max_retries: int = 3,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the Twitter client.

        Args:
            bearer_token: App bearer token (defaults to settings)
            settings: Application settings instance
            max_retries: Maximum attempts per request
            timeout: Request timeout in seconds
            transport: Optional httpx transport override

        Raises:
            ValueError: If no bearer token is configured
        """
        self._settings = settings or get_settings()
        token = bearer_token or self._settings.twitter_bearer_token
        if not token:
            raise ValueError(
                "Twitter bearer token is required. Set TWITTER_BEARER_TOKEN environment variable."
            )
        self._default_max_results = self._settings.twitter_max_results

        super().__init__(
            base_url=self._settings.twitter_api_base_url,
            api_key=token,
            max_retries=max_retries,
            timeout=timeout,
            transport=transport,
        )

    @property
    def service_name(self) -> str:
        return "Twitter"

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }

    def _clamp(self, max_results: int | None, minimum: int) -> int:
        value = max_results or self._default_max_results
        return min(max(value, minimum), MAX_RESULTS)

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        body = response.json()
        if "data" not in body and body.get("errors"):
            error = body["errors"][0]
            if error.get("title") == "Not Found Error" or error.get("type", "").endswith(
                "resource-not-found"
            ):
                raise NotFoundError(
                    resource_type=error.get("resource_type", "Twitter resource"),
                    resource_id=str(error.get("value", "")),
                )
            raise ExternalServiceError(
                service=self.service_name,
                message=error.get("detail", "Twitter API returned an error"),
                original_error=str(error),
            )
        return body

    def _tweets(self, body: dict[str, Any]) -> list[TweetData]:
        usernames = {
            user["id"]: user["username"]
            for user in (body.get("includes") or {}).get("users", [])
        }
        tweets = [TweetData.from_api_response(item, usernames) for item in body.get("data") or []]
        self._total_usage.add_units(len(tweets))
        return tweets

    def get_user_by_username(self, username: str) -> TwitterUser:
        """
        Look up an account by its handle.

        Raises:
            NotFoundError: If the account does not exist
        """
        username = username.lstrip("@")
        response = self._get(
            f"/users/by/username/{username}",
            params={"user.fields": "profile_image_url"},
        )
        return TwitterUser.from_api_response(self._json(response)["data"])

    def get_user_timeline(
        self,
        user_id: str,
        max_results: int | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        exclude_retweets: bool = True,
        exclude_replies: bool = True,
    ) -> list[TweetData]:
        """
        Fetch a user's most recent tweets.

        Args:
            user_id: Account id
            max_results: Maximum tweets to return (5-100)
            start_time: Oldest publication time
            end_time: Newest publication time
            exclude_retweets: Drop retweets upstream
            exclude_replies: Drop replies upstream

        Returns:
            Tweets, newest first
        """
        params: dict[str, Any] = {
            "max_results": self._clamp(max_results, TIMELINE_MIN_RESULTS),
            "tweet.fields": TWEET_FIELDS,
            "expansions": "author_id",
            "user.fields": "username",
        }
        exclude = []
        if exclude_retweets:
            exclude.append("retweets")
        if exclude_replies:
            exclude.append("replies")
        if exclude:
            params["exclude"] = ",".join(exclude)
        if start_time:
            params["start_time"] = format_timestamp(start_time)
        if end_time:
            params["end_time"] = format_timestamp(end_time)

        response = self._get(f"/users/{user_id}/tweets", params=params)
        return self._tweets(self._json(response))

    def get_tweet(self, tweet_id: str) -> TweetData:
        """
        Fetch one tweet.

        Raises:
            NotFoundError: If the tweet does not exist
        """
        response = self._get(
            f"/tweets/{tweet_id}",
            params={
                "tweet.fields": TWEET_FIELDS,
                "expansions": "author_id",
                "user.fields": "username",
            },
        )
        body = self._json(response)
        body["data"] = [body["data"]]
        return self._tweets(body)[0]

    def search_recent(
        self,
        query: str,
        max_results: int | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[TweetData]:
        """Search tweets from the last seven days."""
        params: dict[str, Any] = {
            "query": query,
            "max_results": self._clamp(max_results, SEARCH_MIN_RESULTS),
            "tweet.fields": TWEET_FIELDS,
            "expansions": "author_id",
            "user.fields": "username",
        }
        if start_time:
            params["start_time"] = format_timestamp(start_time)
        if end_time:
            params["end_time"] = format_timestamp(end_time)

        response = self._get("/tweets/search/recent", params=params)
        return self._tweets(self._json(response))

    def get_thread(self, tweet_id: str) -> list[TweetData]:
        """
        Fetch every tweet of the conversation a tweet belongs to.

        Returns:
            The root tweet followed by the rest of the conversation,
            oldest first
        """
        root = self.get_tweet(tweet_id)
        conversation_id = root.conversation_id or tweet_id
        replies = self.search_recent(f"conversation_id:{conversation_id}", max_results=MAX_RESULTS)
        thread = [root] + [t for t in replies if t.id != root.id]
        return sorted(thread, key=lambda t: t.created_at)


def get_twitter_client(settings: Settings | None = None) -> TwitterClient:
    """Factory function to create a Twitter client."""
    return TwitterClient(settings=settings)


__all__ = [
    "TweetData",
    "TwitterClient",
    "TwitterUser",
    "format_timestamp",
    "get_twitter_client",
]
