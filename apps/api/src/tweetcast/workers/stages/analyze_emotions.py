"""
analyze_emotions stage: label every listed post with an emotion.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from sqlalchemy import select

from tweetcast.core.exceptions import NotFoundError
from tweetcast.models import Tweet
from tweetcast.models.enums import JobType
from tweetcast.schemas.payloads import AnalyzeEmotionsPayload
from tweetcast.services.collaborators import EmotionClassifier, EmotionLabel
from tweetcast.workers.executor import JobContext
from tweetcast.workers.stages.base import StageRoutine


class AnalyzeEmotionsStage(StageRoutine[AnalyzeEmotionsPayload]):
    """
    Classify posts in parallel, then persist all labels in one transaction.

    Posts are classified independently; the first classifier failure fails
    the attempt and nothing is persisted.

    Result:
        {"analyzed": n, "results": [{tweet_id, emotion_type, confidence,
        indicators}, ...]} in the order of ``tweet_ids``
    """

    job_type = JobType.ANALYZE_EMOTIONS
    payload_model = AnalyzeEmotionsPayload

    def __init__(
        self,
        session_factory,
        classifier: EmotionClassifier,
        max_parallel: int = 4,
    ) -> None:
        super().__init__(session_factory)
        self._classifier = classifier
        self._max_parallel = max(max_parallel, 1)

    def run(self, payload: AnalyzeEmotionsPayload, ctx: JobContext) -> dict[str, Any]:
        podcast_id = str(payload.podcast_id)
        tweet_ids = list(dict.fromkeys(payload.tweet_ids))

        with self.session() as db:
            rows = db.execute(
                select(Tweet.id, Tweet.text).where(Tweet.id.in_(tweet_ids))
            ).all()
        texts = {row.id: row.text for row in rows}
        missing = [tweet_id for tweet_id in tweet_ids if tweet_id not in texts]
        if missing:
            raise NotFoundError(resource_type="Tweet", resource_id=", ".join(missing))

        ctx.report_progress(10)

        labels: dict[str, EmotionLabel] = {}
        workers = min(self._max_parallel, len(tweet_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="emotion") as pool:
            futures = {
                pool.submit(
                    self.call,
                    self._classifier,
                    self._classifier.classify,
                    texts[tweet_id],
                    podcast_id=podcast_id,
                ): tweet_id
                for tweet_id in tweet_ids
            }
            try:
                for future in as_completed(futures):
                    labels[futures[future]] = future.result()
                    ctx.report_progress(10 + 80 * len(labels) // len(tweet_ids))
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        with self.session() as db:
            for tweet_id in tweet_ids:
                tweet = db.get(Tweet, tweet_id)
                if tweet is None:
                    raise NotFoundError(resource_type="Tweet", resource_id=tweet_id)
                label = labels[tweet_id]
                tweet.apply_emotion(label.label.value, label.confidence, label.indicators)

        ctx.report_progress(100)
        ctx.logger.info(f"Analyzed {len(tweet_ids)} posts")

        results = [
            {
                "tweet_id": tweet_id,
                "emotion_type": labels[tweet_id].label.value,
                "confidence": round(labels[tweet_id].confidence, 2),
                "indicators": list(labels[tweet_id].indicators),
            }
            for tweet_id in tweet_ids
        ]
        return {"analyzed": len(results), "results": results}
