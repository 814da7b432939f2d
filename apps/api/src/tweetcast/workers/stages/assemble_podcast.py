"""
assemble_podcast stage: build the final episode file and finalize the podcast.
"""

from typing import Any

from tweetcast.models.enums import JobType, UsageAction
from tweetcast.schemas.payloads import AssemblePodcastPayload
from tweetcast.services.collaborators import AudioAssembler
from tweetcast.workers.executor import JobContext
from tweetcast.workers.stages.base import StageRoutine

DEFAULT_FALLBACK_SECONDS = 30


def estimate_duration(
    artifact_durations: list[float | None],
    artifact_count: int,
    fallback_seconds: int = DEFAULT_FALLBACK_SECONDS,
) -> int:
    """
    Total duration in whole seconds, at least 1.

    Artifacts with an unknown duration count as ``fallback_seconds``.
    """
    durations = list(artifact_durations[:artifact_count])
    durations += [None] * (artifact_count - len(durations))
    total = sum(fallback_seconds if d is None else d for d in durations)
    return max(int(round(total)), 1)


class AssemblePodcastStage(StageRoutine[AssemblePodcastPayload]):
    """
    Concatenate, tag and normalize the artifacts, then mark the podcast
    completed with its audio location and duration.

    Re-running on a completed podcast re-applies location and duration
    without passing through any other status.

    Result:
        {"audio_url": ..., "duration": seconds, "file_count": n}
    """

    job_type = JobType.ASSEMBLE_PODCAST
    payload_model = AssemblePodcastPayload

    def __init__(
        self,
        session_factory,
        assembler: AudioAssembler,
        fallback_seconds: int = DEFAULT_FALLBACK_SECONDS,
    ) -> None:
        super().__init__(session_factory)
        self._assembler = assembler
        self._fallback_seconds = fallback_seconds

    def run(self, payload: AssemblePodcastPayload, ctx: JobContext) -> dict[str, Any]:
        podcast_id = str(payload.podcast_id)
        with self.session() as db:
            self.get_podcast(db, payload.podcast_id)

        ctx.report_progress(10)

        assembled = self.call(
            self._assembler,
            self._assembler.concatenate,
            payload.audio_files,
            f"podcasts/{podcast_id}/final.mp3",
            podcast_id=podcast_id,
        )
        ctx.report_progress(40)

        tagged = self.call(
            self._assembler,
            self._assembler.tag,
            assembled.locator,
            payload.metadata,
            podcast_id=podcast_id,
        )
        ctx.report_progress(60)

        audio_url = self.call(
            self._assembler,
            self._assembler.normalize,
            tagged,
            podcast_id=podcast_id,
        )
        ctx.report_progress(80)

        duration = estimate_duration(
            assembled.artifact_durations,
            len(payload.audio_files),
            self._fallback_seconds,
        )

        with self.session() as db:
            podcast = self.get_podcast(db, payload.podcast_id)
            podcast.mark_completed(audio_url=audio_url, duration_seconds=duration)
            self.log_usage(db, podcast.user_id, UsageAction.PODCAST_ASSEMBLED)

        ctx.report_progress(100)
        ctx.logger.info(f"Assembled podcast {podcast_id} ({duration}s)")

        return {
            "audio_url": audio_url,
            "duration": duration,
            "file_count": len(payload.audio_files),
        }
