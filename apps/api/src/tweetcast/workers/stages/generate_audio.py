"""
generate_audio stage: synthesize one audio artifact per narration segment.
"""

from typing import Any

from tweetcast.models.enums import JobType, UsageAction
from tweetcast.schemas.payloads import GenerateAudioPayload
from tweetcast.services.collaborators import SpeechSynthesizer
from tweetcast.workers.executor import JobContext
from tweetcast.workers.stages.base import StageRoutine


def segment_key(podcast_id: str, index: int, segment_id: str | None) -> str:
    """Storage key for a synthesized segment."""
    suffix = segment_id or f"{index:03d}"
    return f"podcasts/{podcast_id}/segments/{index:03d}-{suffix}.mp3"


class GenerateAudioStage(StageRoutine[GenerateAudioPayload]):
    """
    Synthesize segments sequentially, in payload order.

    Progress runs from 10 to 90 across the segments, then 100.

    Result:
        {"audio_files": [...], "segment_count": n, "durations_ms": [...]}
    """

    job_type = JobType.GENERATE_AUDIO
    payload_model = GenerateAudioPayload

    def __init__(self, session_factory, synthesizer: SpeechSynthesizer) -> None:
        super().__init__(session_factory)
        self._synthesizer = synthesizer

    def run(self, payload: GenerateAudioPayload, ctx: JobContext) -> dict[str, Any]:
        podcast_id = str(payload.podcast_id)
        with self.session() as db:
            user_id = self.get_podcast(db, payload.podcast_id).user_id

        ctx.report_progress(10)

        total = len(payload.segments)
        audio_files: list[str] = []
        durations: list[int | None] = []
        for index, segment in enumerate(payload.segments):
            artifact = self.call(
                self._synthesizer,
                self._synthesizer.synthesize,
                segment.text,
                segment.voice_params,
                segment_key(podcast_id, index, segment.id),
                podcast_id=podcast_id,
            )
            audio_files.append(artifact.locator)
            durations.append(artifact.duration_ms)
            ctx.report_progress(10 + 80 * (index + 1) // total)

        with self.session() as db:
            self.log_usage(db, user_id, UsageAction.AUDIO_GENERATED, credits_used=total)

        ctx.report_progress(100)
        ctx.logger.info(f"Generated {total} audio segments")

        return {
            "audio_files": audio_files,
            "segment_count": total,
            "durations_ms": durations,
        }
