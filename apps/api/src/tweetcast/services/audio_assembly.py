"""
Audio assembly service: S3 artifacts in, one tagged and normalized episode out.

Each step downloads its input to a scratch directory, runs ffmpeg and
uploads the output, so the steps can be retried independently.
"""

import logging
import tempfile
from pathlib import Path

from tweetcast.integrations.ffmpeg_client import ChapterMark, FFmpegClient
from tweetcast.integrations.storage_client import StorageClient, parse_s3_uri
from tweetcast.schemas.payloads import PodcastMetadata
from tweetcast.services.collaborators import AssembledAudio, AudioAssembler

logger = logging.getLogger(__name__)


def chapter_marks(metadata: PodcastMetadata, total_seconds: float | None) -> list[ChapterMark]:
    """Turn chapter start times into start/end ranges."""
    chapters = sorted(metadata.chapters, key=lambda c: c.start_time)
    marks = []
    for index, chapter in enumerate(chapters):
        if index + 1 < len(chapters):
            end = chapters[index + 1].start_time
        else:
            end = total_seconds if total_seconds is not None else chapter.start_time
        marks.append(
            ChapterMark(
                title=chapter.title,
                start=chapter.start_time,
                end=max(end, chapter.start_time),
            )
        )
    return marks


class FFmpegAudioAssembler(AudioAssembler):
    """AudioAssembler over S3 storage and ffmpeg."""

    name = "ffmpeg_audio_assembler"

    def __init__(
        self,
        storage: StorageClient,
        ffmpeg: FFmpegClient,
        work_dir: Path | None = None,
    ) -> None:
        self._storage = storage
        self._ffmpeg = ffmpeg
        self._work_dir = work_dir

    def _scratch(self) -> tempfile.TemporaryDirectory:
        return tempfile.TemporaryDirectory(prefix="tweetcast-", dir=self._work_dir)

    def concatenate(self, locators: list[str], output_key: str) -> AssembledAudio:
        with self._scratch() as tmp:
            tmp_path = Path(tmp)
            inputs = [
                self._storage.download_to_path(uri, tmp_path / f"{index:03d}.mp3")
                for index, uri in enumerate(locators)
            ]
            durations = [self._ffmpeg.probe_duration(path) for path in inputs]
            output = self._ffmpeg.concat(inputs, tmp_path / "concat.mp3")
            upload = self._storage.upload_path(output, key=output_key)

        logger.info(f"Concatenated {len(locators)} segments into {upload.uri}")
        return AssembledAudio(locator=upload.uri, artifact_durations=durations)

    def tag(self, locator: str, metadata: PodcastMetadata) -> str:
        bucket, key = parse_s3_uri(locator)
        with self._scratch() as tmp:
            tmp_path = Path(tmp)
            source = self._storage.download_to_path(locator, tmp_path / "source.mp3")
            total = self._ffmpeg.probe_duration(source)
            output = self._ffmpeg.write_metadata(
                source,
                tmp_path / "tagged.mp3",
                tags={
                    "title": metadata.title,
                    "artist": metadata.author,
                    "album_artist": metadata.author,
                    "comment": metadata.description or "",
                    "genre": "Podcast",
                },
                chapters=chapter_marks(metadata, total),
            )
            upload = self._storage.upload_path(output, key=key, bucket=bucket)
        return upload.uri

    def normalize(self, locator: str) -> str:
        bucket, key = parse_s3_uri(locator)
        with self._scratch() as tmp:
            tmp_path = Path(tmp)
            source = self._storage.download_to_path(locator, tmp_path / "source.mp3")
            output = self._ffmpeg.normalize(source, tmp_path / "normalized.mp3")
            upload = self._storage.upload_path(output, key=key, bucket=bucket)
        return upload.uri


__all__ = ["FFmpegAudioAssembler", "chapter_marks"]
