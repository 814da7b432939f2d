"""
ffmpeg/ffprobe wrapper for podcast assembly.

Runs the binaries as subprocesses with fixed argument lists:
- Probe durations
- Concatenate segments (concat demuxer, stream copy)
- Write ID3 tags and chapters from an ffmetadata file
- Loudness-normalize to podcast levels (EBU R128, -16 LUFS)
"""

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

LOUDNORM_FILTER = "loudnorm=I=-16:TP=-1.5:LRA=11"


@dataclass(frozen=True)
class ChapterMark:
    """Chapter boundary in seconds."""

    title: str
    start: float
    end: float


def _escape_metadata(value: str) -> str:
    """Escape a value for the ffmetadata format."""
    for char in ("\\", "=", ";", "#", "\n"):
        value = value.replace(char, f"\\{char}")
    return value


def build_ffmetadata(tags: dict[str, str], chapters: Sequence[ChapterMark]) -> str:
    lines = [";FFMETADATA1"]
    lines += [f"{key}={_escape_metadata(value)}" for key, value in tags.items() if value]
    for chapter in chapters:
        lines += [
            "",
            "[CHAPTER]",
            "TIMEBASE=1/1000",
            f"START={int(chapter.start * 1000)}",
            f"END={int(chapter.end * 1000)}",
            f"title={_escape_metadata(chapter.title)}",
        ]
    return "\n".join(lines) + "\n"


class FFmpegClient:
    """
    Subprocess wrapper around ffmpeg and ffprobe.

    Example:
        ```python
        ffmpeg = FFmpegClient()
        ffmpeg.concat([Path("a.mp3"), Path("b.mp3")], Path("out.mp3"))
        seconds = ffmpeg.probe_duration(Path("out.mp3"))
        ```
    """

    def __init__(self, settings: Settings | None = None, timeout: float = 600.0) -> None:
        self._settings = settings or get_settings()
        self._ffmpeg = self._settings.ffmpeg_binary
        self._ffprobe = self._settings.ffprobe_binary
        self._timeout = timeout

    def _run(self, args: list[str], timeout: float | None = None) -> subprocess.CompletedProcess[str]:
        """
        Run a binary and raise on failure.

        Raises:
            ExternalServiceError: If the binary is missing, times out or
                exits non-zero
        """
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout or self._timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ExternalServiceError(
                service="ffmpeg",
                message=f"{Path(args[0]).name} could not run",
                original_error=str(e),
            ) from e

        if result.returncode != 0:
            logger.error(
                f"{Path(args[0]).name} exited with {result.returncode}",
                extra={"stderr": result.stderr[-500:]},
            )
            raise ExternalServiceError(
                service="ffmpeg",
                message=f"{Path(args[0]).name} exited with {result.returncode}",
                original_error=result.stderr[-500:],
            )
        return result

    def probe_duration(self, path: Path) -> float | None:
        """Duration in seconds, or None if ffprobe cannot tell."""
        try:
            result = self._run(
                [
                    self._ffprobe,
                    "-v",
                    "error",
                    "-show_entries",
                    "format=duration",
                    "-of",
                    "default=noprint_wrappers=1:nokey=1",
                    str(path),
                ],
                timeout=30,
            )
        except ExternalServiceError as e:
            logger.warning(f"Could not probe {path.name}: {e.message}")
            return None
        try:
            return float(result.stdout.strip())
        except ValueError:
            return None

    def concat(self, inputs: Sequence[Path], output: Path) -> Path:
        """Concatenate audio files in order without re-encoding."""
        list_file = output.with_suffix(".txt")
        list_file.write_text(
            "".join(f"file '{path.resolve().as_posix()}'\n" for path in inputs)
        )
        self._run(
            [
                self._ffmpeg,
                "-y",
                "-f",
                "concat",
                "-safe",
                "0",
                "-i",
                str(list_file),
                "-c",
                "copy",
                str(output),
            ]
        )
        return output

    def write_metadata(
        self,
        source: Path,
        output: Path,
        tags: dict[str, str],
        chapters: Sequence[ChapterMark] = (),
    ) -> Path:
        """Copy ``source`` to ``output`` with tags and chapters applied."""
        metadata_file = output.with_suffix(".ffmeta")
        metadata_file.write_text(build_ffmetadata(tags, chapters))
        self._run(
            [
                self._ffmpeg,
                "-y",
                "-i",
                str(source),
                "-i",
                str(metadata_file),
                "-map_metadata",
                "1",
                "-map_chapters",
                "1",
                "-c",
                "copy",
                "-id3v2_version",
                "3",
                str(output),
            ]
        )
        return output

    def normalize(self, source: Path, output: Path) -> Path:
        """Loudness-normalize to podcast levels, keeping metadata."""
        self._run(
            [
                self._ffmpeg,
                "-y",
                "-i",
                str(source),
                "-af",
                LOUDNORM_FILTER,
                "-map_metadata",
                "0",
                "-id3v2_version",
                "3",
                "-codec:a",
                "libmp3lame",
                "-b:a",
                "128k",
                str(output),
            ]
        )
        return output


__all__ = ["ChapterMark", "FFmpegClient", "build_ffmetadata"]
