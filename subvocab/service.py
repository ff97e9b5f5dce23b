"""
Subtitle download service using the yt-dlp executable.

Each request gets its own scratch directory under the configured temp root.
yt-dlp writes the converted SRT file there, the file is read once, and the
directory is removed on every exit path after it was created.
"""

import html
import logging
import re
import shutil
import subprocess
from pathlib import Path

import nh3

from subvocab.config import Settings
from subvocab.errors import (
    InvalidInputError,
    NetworkError,
    SubtitleFetchError,
    SubtitlesNotFoundError,
    ToolExecutionError,
    ToolMissingError,
    UploadRejectedError,
    UploadTooLargeError,
)
from subvocab.models import SubtitleDownload, UploadedSubtitle
from subvocab.tool import YtDlpTool, get_tool
from subvocab.utils import is_valid_youtube_url, new_job_id, sanitize_for_log

logger = logging.getLogger(__name__)

SUBTITLE_FORMAT = "srt"

# yt-dlp diagnostics, matched as substrings of stderr. The first match wins.
FAILURE_PATTERNS: list[tuple[str, type[SubtitleFetchError], str]] = [
    (
        "Unable to download webpage",
        NetworkError,
        "Unable to access the YouTube video. Please check the URL and your internet connection.",
    ),
    (
        "No subtitles found",
        SubtitlesNotFoundError,
        "No subtitles found for this video in the specified language.",
    ),
    (
        "There are no subtitles",
        SubtitlesNotFoundError,
        "No subtitles found for this video in the specified language.",
    ),
]


def classify_tool_failure(stderr: str) -> SubtitleFetchError:
    """
    Map yt-dlp's diagnostic output to an error.

    Args:
        stderr: Captured standard error of the failed yt-dlp run

    Returns:
        NetworkError or SubtitlesNotFoundError for known diagnostics,
        ToolExecutionError carrying the raw output otherwise
    """
    for pattern, error_cls, message in FAILURE_PATTERNS:
        if pattern in stderr:
            return error_cls(message, detail=stderr)
    return ToolExecutionError("Failed to download subtitles", detail=stderr)


class SubtitleFetcher:
    """Runs yt-dlp for one video and returns the subtitle file it wrote."""

    def __init__(self, config: Settings | None = None, tool: YtDlpTool | None = None):
        """
        Args:
            config: Settings instance. Uses global defaults if None.
            tool: yt-dlp gate. Uses the process-wide instance if None.
        """
        self.config = config or Settings()
        self.tool = tool or get_tool()

    def build_command(
        self, url: str, out_dir: Path, language: str | None = None, auto_translate: bool = False
    ) -> list[str]:
        """
        Build the yt-dlp argument list.

        Args:
            url: YouTube video URL
            out_dir: Scratch directory receiving the subtitle file
            language: Subtitle language code, or "auto"/None for the default
            auto_translate: Also accept auto-generated captions (English by default)

        Returns:
            Argument list suitable for subprocess.run
        """
        command = [self.tool.binary]

        if self.config.ytdlp_cookies_browser:
            command += ["--cookies-from-browser", self.config.ytdlp_cookies_browser]

        command += ["--write-subs", "--skip-download", "--no-check-certificate"]

        if language and language != "auto":
            command += ["--sub-langs", language]
        elif auto_translate:
            command += ["--sub-langs", "en"]

        if auto_translate:
            command.append("--write-auto-subs")

        command += ["--sub-format", SUBTITLE_FORMAT, "--convert-subs", SUBTITLE_FORMAT]
        command += ["-o", f"{out_dir}/%(title)s", url]
        return command

    def _run(self, command: list[str]) -> None:
        """
        Run yt-dlp, raising a classified error on failure.

        Output is captured in memory and checked against
        ``ytdlp_max_output_bytes`` after the process exits, so a runaway
        process is bounded by the timeout rather than by the output limit.
        """
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.config.ytdlp_timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"yt-dlp timed out after {self.config.ytdlp_timeout_seconds:g} seconds",
                detail=str(e),
            ) from e
        except OSError as e:
            raise ToolExecutionError("Failed to start yt-dlp", detail=str(e)) from e

        stdout = result.stdout or ""
        stderr = result.stderr or ""
        output_size = len(stdout.encode()) + len(stderr.encode())
        if output_size > self.config.ytdlp_max_output_bytes:
            raise ToolExecutionError(
                "yt-dlp output exceeded the buffer limit",
                detail=f"{output_size} bytes (limit {self.config.ytdlp_max_output_bytes})",
            )

        if result.returncode != 0:
            logger.error(f"yt-dlp exited with code {result.returncode}")
            logger.error(f"Command output: {stdout}")
            logger.error(f"Command error: {stderr}")
            raise classify_tool_failure(stderr)

    def _read_subtitle(self, out_dir: Path, language: str | None) -> SubtitleDownload:
        """Locate and read the subtitle file yt-dlp wrote into out_dir."""
        try:
            files = sorted(p.name for p in out_dir.iterdir())
        except OSError as e:
            raise ToolExecutionError("Error reading output directory", detail=str(e)) from e

        logger.info(f"Files in output directory: {files}")

        suffix = f".{SUBTITLE_FORMAT}"
        subtitle_name = next((name for name in files if name.endswith(suffix)), None)
        if subtitle_name is None:
            raise SubtitlesNotFoundError(
                "No subtitles found for this video in the specified language",
                detail=", ".join(files) or None,
            )

        subtitle_path = out_dir / subtitle_name
        try:
            size = subtitle_path.stat().st_size
            if size > self.config.max_file_size:
                raise ToolExecutionError(
                    "Subtitle file is too large",
                    detail=f"{size} bytes (limit {self.config.max_file_size})",
                )
            content = subtitle_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ToolExecutionError("Error reading subtitle file", detail=str(e)) from e

        return SubtitleDownload(
            content=content,
            title=subtitle_name[: -len(suffix)],
            language=language or "auto",
            format=SUBTITLE_FORMAT,
        )

    def _cleanup(self, out_dir: Path) -> None:
        try:
            shutil.rmtree(out_dir)
        except OSError as e:
            logger.error(f"Error cleaning up {out_dir}: {e}")

    def fetch_subtitles(
        self, url: str | None, language: str | None = None, auto_translate: bool = False
    ) -> SubtitleDownload:
        """
        Download the subtitles of a YouTube video.

        Args:
            url: YouTube video URL
            language: Subtitle language code; None or "auto" lets yt-dlp choose
            auto_translate: Accept auto-generated captions

        Returns:
            SubtitleDownload with the SRT content and its file title

        Raises:
            InvalidInputError: Missing or non-YouTube URL (nothing is spawned)
            ToolMissingError: yt-dlp is not installed (no directory is created)
            NetworkError: yt-dlp could not reach the video page
            SubtitlesNotFoundError: No subtitles in the requested language
            ToolExecutionError: Any other yt-dlp or filesystem failure
        """
        if not url:
            raise InvalidInputError("YouTube URL is required")
        if not is_valid_youtube_url(url):
            raise InvalidInputError("Invalid YouTube URL format", detail=url)

        if not self.tool.is_available():
            raise ToolMissingError(
                "yt-dlp is not installed. Please install it, e.g. with: pip install yt-dlp"
            )

        out_dir = self.config.temp_root / new_job_id()
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ToolExecutionError("Error creating output directory", detail=str(e)) from e

        try:
            command = self.build_command(url, out_dir, language, auto_translate)
            logger.info(f"Executing command: {sanitize_for_log(' '.join(command))}")
            self._run(command)
            download = self._read_subtitle(out_dir, language)
            logger.info(f"Downloaded subtitles '{download.title}' ({len(download.content)} chars)")
            return download
        finally:
            self._cleanup(out_dir)


def get_fetcher() -> SubtitleFetcher:
    """
    Get a configured SubtitleFetcher instance.

    This function is used as a FastAPI dependency for dependency injection.
    """
    from subvocab.config import settings

    return SubtitleFetcher(settings)


# ============================================================================
# Uploaded subtitle files
# ============================================================================

# SRT uses a comma before the milliseconds, VTT a dot; hours are optional in VTT
CUE_TIMING_PATTERN = re.compile(
    r"^(?:\d+:)?\d{2}:\d{2}[.,]\d+\s*-->\s*(?:\d+:)?\d{2}:\d{2}[.,]\d+"
)
CUE_NUMBER_PATTERN = re.compile(r"^\d+$")
# Markup such as <i>, <c.colorE5E5E5> and inline <00:00:02.500> timestamps
TAG_REMOVAL_PATTERN = re.compile(r"<[^>]*>")
# Open a header or non-cue block in WebVTT, only as the first line of a block
VTT_BLOCK_MARKERS = ("WEBVTT", "NOTE", "STYLE", "REGION")


def subtitle_to_text(content: str) -> str:
    """
    Reduce SRT or WebVTT content to its caption text.

    Cue numbers, timing lines, the WebVTT header and NOTE/STYLE/REGION blocks
    are dropped; tags are removed and the remaining text is sanitized back to
    plain characters. Consecutive duplicate lines (common in auto-generated
    captions) are collapsed. Plain text passes through with whitespace
    normalized.

    Args:
        content: Raw subtitle file content

    Returns:
        Caption text joined with single spaces
    """
    lines: list[str] = []
    is_vtt = content.lstrip("\ufeff").lstrip().startswith("WEBVTT")
    in_block = False
    block_start = True

    for raw_line in content.splitlines():
        line = raw_line.strip().lstrip("\ufeff")

        if not line:
            in_block = False
            block_start = True
            continue
        opens_block, block_start = block_start, False
        if is_vtt and opens_block and line.split()[0] in VTT_BLOCK_MARKERS:
            in_block = True
            continue
        if in_block:
            continue
        if CUE_NUMBER_PATTERN.match(line) or CUE_TIMING_PATTERN.match(line):
            continue

        text_line = TAG_REMOVAL_PATTERN.sub("", line)
        # nh3 escapes &, < and >; the text goes to the model, not to a browser
        text_line = html.unescape(nh3.clean(text_line)).strip()
        if text_line and (not lines or lines[-1] != text_line):
            lines.append(text_line)

    return re.sub(r"\s+", " ", " ".join(lines)).strip()


def load_uploaded_subtitle(filename: str | None, raw: bytes, config: Settings) -> UploadedSubtitle:
    """
    Validate an uploaded subtitle file and extract its caption text.

    Args:
        filename: Client-supplied file name
        raw: File bytes; at most ``max_file_size + 1`` need to be supplied
        config: Settings with ``supported_formats`` and ``max_file_size``

    Raises:
        UploadRejectedError: Unsupported extension or undecodable content
        UploadTooLargeError: File larger than ``max_file_size``
    """
    path = Path(filename or "")
    extension = path.suffix.lower()
    supported = [("." + fmt.lower().lstrip(".")) for fmt in config.supported_formats]
    if extension not in supported:
        raise UploadRejectedError(
            f"Unsupported subtitle format '{extension or path.name}'",
            detail=f"Supported formats: {', '.join(supported)}",
        )

    if len(raw) > config.max_file_size:
        raise UploadTooLargeError(
            "Subtitle file is too large",
            detail=f"Maximum size is {config.max_file_size} bytes",
        )

    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UploadRejectedError("Subtitle file must be UTF-8 encoded", detail=str(e)) from e

    return UploadedSubtitle(
        content=content,
        title=path.stem,
        format=extension.lstrip("."),
        text=subtitle_to_text(content),
    )
