"""
Shared utility functions for the subtitle vocabulary service.
"""

import re
import uuid

# Scheme optional; host is youtube.com, www.youtube.com or youtu.be; non-empty path
YOUTUBE_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+$")


def is_valid_youtube_url(url: str | None) -> bool:
    """
    Check that a URL has the shape of a YouTube video URL.

    This is a shape check only; whether the video exists is left to yt-dlp.

    Examples:
        >>> is_valid_youtube_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ")
        True
        >>> is_valid_youtube_url("youtu.be/dQw4w9WgXcQ")
        True
        >>> is_valid_youtube_url("https://youtube.com/")
        False
        >>> is_valid_youtube_url("ftp://example.com")
        False
    """
    if not url:
        return False
    return YOUTUBE_URL_PATTERN.match(url) is not None


def new_job_id() -> str:
    """Return a process-unique identifier for a download job."""
    return str(uuid.uuid4())


def sanitize_for_log(input_str: str) -> str:
    """
    Sanitize user input for logging to prevent log injection.

    Replaces newlines, carriage returns and tabs with escaped representations.
    """
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def truncate(text: str, limit: int = 80) -> str:
    """Shorten text for log lines."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
