"""
Error taxonomy for the subtitle vocabulary service.

Download and upload failures are raised as exceptions and rendered by the
FastAPI exception handlers. Model failures never appear here: they are folded
into a degraded SentenceAnalysis by the annotator.
"""


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP error envelope."""

    status_code: int = 500
    error: str = "server_error"

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class SubtitleFetchError(ServiceError):
    """Base class for failures of the subtitle download path."""

    error = "download_failed"


class InvalidInputError(SubtitleFetchError):
    """The request is missing a URL or the URL is not a YouTube URL."""

    status_code = 400
    error = "invalid_input"


class ToolMissingError(SubtitleFetchError):
    """yt-dlp could not be found or did not answer the version check."""

    error = "tool_missing"


class ToolExecutionError(SubtitleFetchError):
    """yt-dlp failed, timed out, produced too much output, or the output could not be read."""

    error = "tool_error"


class NetworkError(SubtitleFetchError):
    """yt-dlp could not reach the video page."""

    error = "network_error"


class SubtitlesNotFoundError(SubtitleFetchError):
    """The video has no subtitles in the requested language."""

    status_code = 404
    error = "not_found"


class UploadRejectedError(ServiceError):
    """An uploaded subtitle file has an unsupported extension."""

    status_code = 400
    error = "unsupported_format"


class UploadTooLargeError(UploadRejectedError):
    """An uploaded subtitle file exceeds the configured size limit."""

    status_code = 413
    error = "file_too_large"


class ModelNotConfiguredError(ServiceError):
    """No API key is configured for the chat completion API."""

    error = "model_not_configured"
