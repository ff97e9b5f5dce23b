"""
yt-dlp availability check.

The result of the first ``yt-dlp --version`` call is kept for the lifetime of
the process: a tool installed after startup stays "missing" until restart or
until ``reset()`` is called.
"""

import logging
import subprocess

from subvocab.config import Settings

logger = logging.getLogger(__name__)

VERSION_CHECK_TIMEOUT = 10


class YtDlpTool:
    """Memoized gate on the yt-dlp executable."""

    def __init__(self, config: Settings | None = None):
        self.config = config or Settings()
        self._available: bool | None = None
        self._version: str | None = None

    @property
    def binary(self) -> str:
        return self.config.ytdlp_binary

    def is_available(self) -> bool:
        """Return whether yt-dlp answered the version check, probing only once."""
        if self._available is not None:
            return self._available

        try:
            result = subprocess.run(
                [self.binary, "--version"],
                capture_output=True,
                text=True,
                timeout=VERSION_CHECK_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"yt-dlp is not installed or not in PATH: {e}")
            self._available = False
            return False

        if result.returncode != 0:
            logger.error(
                f"yt-dlp version check failed with exit code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
            self._available = False
            return False

        self._version = result.stdout.strip()
        self._available = True
        logger.info(f"Found yt-dlp version: {self._version}")
        return True

    def version(self) -> str | None:
        """Return the reported yt-dlp version, or None when it is not installed."""
        if self.is_available():
            return self._version
        return None

    def reset(self) -> None:
        """Forget the cached result so the next call probes again."""
        self._available = None
        self._version = None


_tool: YtDlpTool | None = None


def get_tool() -> YtDlpTool:
    """
    Get the process-wide YtDlpTool instance.

    Used as a FastAPI dependency so tests can override it.
    """
    global _tool
    if _tool is None:
        from subvocab.config import settings

        _tool = YtDlpTool(settings)
    return _tool
