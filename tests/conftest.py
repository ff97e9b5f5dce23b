"""Shared pytest fixtures for subtitle download and vocabulary analysis tests."""

import json
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from subvocab.analysis import VocabularyAnalyzer, get_analyzer
from subvocab.config import Settings
from subvocab.main import app, limiter
from subvocab.model_client import VocabularyAnnotator
from subvocab.service import SubtitleFetcher, get_fetcher
from subvocab.tool import get_tool

SRT_CONTENT = """1
00:00:00,000 --> 00:00:03,500
Hello world

2
00:00:03,500 --> 00:00:07,000
This is a <i>test</i> subtitle
"""


class FakeTool:
    """Stand-in for YtDlpTool that never spawns a process."""

    binary = "yt-dlp"

    def __init__(self, available: bool = True, version: str = "2024.10.07"):
        self.available = available
        self._version = version
        self.calls = 0

    def is_available(self) -> bool:
        self.calls += 1
        return self.available

    def version(self) -> str | None:
        return self._version if self.available else None

    def reset(self) -> None:
        pass


def completed(command, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=command, returncode=returncode, stdout=stdout, stderr=stderr)


def fake_ytdlp(title="My Video.en", content=SRT_CONTENT, extension="srt"):
    """
    Build a subprocess.run replacement that writes a subtitle file the way yt-dlp does.

    The file lands in the directory of the "-o" output template.
    """

    def run(command, **kwargs):
        template = command[command.index("-o") + 1]
        out_dir = Path(template).parent
        (out_dir / f"{title}.{extension}").write_text(content, encoding="utf-8")
        return completed(command)

    return run


def analysis_json(sentence: str, words=None, expressions=None) -> str:
    """Model reply for one sentence."""
    return json.dumps(
        {
            "text": sentence,
            "words": words if words is not None else [],
            "nativeExpressions": expressions if expressions is not None else [],
        }
    )


UBIQUITOUS = {
    "word": "ubiquitous",
    "phonetic": "/juːˈbɪkwɪtəs/",
    "difficulty": 5,
    "meanings": [{"partOfSpeech": "adj.", "definition": "found everywhere"}],
    "examples": ["Phones are ubiquitous."],
    "similar": ["omnipresent"],
}

PIECE_OF_CAKE = {
    "expression": "a piece of cake",
    "meaning": "very easy",
    "usage": "informal, about tasks",
    "examples": ["The test was a piece of cake."],
}


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment: scratch dir under tmp_path, no pacing."""
    return Settings(
        temp_dir=str(tmp_path / "scratch"),
        api_key="test-key",
        analysis_pacing_seconds=0,
        rate_limit_enabled=False,
    )


@pytest.fixture
def tool():
    return FakeTool()


@pytest.fixture
def fetcher(settings, tool):
    return SubtitleFetcher(settings, tool=tool)


@pytest.fixture
def model_client():
    """ModelClient double; set ``complete.side_effect`` or ``return_value`` per test."""
    client = MagicMock()
    client.configured = True
    client.complete = AsyncMock()
    return client


@pytest.fixture
def annotator(settings, model_client):
    return VocabularyAnnotator(settings, client=model_client)


@pytest.fixture
def analyzer(settings, annotator):
    return VocabularyAnalyzer(settings, annotator=annotator)


@pytest.fixture
def client(fetcher, analyzer, tool):
    """FastAPI TestClient with yt-dlp and the model API replaced."""
    app.dependency_overrides[get_fetcher] = lambda: fetcher
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    app.dependency_overrides[get_tool] = lambda: tool
    rate_limiting = limiter.enabled
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = rate_limiting
