"""
Chat completion client and vocabulary annotator.

``ModelClient`` is a thin wrapper over the OpenAI SDK pointed at any
OpenAI-compatible endpoint (DeepSeek by default). ``VocabularyAnnotator``
turns one sentence into a SentenceAnalysis and never raises: transport and
parse failures come back as degraded analyses.
"""

import json
import logging

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion
from pydantic import ValidationError

from subvocab.config import Settings
from subvocab.errors import ModelNotConfiguredError
from subvocab.models import EMPTY_RESPONSE_ERROR, PARSE_ERROR, SentenceAnalysis
from subvocab.utils import truncate

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a language analysis assistant that helps English learners (CEFR levels {band}) "
    "understand vocabulary in video subtitles. For each sentence, identify important or "
    "difficult words based on the user's level, and provide detailed information about them. "
    "Also identify any idioms, slang, or native expressions and explain how native speakers "
    "use them. You MUST ONLY respond with a valid JSON object and nothing else. Do not include "
    "any explanatory text or markdown formatting."
)

USER_PROMPT = (
    "Analyze the following subtitle text for a student with English level {level_min}-{level_max} "
    "({band}): {sentence}\n\n"
    "Provide the analysis ONLY in JSON format with the following structure. Do not include any "
    "explanatory text before or after the JSON:\n{schema}"
)


def example_schema(sentence: str) -> str:
    """JSON example shown to the model, with the sentence filled in."""
    example = {
        "text": sentence,
        "words": [
            {
                "word": "difficult_word",
                "phonetic": "/fəˈnetɪk/",
                "difficulty": 4,
                "meanings": [
                    {"partOfSpeech": "n.", "definition": "meaning as noun"},
                    {"partOfSpeech": "v.", "definition": "meaning as verb"},
                ],
                "examples": ["Example sentence using the word."],
                "similar": ["synonym1", "synonym2", "related_phrase"],
            }
        ],
        "nativeExpressions": [
            {
                "expression": "native_expression_or_idiom",
                "meaning": "what this expression means",
                "usage": "how and when native speakers use this expression",
                "examples": ["Example sentence showing usage"],
            }
        ],
    }
    return json.dumps(example, indent=2, ensure_ascii=False)


class ModelClient:
    """Chat completion client for an OpenAI-compatible API."""

    def __init__(self, config: Settings | None = None):
        self.config = config or Settings()
        self._client: AsyncOpenAI | None = None

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.configured:
                raise ModelNotConfiguredError(
                    "API client not initialized. API key may be missing."
                )
            # Retries are disabled: a failed call is reported once
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base_url,
                timeout=self.config.api_timeout,
                max_retries=0,
            )
        return self._client

    async def complete(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str | None:
        """
        Run a chat completion and return the first choice's text.

        The request goes to ``api_endpoint`` relative to ``api_base_url`` so
        providers with a non-standard completion path work unchanged.

        Returns:
            The assistant's reply, or None when the response has no content
        """
        client = self._get_client()
        response = await client.post(
            self.config.api_endpoint,
            cast_to=ChatCompletion,
            body={
                "model": self.config.api_model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        if not response.choices:
            return None
        return response.choices[0].message.content


class VocabularyAnnotator:
    """Annotates single sentences with difficult words and native expressions."""

    def __init__(self, config: Settings | None = None, client: ModelClient | None = None):
        self.config = config or Settings()
        self.client = client or ModelClient(self.config)

    @property
    def configured(self) -> bool:
        return self.client.configured

    def build_messages(self, sentence: str) -> list[dict[str, str]]:
        """Build the system and user messages for one sentence."""
        band = self.config.level_band
        return [
            {"role": "system", "content": SYSTEM_PROMPT.format(band=band)},
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    level_min=self.config.user_level_min,
                    level_max=self.config.user_level_max,
                    band=band,
                    sentence=json.dumps(sentence, ensure_ascii=False),
                    schema=example_schema(sentence),
                ),
            },
        ]

    def parse_response(self, sentence: str, content: str) -> SentenceAnalysis:
        """
        Parse the model's reply strictly as JSON.

        The analysis always carries the source sentence, whatever the model
        echoed back in its ``text`` field.
        """
        try:
            data = json.loads(content.strip())
            if isinstance(data, dict):
                data["text"] = sentence
            return SentenceAnalysis.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error parsing API response as JSON: {e}")
            logger.info(f"Raw response: {truncate(content, 500)}")
            return SentenceAnalysis.degraded(sentence, PARSE_ERROR)

    async def annotate(self, sentence: str) -> SentenceAnalysis:
        """
        Annotate one sentence.

        Returns:
            The parsed analysis, an empty analysis for a blank sentence, or a
            degraded analysis when the call or the parse fails
        """
        if not sentence or not sentence.strip():
            return SentenceAnalysis.empty(sentence)

        try:
            content = await self.client.complete(
                self.build_messages(sentence),
                temperature=self.config.model_temperature,
                max_tokens=self.config.model_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error annotating sentence '{truncate(sentence)}': {e}")
            return SentenceAnalysis.degraded(sentence, str(e) or type(e).__name__)

        if not content:
            logger.error(f"Empty model response for sentence '{truncate(sentence)}'")
            return SentenceAnalysis.degraded(sentence, EMPTY_RESPONSE_ERROR)

        return self.parse_response(sentence, content)
