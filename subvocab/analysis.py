"""
Sentence-batched vocabulary analysis.

Text is split into sentences and each sentence is sent to the model on its
own, strictly one after another with a fixed pause after every call. The
pause is the rate limit against the upstream API; do not parallelize.
"""

import asyncio
import logging
import re

from subvocab.config import Settings, cefr_label
from subvocab.errors import ModelNotConfiguredError
from subvocab.model_client import VocabularyAnnotator
from subvocab.models import SentenceAnalysis

logger = logging.getLogger(__name__)

# Whitespace preceded by sentence-ending punctuation. "Mr. Smith" over-splits.
SENTENCE_BOUNDARY = re.compile(r"(?<=[.?!])\s+")

DEFAULT_MAX_SENTENCES = 50


def segment_sentences(text: str, limit: int = DEFAULT_MAX_SENTENCES) -> list[str]:
    """
    Split text into sentences, keeping the punctuation with its sentence.

    Args:
        text: Free text, typically subtitle content
        limit: Number of sentences kept; the rest are dropped

    Returns:
        Non-blank sentences in their original order

    Examples:
        >>> segment_sentences("Hi there. How are you?  Fine!")
        ['Hi there.', 'How are you?', 'Fine!']
    """
    sentences = [part for part in SENTENCE_BOUNDARY.split(text) if part.strip()]
    return sentences[:limit]


def filter_words(analysis: SentenceAnalysis, config: Settings) -> SentenceAnalysis:
    """
    Apply the word-analysis rules to an annotated sentence.

    Drops words shorter than ``word_min_length``, words on the ignore list and
    words below ``difficulty_threshold``, and fills in the CEFR level and
    difficulty band of the words that remain.
    """
    if not analysis.ok or not analysis.words:
        return analysis

    ignored = {word.lower() for word in config.ignored_words}
    kept = []
    for word in analysis.words:
        if len(word.word) < config.word_min_length:
            continue
        if word.word.lower() in ignored:
            continue
        if word.difficulty < config.difficulty_threshold:
            continue
        kept.append(
            word.model_copy(
                update={
                    "level": cefr_label(word.difficulty),
                    "band": config.band_for(word.difficulty),
                }
            )
        )
    return analysis.model_copy(update={"words": kept})


class VocabularyAnalyzer:
    """Runs the annotator over every sentence of a text."""

    def __init__(
        self, config: Settings | None = None, annotator: VocabularyAnnotator | None = None
    ):
        self.config = config or Settings()
        self.annotator = annotator or VocabularyAnnotator(self.config)

    async def analyze(self, text: str) -> list[SentenceAnalysis]:
        """
        Annotate every sentence of a text.

        A failed sentence yields a degraded entry in its place; it never
        aborts the others.

        Args:
            text: Subtitle text to analyze

        Returns:
            One SentenceAnalysis per sentence, in sentence order, at most
            ``analysis_max_sentences`` entries

        Raises:
            ModelNotConfiguredError: There is text to analyze but no API key
        """
        sentences = segment_sentences(text or "", self.config.analysis_max_sentences)
        if not sentences:
            return []

        if not self.annotator.configured:
            raise ModelNotConfiguredError(
                "API client not initialized. API key may be missing."
            )

        logger.info(f"Analyzing {len(sentences)} sentences")

        results: list[SentenceAnalysis] = []
        for sentence in sentences:
            analysis = await self.annotator.annotate(sentence)
            results.append(filter_words(analysis, self.config))
            await asyncio.sleep(self.config.analysis_pacing_seconds)

        degraded = sum(1 for analysis in results if not analysis.ok)
        if degraded:
            logger.warning(f"{degraded} of {len(results)} sentences could not be annotated")
        return results


def get_analyzer() -> VocabularyAnalyzer:
    """
    Get a configured VocabularyAnalyzer instance.

    This function is used as a FastAPI dependency for dependency injection.
    """
    from subvocab.config import settings

    return VocabularyAnalyzer(settings)
