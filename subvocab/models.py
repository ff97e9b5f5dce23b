"""
Pydantic models for vocabulary annotations and subtitle downloads.

Field names on the wire follow the JSON schema the model is asked to produce
(camelCase such as ``nativeExpressions``); Python attributes are snake_case.
"""

from dataclasses import dataclass
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from subvocab.config import CEFR_LEVELS

# Error markers carried by degraded sentence analyses
PARSE_ERROR = "Failed to parse API response"
EMPTY_RESPONSE_ERROR = "Invalid API response: No content found"

# Free-text field the model sometimes answers with null
Text = Annotated[str, BeforeValidator(lambda value: "" if value is None else value)]


class AnnotationModel(BaseModel):
    """Base for annotation models: accept both aliases and field names, ignore extras."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WordMeaning(AnnotationModel):
    """One part-of-speech / definition pair."""

    part_of_speech: Text = Field(default="", alias="partOfSpeech")
    definition: Text = ""


class WordAnnotation(AnnotationModel):
    """A word worth explaining to the learner."""

    word: str
    phonetic: Text = ""
    difficulty: int = Field(default=1, description="Difficulty on the 1-6 scale (A1-C2)")
    meanings: list[WordMeaning] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)
    similar: list[str] = Field(default_factory=list)
    level: str | None = Field(default=None, description="CEFR label derived from difficulty")
    band: str | None = Field(default=None, description="Difficulty bucket: easy, medium or hard")

    @field_validator("difficulty", mode="before")
    @classmethod
    def cefr_to_difficulty(cls, value):
        """Accept a CEFR label such as "B2" in place of the 1-6 number."""
        if isinstance(value, str) and value.strip().upper() in CEFR_LEVELS:
            return CEFR_LEVELS.index(value.strip().upper()) + 1
        return value


class ExpressionAnnotation(AnnotationModel):
    """An idiom, slang term or native expression."""

    expression: str
    meaning: Text = ""
    usage: Text = ""
    examples: list[str] = Field(default_factory=list)


class SentenceAnalysis(AnnotationModel):
    """
    Annotation result for one sentence.

    ``error`` is None for a successful annotation. A degraded analysis keeps
    the sentence text, has empty lists and a populated ``error`` marker.
    """

    text: str
    words: list[WordAnnotation] = Field(default_factory=list)
    native_expressions: list[ExpressionAnnotation] = Field(
        default_factory=list, alias="nativeExpressions"
    )
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the sentence was annotated without degradation."""
        return self.error is None

    @classmethod
    def empty(cls, text: str) -> "SentenceAnalysis":
        """Analysis for a sentence with nothing to annotate."""
        return cls(text=text)

    @classmethod
    def degraded(cls, text: str, error: str) -> "SentenceAnalysis":
        """Analysis standing in for a failed enrichment."""
        return cls(text=text, error=error)


@dataclass
class SubtitleDownload:
    """
    Subtitle file fetched by yt-dlp.

    Attributes:
        content: Raw subtitle file content
        title: File name without extension (yt-dlp names it after the video title)
        language: Requested language code, or "auto"
        format: Subtitle format of ``content``
    """

    content: str
    title: str
    language: str
    format: str


@dataclass
class UploadedSubtitle:
    """
    Subtitle file uploaded by a client.

    Attributes:
        content: Raw file content
        title: File name without extension
        format: File extension without the dot (srt, vtt or txt)
        text: Caption text without cue numbers, timings or markup
    """

    content: str
    title: str
    format: str
    text: str
