from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Union


class ArtifactKind(str, Enum):
    FLASHCARDS = "Flashcards"
    PRACTICE_TEST = "PracticeTest"
    SUMMARY = "Summary"


class Difficulty(str, Enum):
    BASIC = "Basic"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    MIXED = "Mixed"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MultipleChoice"
    TRUE_FALSE = "TrueFalse"
    SHORT_ANSWER = "ShortAnswer"
    ESSAY = "Essay"
    MIXED = "Mixed"


class SummaryLength(str, Enum):
    BRIEF = "Brief"
    STANDARD = "Standard"
    DETAILED = "Detailed"


class SummaryFormat(str, Enum):
    BULLETS = "Bullets"
    PARAGRAPHS = "Paragraphs"
    OUTLINE = "Outline"


class OutputShape(str, Enum):
    """
    OutputShape is the single machine-parsable shape a prompt
    instructs the model to emit.
    """

    FLASHCARD_ARRAY = "flashcard_array"
    QUESTION_ARRAY = "question_array"
    MARKED_TEXT = "marked_text"


@dataclass(frozen=True, slots=True)
class SourceDocument:
    filename: "str"
    extracted_text: "str | None" = None


@dataclass(frozen=True, slots=True)
class StudySource:
    """
    StudySource is the document/test aggregate that a generation
    request draws its text from. It is supplied by the caller.
    """

    name: "str"
    documents: "tuple[SourceDocument, ...]" = ()


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    # flashcards or questions to generate, None lets the model decide
    count: "int | None" = None
    difficulty: "Difficulty | str | None" = None
    question_types: "tuple[QuestionType | str, ...] | None" = None
    include_explanations: "bool" = True
    summary_length: "SummaryLength | str | None" = None
    summary_format: "SummaryFormat | str | None" = None
    extra_instructions: "str | None" = None


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    kind: "ArtifactKind | str"
    source: "StudySource | None"
    options: "GenerationOptions" = field(default_factory=GenerationOptions)


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    system_prompt: "str"
    user_prompt: "str"
    # 0.0 is deterministic, 1.0 is creative
    temperature: "float" = 0.7
    max_tokens: "int | None" = None
    enable_caching: "bool" = True


@dataclass(frozen=True, slots=True)
class UsageReport:
    """
    UsageReport is the provider-agnostic token accounting of a
    single call. Cache counters are informational and never count
    against the daily budget.
    """

    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    cache_write_tokens: "int" = 0

    @property
    def total_tokens(self) -> "int":
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    id: "str"
    text: "str"
    provider: "str"
    model: "str"
    stop_reason: "str | None"
    usage: "UsageReport"


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """
    UsageRecord holds the cumulative token usage of one UTC
    calendar day.
    """

    date: "date"
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    call_count: "int" = 0
    last_updated: "datetime | None" = None

    @property
    def total_tokens(self) -> "int":
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class BuiltPrompt:
    system_prompt: "str"
    user_prompt: "str"
    temperature: "float"
    shape: "OutputShape"


@dataclass(frozen=True, slots=True)
class Flashcard:
    question: "str"
    answer: "str"
    order: "int"


@dataclass(frozen=True, slots=True)
class PracticeQuestion:
    question: "str"
    options: "tuple[str, ...]"
    correct_answer: "str"
    explanation: "str | None"
    order: "int"


@dataclass(frozen=True, slots=True)
class FlashcardSet:
    cards: "tuple[Flashcard, ...]"
    # unmodified model output, kept for auditing
    raw_text: "str"
    title: "str" = ""
    provider: "str" = ""
    usage: "UsageReport" = field(default_factory=UsageReport)

    kind = ArtifactKind.FLASHCARDS


@dataclass(frozen=True, slots=True)
class PracticeQuestionSet:
    questions: "tuple[PracticeQuestion, ...]"
    raw_text: "str"
    title: "str" = ""
    provider: "str" = ""
    usage: "UsageReport" = field(default_factory=UsageReport)

    kind = ArtifactKind.PRACTICE_TEST


@dataclass(frozen=True, slots=True)
class WrittenPracticeTest:
    """
    WrittenPracticeTest is a free-text practice test with
    short-answer or essay questions and an answer key.
    """

    text: "str"
    raw_text: "str"
    title: "str" = ""
    provider: "str" = ""
    usage: "UsageReport" = field(default_factory=UsageReport)

    kind = ArtifactKind.PRACTICE_TEST


@dataclass(frozen=True, slots=True)
class SummaryText:
    text: "str"
    raw_text: "str"
    title: "str" = ""
    provider: "str" = ""
    usage: "UsageReport" = field(default_factory=UsageReport)

    kind = ArtifactKind.SUMMARY


GeneratedArtifact = Union[
    FlashcardSet, PracticeQuestionSet, WrittenPracticeTest, SummaryText
]
