import json
import re
from typing import Any

import structlog

from studygen.errors import ParseError, ParseErrorReason
from studygen.models import (
    ArtifactKind,
    Flashcard,
    FlashcardSet,
    GeneratedArtifact,
    OutputShape,
    PracticeQuestion,
    PracticeQuestionSet,
    SummaryText,
    WrittenPracticeTest,
)

logger = structlog.get_logger()

# opening fence with an optional language tag, e.g. ```json
_OPENING_FENCE = re.compile(r"\A```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = "```"

DEFAULT_SHAPES: "dict[ArtifactKind, OutputShape]" = {
    ArtifactKind.FLASHCARDS: OutputShape.FLASHCARD_ARRAY,
    ArtifactKind.PRACTICE_TEST: OutputShape.QUESTION_ARRAY,
    ArtifactKind.SUMMARY: OutputShape.MARKED_TEXT,
}

ALLOWED_SHAPES: "dict[ArtifactKind, frozenset[OutputShape]]" = {
    ArtifactKind.FLASHCARDS: frozenset({OutputShape.FLASHCARD_ARRAY}),
    ArtifactKind.PRACTICE_TEST: frozenset(
        {OutputShape.QUESTION_ARRAY, OutputShape.MARKED_TEXT}
    ),
    ArtifactKind.SUMMARY: frozenset({OutputShape.MARKED_TEXT}),
}


def strip_fences(raw_text: "str") -> "str":
    """
    trims the text and removes one markdown code fence wrapping all of
    it. A fence that opens or closes only part of the text is content and
    stays. Nested or doubled fences are left alone.
    """
    text = raw_text.strip()
    wrapped = (
        len(text) >= 2 * len(_CLOSING_FENCE)
        and text.startswith(_CLOSING_FENCE)
        and text.endswith(_CLOSING_FENCE)
    )
    if not wrapped:
        return text

    text = _OPENING_FENCE.sub("", text, count=1)
    return text[: -len(_CLOSING_FENCE)].strip()


def _load_array(text: "str") -> "list[Any]":
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            ParseErrorReason.UNPARSABLE,
            f"model output is not valid JSON: {exc.msg} at position {exc.pos}",
        ) from exc

    if not isinstance(data, list):
        raise ParseError(
            ParseErrorReason.UNPARSABLE,
            f"expected a JSON array, got {type(data).__name__}",
        )
    return data


def _fields(item: "Any") -> "dict[str, Any] | None":
    # property names match case-insensitively
    if not isinstance(item, dict):
        return None
    return {str(key).lower(): value for key, value in item.items()}


def _text(value: "Any") -> "str | None":
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


class ResponseParser:
    """
    ResponseParser turns raw model output into a validated artifact.

    Array items that are incomplete are dropped and the survivors are
    numbered 0..n-1 in the order they appeared. Nothing beyond fence
    stripping is repaired and the provider is never called again.
    """

    def parse(
        self,
        kind: "ArtifactKind | str",
        raw_text: "str",
        shape: "OutputShape | str | None" = None,
    ) -> "GeneratedArtifact":
        kind = ArtifactKind(kind)
        shape = OutputShape(shape) if shape is not None else DEFAULT_SHAPES[kind]
        if shape not in ALLOWED_SHAPES[kind]:
            raise ValueError(f"{kind.value} cannot be parsed as {shape.value}")

        text = strip_fences(raw_text or "")
        logger.debug("parsing_response", kind=kind.value, length=len(text))

        if shape is OutputShape.FLASHCARD_ARRAY:
            return self.parse_flashcards(text, raw_text)
        if shape is OutputShape.QUESTION_ARRAY:
            return self.parse_questions(text, raw_text)

        if not text:
            raise ParseError(ParseErrorReason.EMPTY_SET, "model output is empty")
        if kind is ArtifactKind.SUMMARY:
            return SummaryText(text=text, raw_text=raw_text)
        return WrittenPracticeTest(text=text, raw_text=raw_text)

    def parse_flashcards(self, text: "str", raw_text: "str") -> "FlashcardSet":
        items = _load_array(text)
        cards: "list[Flashcard]" = []
        seen: "set[tuple[str, str]]" = set()

        for item in items:
            fields = _fields(item)
            if fields is None:
                continue
            question = _text(fields.get("question"))
            answer = _text(fields.get("answer"))
            if question is None or answer is None:
                continue
            if (question, answer) in seen:
                continue

            seen.add((question, answer))
            cards.append(Flashcard(question=question, answer=answer, order=len(cards)))

        _log_dropped("flashcards", len(items), len(cards))
        if not cards:
            raise ParseError(
                ParseErrorReason.EMPTY_SET, "no valid flashcards in model output"
            )
        return FlashcardSet(cards=tuple(cards), raw_text=raw_text)

    def parse_questions(self, text: "str", raw_text: "str") -> "PracticeQuestionSet":
        items = _load_array(text)
        questions: "list[PracticeQuestion]" = []

        for item in items:
            fields = _fields(item)
            if fields is None:
                continue
            question = _text(fields.get("question"))
            correct = _text(fields.get("correctanswer"))
            raw_options = fields.get("options")
            if question is None or correct is None or not isinstance(raw_options, list):
                continue

            options = tuple(
                option
                for option in (_text(value) for value in raw_options)
                if option is not None
            )
            # an empty option invalidates the whole question
            if len(options) < 2 or len(options) != len(raw_options):
                continue

            if correct not in options:
                raise ParseError(
                    ParseErrorReason.SCHEMA_VIOLATION,
                    f"correct answer of question {len(questions)} does not match "
                    "any of its options",
                )

            questions.append(
                PracticeQuestion(
                    question=question,
                    options=options,
                    correct_answer=correct,
                    explanation=_text(fields.get("explanation")),
                    order=len(questions),
                )
            )

        _log_dropped("questions", len(items), len(questions))
        if not questions:
            raise ParseError(
                ParseErrorReason.EMPTY_SET, "no valid questions in model output"
            )
        return PracticeQuestionSet(questions=tuple(questions), raw_text=raw_text)


def _log_dropped(item_type: "str", received: "int", kept: "int") -> "None":
    if kept < received:
        logger.warning(
            "invalid_items_dropped",
            item_type=item_type,
            received=received,
            kept=kept,
        )
