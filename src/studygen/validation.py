import dataclasses
from enum import Enum
from typing import TypeVar

from studygen.errors import ValidationError
from studygen.models import (
    ArtifactKind,
    Difficulty,
    GenerationOptions,
    GenerationRequest,
    QuestionType,
    SummaryFormat,
    SummaryLength,
)

MAX_EXTRA_INSTRUCTIONS = 5000
MAX_QUESTION_TYPES = 10
MIN_COUNT = 1
MAX_COUNT = 100

E = TypeVar("E", bound=Enum)


def _coerce(enum_type: "type[E]", value: "object", label: "str") -> "E":
    try:
        return enum_type(value)
    except ValueError:
        valid = ", ".join(str(member.value) for member in enum_type)
        raise ValidationError(
            f"Invalid {label} '{value}'. Valid values are: {valid}"
        ) from None


def _optional(enum_type: "type[E]", value: "object", label: "str") -> "E | None":
    return None if value is None else _coerce(enum_type, value, label)


def validate_options(options: "GenerationOptions") -> "GenerationOptions":
    """
    checks every present option against its domain and returns a copy
    with enum members in place of raw strings.
    """
    count = options.count
    if count is not None:
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError("count must be an integer")
        if not MIN_COUNT <= count <= MAX_COUNT:
            raise ValidationError(
                f"count must be between {MIN_COUNT} and {MAX_COUNT}, got {count}"
            )

    question_types = None
    if options.question_types is not None:
        if len(options.question_types) == 0:
            raise ValidationError("At least one question type must be specified")
        if len(options.question_types) > MAX_QUESTION_TYPES:
            raise ValidationError(
                f"Cannot specify more than {MAX_QUESTION_TYPES} question types"
            )
        question_types = tuple(
            _coerce(QuestionType, qt, "question type") for qt in options.question_types
        )

    extra = options.extra_instructions
    if extra is not None and len(extra) > MAX_EXTRA_INSTRUCTIONS:
        raise ValidationError(
            f"Extra instructions cannot exceed {MAX_EXTRA_INSTRUCTIONS} characters"
        )

    return dataclasses.replace(
        options,
        difficulty=_optional(Difficulty, options.difficulty, "difficulty"),
        question_types=question_types,
        summary_length=_optional(
            SummaryLength, options.summary_length, "summary length"
        ),
        summary_format=_optional(
            SummaryFormat, options.summary_format, "summary format"
        ),
    )


def validate_request(request: "GenerationRequest") -> "GenerationRequest":
    return dataclasses.replace(
        request,
        kind=_coerce(ArtifactKind, request.kind, "artifact kind"),
        options=validate_options(request.options),
    )
