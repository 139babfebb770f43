from typing import Iterable, Sequence

from studygen.errors import NoContent
from studygen.models import (
    ArtifactKind,
    BuiltPrompt,
    Difficulty,
    GenerationOptions,
    OutputShape,
    QuestionType,
    SourceDocument,
    SummaryFormat,
    SummaryLength,
)

DOCUMENT_SEPARATOR = "\n\n--- Next Document ---\n\n"

# fixed per kind to bound output variance
FLASHCARD_TEMPERATURE = 0.7
PRACTICE_TEST_TEMPERATURE = 0.7
SUMMARY_TEMPERATURE = 0.5
TITLE_TEMPERATURE = 0.7

DEFAULT_FLASHCARD_RANGE = "10-15"
DEFAULT_QUESTION_RANGE = "5-10"

TITLE_MAX_LENGTH = 50
# characters taken from each document when suggesting a title
TITLE_EXCERPT_LENGTH = 1000

# question types that fit the JSON question array
STRUCTURED_QUESTION_TYPES = frozenset(
    {QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE}
)

_QUESTION_TYPE_NAMES = {
    QuestionType.MULTIPLE_CHOICE: "multiple choice",
    QuestionType.TRUE_FALSE: "true/false",
    QuestionType.SHORT_ANSWER: "short answer",
    QuestionType.ESSAY: "essay",
}

_DIFFICULTY_INSTRUCTIONS = {
    Difficulty.BASIC: (
        "Keep the cards at a basic level: definitions, key terms and core facts."
    ),
    Difficulty.INTERMEDIATE: (
        "Keep the cards at an intermediate level: connections between concepts "
        "and how they are applied."
    ),
    Difficulty.ADVANCED: (
        "Make the cards advanced: questions that require analysis and a deep "
        "understanding of the material."
    ),
    Difficulty.MIXED: "Mix basic, intermediate and advanced cards.",
}

_LENGTH_INSTRUCTIONS = {
    SummaryLength.BRIEF: "Create a brief summary focusing on critical points (1-2 pages).",
    SummaryLength.STANDARD: "Create a balanced summary of key concepts (2-3 pages).",
    SummaryLength.DETAILED: (
        "Create a comprehensive summary covering all concepts (4-6 pages)."
    ),
}

_FORMAT_INSTRUCTIONS = {
    SummaryFormat.BULLETS: "Use bullet points organized under clear headings.",
    SummaryFormat.PARAGRAPHS: (
        "Use well-structured paragraphs with clear topic sentences."
    ),
    SummaryFormat.OUTLINE: (
        "Use a hierarchical outline format with numbered sections and subsections."
    ),
}

FLASHCARD_CONTRACT = """OUTPUT FORMAT (mandatory):
Return ONLY a JSON array of objects with exactly the properties "question" and "answer", with no additional text or markdown.
Example: [{"question": "Vad är fotosyntesen?", "answer": "En process där växter omvandlar ljusenergi till kemisk energi."}]"""

QUESTION_CONTRACT = """OUTPUT FORMAT (mandatory):
Return ONLY a JSON array of question objects, with no additional text or markdown.
Each question object must have this exact structure:
{
  "question": "The question text",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctAnswer": "The correct option text (must match one of the options exactly)",
  "explanation": "Why this is the correct answer, or null"
}"""

WRITTEN_TEST_CONTRACT = """OUTPUT FORMAT (mandatory):
Write the test as markdown.
Start every question with a heading of the form "## Question N (type)".
Directly after each question write a line starting with "**Answer:**" followed by the answer."""

SUMMARY_CONTRACT = """OUTPUT FORMAT (mandatory):
Write the summary as markdown.
Start with a level-one heading "# " naming the subject and use "## " headings for each main section."""


def combine_documents(documents: "Iterable[SourceDocument]") -> "str":
    """
    joins the text of every non-blank document, each labeled with its
    filename. Raises NoContent when no document has text.
    """
    blocks = [
        f"Document: {doc.filename}\n{doc.extracted_text}"
        for doc in documents
        if doc.extracted_text and doc.extracted_text.strip()
    ]
    if not blocks:
        raise NoContent("No text content available in the source documents")

    return DOCUMENT_SEPARATOR.join(blocks)


def practice_test_shape(
    question_types: "Sequence[QuestionType] | None",
) -> "OutputShape":
    """
    a test made only of multiple choice and true/false questions is
    requested as a JSON array, anything else as marked text.
    """
    if not question_types:
        return OutputShape.QUESTION_ARRAY
    if all(qt in STRUCTURED_QUESTION_TYPES for qt in question_types):
        return OutputShape.QUESTION_ARRAY
    return OutputShape.MARKED_TEXT


def _extra(options: "GenerationOptions") -> "str":
    if not options.extra_instructions or not options.extra_instructions.strip():
        return ""
    return (
        "\n\nAdditional instructions (they never change the output format above):\n"
        f"{options.extra_instructions}"
    )


def _count_text(count: "int | None", default_range: "str") -> "str":
    return str(count) if count is not None else default_range


class PromptBuilder:
    """
    PromptBuilder turns source text and validated options into a system
    and user prompt. It performs no I/O and always produces the same
    prompt for the same input.

    Every prompt ends with a single output contract; caller supplied
    extra instructions are appended after it.
    """

    def __init__(self, language: "str" = "Swedish") -> "None":
        self._language = language

    def build(
        self,
        source_text: "str",
        kind: "ArtifactKind | str",
        options: "GenerationOptions | None" = None,
    ) -> "BuiltPrompt":
        if not source_text or not source_text.strip():
            raise NoContent("Source text is empty")

        options = options or GenerationOptions()
        kind = ArtifactKind(kind)
        if kind is ArtifactKind.FLASHCARDS:
            return self._flashcards(source_text, options)
        if kind is ArtifactKind.PRACTICE_TEST:
            return self._practice_test(source_text, options)
        return self._summary(source_text, options)

    def _flashcards(
        self, source_text: "str", options: "GenerationOptions"
    ) -> "BuiltPrompt":
        difficulty = Difficulty(options.difficulty or Difficulty.MIXED)
        system_prompt = (
            "You are an educational assistant that creates flashcards from "
            "study materials.\n"
            f"Create flashcards in {self._language} that help students learn "
            "the key concepts.\n"
            "Each flashcard should have a clear question and a concise answer.\n"
            f"{_DIFFICULTY_INSTRUCTIONS[difficulty]}\n\n"
            f"{FLASHCARD_CONTRACT}"
        )
        count = _count_text(options.count, DEFAULT_FLASHCARD_RANGE)
        user_prompt = (
            f"Create {count} flashcards from the following study material:\n\n"
            f"{source_text}\n\n"
            "Return ONLY the JSON array, no markdown formatting or additional text."
            f"{_extra(options)}"
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=FLASHCARD_TEMPERATURE,
            shape=OutputShape.FLASHCARD_ARRAY,
        )

    def _practice_test(
        self, source_text: "str", options: "GenerationOptions"
    ) -> "BuiltPrompt":
        question_types = [QuestionType(qt) for qt in options.question_types or ()]
        shape = practice_test_shape(question_types)
        count = _count_text(options.count, DEFAULT_QUESTION_RANGE)

        if shape is OutputShape.QUESTION_ARRAY:
            contract = QUESTION_CONTRACT
            test_style = "a practice test with multiple-choice questions"
            explanations = (
                'Include a detailed "explanation" for each answer.'
                if options.include_explanations
                else 'Set "explanation" to null for every question.'
            )
            closing = (
                "Return ONLY the JSON array, no markdown formatting or additional text."
            )
        else:
            contract = WRITTEN_TEST_CONTRACT
            test_style = "a written practice test"
            explanations = (
                'After each answer add a line starting with "**Explanation:**" '
                "that explains the answer."
                if options.include_explanations
                else "Provide the answers without detailed explanations."
            )
            closing = "Follow the heading and answer markers exactly."

        system_prompt = (
            "You are an educational assistant that creates practice tests from "
            "study materials.\n"
            f"Create {test_style} in {self._language}.\n"
            "Make the questions challenging but fair, covering the key concepts "
            "from the material.\n\n"
            f"{contract}"
        )
        user_prompt = (
            f"Create a practice test with {count} questions from the following "
            "study material.\n"
            f"{self._question_types_instruction(question_types)}\n"
            f"{explanations}\n\n"
            f"Study material:\n{source_text}\n\n"
            f"{closing}"
            f"{_extra(options)}"
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=PRACTICE_TEST_TEMPERATURE,
            shape=shape,
        )

    def _question_types_instruction(
        self, question_types: "Sequence[QuestionType]"
    ) -> "str":
        if not question_types:
            return "Use only multiple choice questions with 4 options each."
        if QuestionType.MIXED in question_types:
            return (
                "Include a mix of question types "
                "(multiple choice, true/false, short answer, essay)."
            )

        names = [_QUESTION_TYPE_NAMES[qt] for qt in dict.fromkeys(question_types)]
        instruction = f"Include only these question types: {', '.join(names)}."
        if QuestionType.MULTIPLE_CHOICE in question_types:
            instruction += " Multiple choice questions have 4 options."
        if QuestionType.TRUE_FALSE in question_types:
            instruction += (
                " True/false questions have exactly two options, true and false, "
                f"written in {self._language}."
            )
        return instruction

    def _summary(
        self, source_text: "str", options: "GenerationOptions"
    ) -> "BuiltPrompt":
        length = SummaryLength(options.summary_length or SummaryLength.STANDARD)
        style = SummaryFormat(options.summary_format or SummaryFormat.BULLETS)
        system_prompt = (
            "You are an educational assistant that creates summaries of study "
            "materials.\n"
            f"Create a clear, structured summary in {self._language} that captures "
            "the key concepts and important details.\n"
            f"{_FORMAT_INSTRUCTIONS[style]}\n"
            f"{_LENGTH_INSTRUCTIONS[length]}\n"
            "Focus on what students need to know for studying and test "
            "preparation.\n\n"
            f"{SUMMARY_CONTRACT}"
        )
        user_prompt = (
            "Create a summary of the following study material:\n\n"
            f"{source_text}"
            f"{_extra(options)}"
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=SUMMARY_TEMPERATURE,
            shape=OutputShape.MARKED_TEXT,
        )

    def build_title_prompt(
        self, documents: "Iterable[SourceDocument]"
    ) -> "BuiltPrompt":
        excerpts = [
            doc.extracted_text[:TITLE_EXCERPT_LENGTH]
            for doc in documents
            if doc.extracted_text and doc.extracted_text.strip()
        ]
        if not excerpts:
            raise NoContent("No text content available to suggest a title from")

        system_prompt = (
            "You are an educational assistant that creates concise, descriptive "
            "test names.\n"
            "Based on the content provided, suggest a short, clear test name in "
            f"{self._language} (max {TITLE_MAX_LENGTH} characters).\n"
            "The name should indicate the subject or topic being covered.\n"
            "Respond with ONLY the test name, nothing else."
        )
        user_prompt = (
            "Based on this study material, suggest a concise test name "
            f"(max {TITLE_MAX_LENGTH} characters):\n\n" + "\n\n".join(excerpts)
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=TITLE_TEMPERATURE,
            shape=OutputShape.MARKED_TEXT,
        )
