import argparse
import dataclasses
from pathlib import Path
from typing import Any

from studygen.config import Config
from studygen.models import (
    ArtifactKind,
    Difficulty,
    GeneratedArtifact,
    GenerationOptions,
    GenerationRequest,
    QuestionType,
    SourceDocument,
    StudySource,
    SummaryFormat,
    SummaryLength,
)

COMMAND_KINDS = {
    "flashcards": ArtifactKind.FLASHCARDS,
    "practice-test": ArtifactKind.PRACTICE_TEST,
    "summary": ArtifactKind.SUMMARY,
}


def _values(enum_type: "type[Any]") -> "list[str]":
    return [member.value for member in enum_type]


def parse_args(argv: "list[str] | None" = None) -> "tuple[Config, argparse.Namespace]":
    parser = argparse.ArgumentParser(
        prog="studygen",
        description="Generate flashcards, practice tests and summaries from text files",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: warning)",
    )
    parser.add_argument(
        "--log.json",
        dest="log_json",
        action="store_true",
        help="Render logs as JSON",
    )
    parser.add_argument(
        "--metrics.textfile",
        dest="metrics_textfile",
        default="",
        help="Write Prometheus metrics of the run to this file",
    )
    parser.add_argument(
        "--provider",
        dest="provider",
        default=None,
        help="Preferred provider, overrides STUDYGEN_DEFAULT_PROVIDER",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    for command in (*COMMAND_KINDS, "title"):
        sub = commands.add_parser(command)
        sub.add_argument("files", nargs="+", type=Path, help="Extracted text files")
        sub.add_argument(
            "--name",
            default=None,
            help="Name of the study source (default: first file name)",
        )
        if command == "title":
            continue

        sub.add_argument(
            "--instructions",
            default=None,
            help="Extra instructions appended to the prompt",
        )
        if command in ("flashcards", "practice-test"):
            sub.add_argument("--count", type=int, default=None)
        if command == "flashcards":
            sub.add_argument("--difficulty", choices=_values(Difficulty))
        if command == "practice-test":
            sub.add_argument(
                "--question-type",
                dest="question_types",
                action="append",
                choices=_values(QuestionType),
            )
            sub.add_argument(
                "--no-explanations",
                dest="include_explanations",
                action="store_false",
            )
        if command == "summary":
            sub.add_argument("--length", choices=_values(SummaryLength))
            sub.add_argument("--format", choices=_values(SummaryFormat))

    args = parser.parse_args(argv)
    config = Config.from_env()
    config.log_level = args.log_level
    config.log_json = args.log_json
    config.metrics_textfile = args.metrics_textfile
    if args.provider:
        config.default_provider = args.provider.lower()
    return config, args


def build_source(args: "argparse.Namespace") -> "StudySource":
    documents = tuple(
        SourceDocument(filename=path.name, extracted_text=path.read_text("utf-8"))
        for path in args.files
    )
    return StudySource(name=args.name or args.files[0].stem, documents=documents)


def build_request(args: "argparse.Namespace") -> "GenerationRequest":
    options = GenerationOptions(
        count=getattr(args, "count", None),
        difficulty=getattr(args, "difficulty", None),
        question_types=(
            tuple(args.question_types)
            if getattr(args, "question_types", None)
            else None
        ),
        include_explanations=getattr(args, "include_explanations", True),
        summary_length=getattr(args, "length", None),
        summary_format=getattr(args, "format", None),
        extra_instructions=args.instructions,
    )
    return GenerationRequest(
        kind=COMMAND_KINDS[args.command],
        source=build_source(args),
        options=options,
    )


def artifact_to_dict(artifact: "GeneratedArtifact") -> "dict[str, Any]":
    data = dataclasses.asdict(artifact)
    data["kind"] = artifact.kind.value
    return data
