import asyncio
import dataclasses
import time
from datetime import datetime
from typing import Callable, cast

import structlog

from studygen.config import Config
from studygen.errors import (
    BudgetExceeded,
    NoContent,
    NoDocuments,
    NoExtractedText,
    NoProviderConfigured,
    ParseError,
    ProviderError,
    ValidationError,
)
from studygen.ledger import UsageLedger, create_ledger, utc_now
from studygen.metrics import GenerationMetrics
from studygen.models import (
    ArtifactKind,
    FlashcardSet,
    GeneratedArtifact,
    GenerationRequest,
    PracticeQuestionSet,
    ProviderRequest,
    StudySource,
    SummaryText,
    WrittenPracticeTest,
)
from studygen.parser import ResponseParser
from studygen.prompts import TITLE_MAX_LENGTH, PromptBuilder, combine_documents
from studygen.provider.selector import ProviderSelector, create_selector
from studygen.validation import validate_request

logger = structlog.get_logger()

TITLE_PREFIXES = {
    ArtifactKind.FLASHCARDS: "Flashcards",
    ArtifactKind.PRACTICE_TEST: "Practice Test",
    ArtifactKind.SUMMARY: "Summary",
}

# short answer expected, see PromptBuilder.build_title_prompt
TITLE_MAX_TOKENS = 100


class GenerationService:
    """
    GenerationService runs one generation call end to end: request
    validation, the daily budget gate, source resolution, prompt
    assembly, a single provider call, usage recording and parsing.

    Usage is recorded as soon as a provider answers, so a response that
    later fails to parse still counts against the budget. Provider
    failures and cancellations record nothing. Errors are never retried.
    """

    def __init__(
        self,
        ledger: "UsageLedger",
        selector: "ProviderSelector",
        prompt_builder: "PromptBuilder | None" = None,
        parser: "ResponseParser | None" = None,
        metrics: "GenerationMetrics | None" = None,
        clock: "Callable[[], datetime]" = utc_now,
    ) -> "None":
        self._ledger = ledger
        self._selector = selector
        self._prompts = prompt_builder or PromptBuilder()
        self._parser = parser or ResponseParser()
        self._metrics = metrics
        self._clock = clock

    async def close(self) -> "None":
        await self._selector.close()

    def has_configured_provider(self) -> "bool":
        return bool(self._selector.configured())

    async def generate(self, request: "GenerationRequest") -> "GeneratedArtifact":
        """
        dispatches on the request's artifact kind.
        """
        validated = validate_request(request)
        return await self._run(validated, ArtifactKind(validated.kind))

    async def generate_flashcards(
        self, request: "GenerationRequest"
    ) -> "FlashcardSet":
        artifact = await self._run(request, ArtifactKind.FLASHCARDS)
        return cast(FlashcardSet, artifact)

    async def generate_practice_test(
        self, request: "GenerationRequest"
    ) -> "PracticeQuestionSet | WrittenPracticeTest":
        artifact = await self._run(request, ArtifactKind.PRACTICE_TEST)
        return cast("PracticeQuestionSet | WrittenPracticeTest", artifact)

    async def generate_summary(self, request: "GenerationRequest") -> "SummaryText":
        artifact = await self._run(request, ArtifactKind.SUMMARY)
        return cast(SummaryText, artifact)

    async def _run(
        self, request: "GenerationRequest", kind: "ArtifactKind"
    ) -> "GeneratedArtifact":
        started = time.monotonic()
        outcome = "success"
        try:
            return await self._generate(request, kind)
        except (Exception, asyncio.CancelledError) as exc:
            outcome = type(exc).__name__
            raise
        finally:
            if self._metrics is not None:
                self._metrics.observe_request(
                    kind.value, outcome, time.monotonic() - started
                )

    async def _generate(
        self, request: "GenerationRequest", kind: "ArtifactKind"
    ) -> "GeneratedArtifact":
        request = validate_request(request)
        if request.kind is not kind:
            raise ValidationError(
                f"expected a {kind.value} request, got {ArtifactKind(request.kind).value}"
            )

        self._check_budget()
        source, source_text = self._resolve_source(request.source)
        prompt = self._prompts.build(source_text, kind, request.options)

        logger.info(
            "generation_started",
            kind=kind.value,
            source=source.name,
            documents=len(source.documents),
            text_length=len(source_text),
        )

        provider = self._selector.get()
        response = await provider.send(
            ProviderRequest(
                system_prompt=prompt.system_prompt,
                user_prompt=prompt.user_prompt,
                temperature=prompt.temperature,
            )
        )

        # tokens were spent, record before parsing can fail
        self._ledger.record(response.usage.input_tokens, response.usage.output_tokens)
        if self._metrics is not None:
            self._metrics.add_usage(response.provider, response.usage)

        try:
            artifact = self._parser.parse(kind, response.text, prompt.shape)
        except ParseError as exc:
            logger.error(
                "response_parse_failed",
                kind=kind.value,
                provider=response.provider,
                response_id=response.id,
                reason=exc.reason.value,
                length=len(response.text),
            )
            raise

        artifact = dataclasses.replace(
            artifact,
            title=f"{TITLE_PREFIXES[kind]} - {source.name}",
            provider=response.provider,
            usage=response.usage,
        )
        logger.info(
            "generation_completed",
            kind=kind.value,
            provider=response.provider,
            total_tokens=response.usage.total_tokens,
        )
        return artifact

    def _check_budget(self) -> "None":
        if self._ledger.check_budget():
            return

        usage = self._ledger.today_usage()
        raise BudgetExceeded(usage.total_tokens, self._ledger.daily_limit())

    @staticmethod
    def _resolve_source(
        source: "StudySource | None",
    ) -> "tuple[StudySource, str]":
        if source is None or not source.documents:
            raise NoDocuments(
                f"{source.name if source else 'Source'} has no documents"
            )

        try:
            return source, combine_documents(source.documents)
        except NoContent as exc:
            raise NoExtractedText(
                f"No text content available in {source.name} documents. "
                "Run text extraction first."
            ) from exc

    async def suggest_title(self, source: "StudySource | None") -> "str":
        """
        asks the model for a short name for a set of documents. Falls
        back to a dated default when the budget is spent, there is no
        text, or the provider call fails.
        """
        fallback = f"Test - {self._clock():%Y-%m-%d}"

        if not self._ledger.check_budget():
            logger.warning("title_suggestion_skipped", reason="daily_limit_reached")
            return fallback

        try:
            prompt = self._prompts.build_title_prompt(
                source.documents if source is not None else ()
            )
        except NoContent:
            logger.warning("title_suggestion_skipped", reason="no_text")
            return fallback

        try:
            provider = self._selector.get()
            response = await provider.send(
                ProviderRequest(
                    system_prompt=prompt.system_prompt,
                    user_prompt=prompt.user_prompt,
                    temperature=prompt.temperature,
                    max_tokens=TITLE_MAX_TOKENS,
                    enable_caching=False,
                )
            )
        except (NoProviderConfigured, ProviderError) as exc:
            logger.error("title_suggestion_failed", error=str(exc))
            return fallback

        self._ledger.record(response.usage.input_tokens, response.usage.output_tokens)
        if self._metrics is not None:
            self._metrics.add_usage(response.provider, response.usage)

        title = response.text.strip().strip("\"'")
        if len(title) > TITLE_MAX_LENGTH:
            title = title[: TITLE_MAX_LENGTH - 3] + "..."

        logger.info("title_suggested", title=title)
        return title or fallback


def create_service(
    config: "Config", metrics: "GenerationMetrics | None" = None
) -> "GenerationService":
    return GenerationService(
        ledger=create_ledger(config),
        selector=create_selector(config),
        prompt_builder=PromptBuilder(language=config.output_language),
        metrics=metrics,
    )
