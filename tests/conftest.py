from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry

from studygen.errors import ProviderError, ProviderErrorReason
from studygen.models import (
    ProviderRequest,
    ProviderResponse,
    SourceDocument,
    StudySource,
    UsageReport,
)

FLASHCARDS_JSON = (
    '[{"question": "Vad är fotosyntesen?", "answer": "Ljus blir kemisk energi."},'
    ' {"question": "Var sker fotosyntesen?", "answer": "I kloroplasterna."}]'
)

QUESTIONS_JSON = """[
  {
    "question": "Vad är huvudstaden i Sverige?",
    "options": ["Oslo", "Stockholm", "Köpenhamn", "Helsingfors"],
    "correctAnswer": "Stockholm",
    "explanation": "Stockholm är Sveriges huvudstad."
  }
]"""


class FakeClock:
    """
    A settable clock returning timezone-aware UTC datetimes.
    """

    def __init__(self, now: "datetime") -> "None":
        self.now = now

    def __call__(self) -> "datetime":
        return self.now


class FakeProvider:
    """
    A provider that returns a pre-configured text or raises a
    pre-configured error, counting every send.
    """

    def __init__(
        self,
        name: "str" = "fake",
        text: "str" = FLASHCARDS_JSON,
        usage: "UsageReport | None" = None,
        error: "BaseException | None" = None,
        configured: "bool" = True,
    ) -> "None":
        self._name = name
        self.text = text
        self.usage = usage or UsageReport(input_tokens=120, output_tokens=80)
        self.error = error
        self.configured = configured
        self.requests: "list[ProviderRequest]" = []
        self.closed = False

    @property
    def name(self) -> "str":
        return self._name

    @property
    def call_count(self) -> "int":
        return len(self.requests)

    def is_configured(self) -> "bool":
        return self.configured

    async def send(self, request: "ProviderRequest") -> "ProviderResponse":
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            id="msg_fake",
            text=self.text,
            provider=self._name,
            model="fake-model",
            stop_reason="end_turn",
            usage=self.usage,
        )

    async def close(self) -> "None":
        self.closed = True


def provider_failure(name: "str" = "fake") -> "ProviderError":
    return ProviderError(ProviderErrorReason.REQUEST_FAILED, name, "HTTP 500")


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def clock() -> "FakeClock":
    return FakeClock(datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture()
def source() -> "StudySource":
    return StudySource(
        name="Biologi",
        documents=(
            SourceDocument("kapitel1.pdf", "Fotosyntesen omvandlar ljusenergi."),
            SourceDocument("kapitel2.pdf", "Cellandningen frigör energi."),
        ),
    )
