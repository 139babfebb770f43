from typing import Any

import httpx
import structlog

from studygen.config import has_api_key
from studygen.errors import ProviderError, ProviderErrorReason
from studygen.models import ProviderRequest, ProviderResponse, UsageReport

logger = structlog.get_logger()

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash-exp"

# finish reasons that mean the candidate was withheld
SAFETY_FINISH_REASONS = frozenset(
    {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}
)


def generate_content_url(model: "str") -> "str":
    return f"{GEMINI_BASE_URL}/models/{model}:generateContent"


class GeminiClient:
    """
    GeminiClient implements the ProviderClient protocol for Google's
    generateContent endpoint. Gemini has no per-request prompt cache
    marker, so the caching hint of a request is ignored.
    """

    def __init__(
        self,
        api_key: "str",
        model: "str" = DEFAULT_MODEL,
        max_tokens: "int" = 8192,
        timeout: "float" = 120.0,
    ) -> "None":
        self._model = model
        self._max_tokens = max_tokens
        self._client: "httpx.AsyncClient | None" = None

        if has_api_key(api_key):
            self._client = httpx.AsyncClient(
                timeout=timeout,
                headers={"x-goog-api-key": api_key},
            )
        else:
            logger.warning("provider_not_configured", provider="gemini")

    @property
    def name(self) -> "str":
        return "gemini"

    @property
    def model(self) -> "str":
        return self._model

    def is_configured(self) -> "bool":
        return self._client is not None

    async def close(self) -> "None":
        if self._client is not None:
            await self._client.aclose()

    def build_payload(self, request: "ProviderRequest") -> "dict[str, Any]":
        payload: "dict[str, Any]" = {
            "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens or self._max_tokens,
            },
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    async def send(self, request: "ProviderRequest") -> "ProviderResponse":
        if self._client is None:
            raise ProviderError(
                ProviderErrorReason.UNCONFIGURED,
                self.name,
                "provider is not configured, set GEMINI_API_KEY",
            )

        payload = self.build_payload(request)
        logger.info(
            "provider_call_started",
            provider=self.name,
            model=self._model,
            temperature=request.temperature,
            max_tokens=payload["generationConfig"]["maxOutputTokens"],
        )

        try:
            resp = await self._client.post(
                generate_content_url(self._model), json=payload
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "provider_call_failed",
                provider=self.name,
                model=self._model,
                status_code=exc.response.status_code,
            )
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                f"HTTP {exc.response.status_code} from generateContent",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "provider_call_failed",
                provider=self.name,
                model=self._model,
                error=str(exc),
            )
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED, self.name, str(exc)
            ) from exc
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                "response body is not valid JSON",
            ) from exc

        if not isinstance(data, dict):
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                "response body is not a JSON object",
            )

        block_reason = _object(data.get("promptFeedback")).get("blockReason")
        if block_reason:
            logger.error("provider_safety_stop", provider=self.name, reason=block_reason)
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                f"prompt blocked by the provider ({block_reason})",
            )

        candidates = data.get("candidates")
        candidate = _object(
            candidates[0] if isinstance(candidates, list) and candidates else None
        )
        finish_reason = candidate.get("finishReason")
        if finish_reason in SAFETY_FINISH_REASONS:
            logger.error("provider_safety_stop", provider=self.name, reason=finish_reason)
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                f"generation stopped by the provider ({finish_reason})",
            )

        text = _candidate_text(candidate)
        if not text.strip():
            raise ProviderError(
                ProviderErrorReason.EMPTY_RESPONSE,
                self.name,
                "response contained no text",
            )

        usage = map_usage(_object(data.get("usageMetadata")))
        logger.info(
            "provider_call_succeeded",
            provider=self.name,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_read_tokens=usage.cache_read_tokens,
        )

        return ProviderResponse(
            # older API versions do not return a response id
            id=data.get("responseId") or "",
            text=text,
            provider=self.name,
            model=data.get("modelVersion") or self._model,
            stop_reason=finish_reason,
            usage=usage,
        )


def _object(value: "Any") -> "dict[str, Any]":
    return value if isinstance(value, dict) else {}


def _candidate_text(candidate: "dict[str, Any]") -> "str":
    # malformed parts are skipped
    parts = _object(candidate.get("content")).get("parts")
    if not isinstance(parts, list):
        return ""
    return "".join(
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


def map_usage(raw: "dict[str, Any]") -> "UsageReport":
    return UsageReport(
        input_tokens=int(raw.get("promptTokenCount") or 0),
        output_tokens=int(raw.get("candidatesTokenCount") or 0),
        cache_read_tokens=int(raw.get("cachedContentTokenCount") or 0),
        # implicit caching on Gemini does not report writes
        cache_write_tokens=0,
    )
