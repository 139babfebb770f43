from typing import Any

import httpx
import structlog

from studygen.config import has_api_key
from studygen.errors import ProviderError, ProviderErrorReason
from studygen.models import ProviderRequest, ProviderResponse, UsageReport

logger = structlog.get_logger()

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

# stop reasons reported when the model declines to answer
SAFETY_STOP_REASONS = frozenset({"refusal"})


class AnthropicClient:
    """
    AnthropicClient implements the ProviderClient protocol on top of the
    Anthropic Messages API. The system prompt is sent as a single text
    block which carries an ephemeral cache_control marker when caching
    is requested; the user prompt is never cached.
    """

    def __init__(
        self,
        api_key: "str",
        model: "str" = DEFAULT_MODEL,
        max_tokens: "int" = 4000,
        timeout: "float" = 120.0,
    ) -> "None":
        self._model = model
        self._max_tokens = max_tokens
        self._client: "httpx.AsyncClient | None" = None

        if has_api_key(api_key):
            self._client = httpx.AsyncClient(
                timeout=timeout,
                headers={
                    "x-api-key": api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
            )
        else:
            logger.warning("provider_not_configured", provider="anthropic")

    @property
    def name(self) -> "str":
        return "anthropic"

    @property
    def model(self) -> "str":
        return self._model

    def is_configured(self) -> "bool":
        return self._client is not None

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        if self._client is not None:
            await self._client.aclose()

    def build_payload(self, request: "ProviderRequest") -> "dict[str, Any]":
        payload: "dict[str, Any]" = {
            "model": self._model,
            "max_tokens": request.max_tokens or self._max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

        if request.system_prompt:
            system_block: "dict[str, Any]" = {
                "type": "text",
                "text": request.system_prompt,
            }
            if request.enable_caching:
                system_block["cache_control"] = {"type": "ephemeral"}
            payload["system"] = [system_block]

        return payload

    async def send(self, request: "ProviderRequest") -> "ProviderResponse":
        if self._client is None:
            raise ProviderError(
                ProviderErrorReason.UNCONFIGURED,
                self.name,
                "provider is not configured, set ANTHROPIC_API_KEY",
            )

        payload = self.build_payload(request)
        logger.info(
            "provider_call_started",
            provider=self.name,
            model=self._model,
            temperature=request.temperature,
            max_tokens=payload["max_tokens"],
            caching=request.enable_caching,
        )

        try:
            resp = await self._client.post(ANTHROPIC_MESSAGES_URL, json=payload)
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
                f"HTTP {exc.response.status_code} from messages endpoint",
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

        stop_reason = data.get("stop_reason")
        if stop_reason in SAFETY_STOP_REASONS:
            logger.error("provider_safety_stop", provider=self.name, reason=stop_reason)
            raise ProviderError(
                ProviderErrorReason.REQUEST_FAILED,
                self.name,
                f"generation stopped by the provider ({stop_reason})",
            )

        text = _message_text(data.get("content"))
        if not text.strip():
            raise ProviderError(
                ProviderErrorReason.EMPTY_RESPONSE,
                self.name,
                "response contained no text",
            )

        raw_usage = data.get("usage")
        usage = map_usage(raw_usage if isinstance(raw_usage, dict) else {})
        response_id = data.get("id") or ""
        _log_cache_usage(response_id, usage)

        return ProviderResponse(
            id=response_id,
            text=text,
            provider=self.name,
            model=data.get("model") or self._model,
            stop_reason=stop_reason,
            usage=usage,
        )


def _message_text(content: "Any") -> "str":
    # malformed blocks are skipped
    if not isinstance(content, list):
        return ""
    return "".join(
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    )


def map_usage(raw: "dict[str, Any]") -> "UsageReport":
    """
    maps the Messages API usage block, missing fields count as zero.
    """
    return UsageReport(
        input_tokens=int(raw.get("input_tokens") or 0),
        output_tokens=int(raw.get("output_tokens") or 0),
        cache_read_tokens=int(raw.get("cache_read_input_tokens") or 0),
        cache_write_tokens=int(raw.get("cache_creation_input_tokens") or 0),
    )


def _log_cache_usage(response_id: "str", usage: "UsageReport") -> "None":
    if usage.cache_read_tokens > 0:
        read_share = usage.cache_read_tokens + usage.input_tokens
        logger.info(
            "provider_call_succeeded",
            provider="anthropic",
            response_id=response_id,
            cache="hit",
            cache_read_tokens=usage.cache_read_tokens,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            savings_percent=usage.cache_read_tokens * 100 // read_share,
        )
    elif usage.cache_write_tokens > 0:
        logger.info(
            "provider_call_succeeded",
            provider="anthropic",
            response_id=response_id,
            cache="created",
            cache_write_tokens=usage.cache_write_tokens,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
    else:
        logger.info(
            "provider_call_succeeded",
            provider="anthropic",
            response_id=response_id,
            cache="none",
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
