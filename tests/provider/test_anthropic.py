import json

import httpx
import pytest
import respx

from studygen.errors import ProviderError, ProviderErrorReason
from studygen.models import ProviderRequest
from studygen.provider.anthropic import (
    ANTHROPIC_MESSAGES_URL,
    ANTHROPIC_VERSION,
    AnthropicClient,
)

REQUEST = ProviderRequest(
    system_prompt="You are an educational assistant.",
    user_prompt="Create 3 flashcards from the following study material.",
    temperature=0.7,
)


def _message(**overrides: "object") -> "dict[str, object]":
    body: "dict[str, object]" = {
        "id": "msg_01",
        "type": "message",
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": '[{"question": "Q", "answer": "A"}]'}],
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 1200,
            "output_tokens": 300,
            "cache_read_input_tokens": 0,
            "cache_creation_input_tokens": 900,
        },
    }
    body.update(overrides)
    return body


class TestAnthropicClientSend:
    @pytest.mark.asyncio
    @respx.mock
    async def test_maps_response(self) -> "None":
        route = respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=_message())
        )

        client = AnthropicClient(api_key="sk-ant-test")
        response = await client.send(REQUEST)
        await client.close()

        assert response.id == "msg_01"
        assert response.provider == "anthropic"
        assert response.text == '[{"question": "Q", "answer": "A"}]'
        assert response.stop_reason == "end_turn"
        assert response.usage.input_tokens == 1200
        assert response.usage.output_tokens == 300
        assert response.usage.cache_write_tokens == 900
        assert response.usage.cache_read_tokens == 0

        sent = route.calls.last.request
        assert sent.headers["x-api-key"] == "sk-ant-test"
        assert sent.headers["anthropic-version"] == ANTHROPIC_VERSION

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_marker_only_on_system_prompt(self) -> "None":
        route = respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=_message())
        )

        client = AnthropicClient(api_key="sk-ant-test", max_tokens=4000)
        await client.send(REQUEST)
        await client.close()

        payload = json.loads(route.calls.last.request.content)
        assert payload["system"] == [
            {
                "type": "text",
                "text": REQUEST.system_prompt,
                "cache_control": {"type": "ephemeral"},
            }
        ]
        assert payload["messages"] == [
            {"role": "user", "content": REQUEST.user_prompt}
        ]
        assert payload["max_tokens"] == 4000
        assert payload["temperature"] == 0.7

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_cache_marker_when_disabled(self) -> "None":
        route = respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=_message())
        )

        client = AnthropicClient(api_key="sk-ant-test")
        await client.send(
            ProviderRequest(
                system_prompt="sys",
                user_prompt="user",
                max_tokens=100,
                enable_caching=False,
            )
        )
        await client.close()

        payload = json.loads(route.calls.last.request.content)
        assert "cache_control" not in payload["system"][0]
        assert payload["max_tokens"] == 100

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_usage_counts_as_zero(self) -> "None":
        body = _message()
        del body["usage"]
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=body)
        )

        client = AnthropicClient(api_key="sk-ant-test")
        response = await client.send(REQUEST)
        await client.close()

        assert response.usage.total_tokens == 0
        assert response.usage.cache_read_tokens == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_joins_text_blocks(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(
                200,
                json=_message(
                    content=[
                        {"type": "text", "text": "[1, "},
                        {"type": "tool_use", "id": "t1", "input": {}},
                        {"type": "text", "text": "2]"},
                    ]
                ),
            )
        )

        client = AnthropicClient(api_key="sk-ant-test")
        response = await client.send(REQUEST)
        await client.close()

        assert response.text == "[1, 2]"

    @pytest.mark.asyncio
    @respx.mock
    async def test_skips_malformed_blocks(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(
                200,
                json=_message(
                    content=[
                        "stray",
                        None,
                        {"type": "text", "text": 42},
                        {"type": "text", "text": "[]"},
                    ],
                    usage="unknown",
                ),
            )
        )

        client = AnthropicClient(api_key="sk-ant-test")
        response = await client.send(REQUEST)
        await client.close()

        assert response.text == "[]"
        assert response.usage.total_tokens == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_body(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=["not", "a", "message"])
        )

        client = AnthropicClient(api_key="sk-ant-test")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        await client.close()

        assert exc_info.value.reason is ProviderErrorReason.REQUEST_FAILED

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(500, json={"type": "error"})
        )

        client = AnthropicClient(api_key="sk-ant-test")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        await client.close()

        assert exc_info.value.reason is ProviderErrorReason.REQUEST_FAILED
        assert exc_info.value.provider == "anthropic"
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        client = AnthropicClient(api_key="sk-ant-test")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        await client.close()

        assert exc_info.value.reason is ProviderErrorReason.REQUEST_FAILED

    @pytest.mark.asyncio
    @respx.mock
    async def test_refusal(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(
                200, json=_message(stop_reason="refusal", content=[])
            )
        )

        client = AnthropicClient(api_key="sk-ant-test")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        await client.close()

        assert exc_info.value.reason is ProviderErrorReason.REQUEST_FAILED

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_text(self) -> "None":
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(
                200, json=_message(content=[{"type": "text", "text": "  "}])
            )
        )

        client = AnthropicClient(api_key="sk-ant-test")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        await client.close()

        assert exc_info.value.reason is ProviderErrorReason.EMPTY_RESPONSE


class TestAnthropicClientConfigured:
    def test_configured_with_key(self) -> "None":
        assert AnthropicClient(api_key="sk-ant-test").is_configured() is True

    @pytest.mark.parametrize("api_key", ["", "your-api-key-here"])
    def test_not_configured_without_key(self, api_key: "str") -> "None":
        assert AnthropicClient(api_key=api_key).is_configured() is False

    @pytest.mark.asyncio
    async def test_send_unconfigured(self) -> "None":
        client = AnthropicClient(api_key="")
        with pytest.raises(ProviderError) as exc_info:
            await client.send(REQUEST)
        assert exc_info.value.reason is ProviderErrorReason.UNCONFIGURED
