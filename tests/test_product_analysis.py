"""Tests for product analysis, the vision client helpers and the renderer response parsing."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import make_analyzer
from photoset.core.config import get_settings
from photoset.core.errors import AnalysisFailure, RenderFailure
from photoset.models.domain import ReferenceImage
from photoset.services.llm import backoff_delay, chat_with_vision, parse_json_response, to_data_url
from photoset.services.product_analysis import ANALYSIS_PROMPT, analyze_product_image, parse_analysis
from photoset.services.renderer import NO_IMAGE_MESSAGE, GeminiRenderer, extract_image

IMAGE = ReferenceImage(data=b"\x89PNG...", mime_type="image/png")


class TestParseJson:
    def test_first_object_span(self):
        text = 'Here you go:\n```json\n{"productType": "mug", "colors": ["red"]}\n```'
        assert parse_json_response(text) == {"productType": "mug", "colors": ["red"]}

    def test_invalid_json(self):
        assert parse_json_response("{not json}") is None
        assert parse_json_response("no braces") is None

    def test_data_url(self):
        assert to_data_url(b"abc", "image/jpeg") == "data:image/jpeg;base64,YWJj"


class TestAnalyzeProductImage:
    async def test_json_reply(self):
        analyzer = make_analyzer()
        attributes = await analyze_product_image(IMAGE, vision=analyzer)
        assert attributes.product_type == "ceramic coffee mug"
        assert attributes.colors == ("matte red", "white rim")
        assert analyzer.calls == [ANALYSIS_PROMPT]

    async def test_free_text_becomes_summary(self):
        attributes = await analyze_product_image(IMAGE, vision=make_analyzer("A red mug on a table."))
        assert attributes.summary == "A red mug on a table."
        assert attributes.product_type == ""

    async def test_vision_error_is_fatal(self):
        with pytest.raises(AnalysisFailure):
            await analyze_product_image(IMAGE, vision=make_analyzer(error=RuntimeError("quota")))

    async def test_empty_reply_is_fatal(self):
        with pytest.raises(AnalysisFailure):
            await analyze_product_image(IMAGE, vision=make_analyzer("   "))

    def test_snake_case_keys_accepted(self):
        attributes = parse_analysis('{"product_type": "sneaker", "features": "white sole"}')
        assert attributes.product_type == "sneaker"
        assert attributes.features == ("white sole",)


def _response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


class TestGeminiRenderer:
    def test_extract_first_image_part(self):
        text_part = SimpleNamespace(inline_data=None, text="here")
        image_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"img", mime_type="image/webp"))
        image = extract_image(_response(text_part, image_part))
        assert image.data == b"img"
        assert image.mime_type == "image/webp"

    async def test_render_sends_references_then_prompt(self):
        client = MagicMock()
        client.models.generate_content.return_value = _response(
            SimpleNamespace(inline_data=SimpleNamespace(data=b"img", mime_type="image/png"))
        )
        renderer = GeminiRenderer(model="test-image-model", client=client)

        image = await renderer.render("the prompt", [IMAGE, IMAGE])

        assert image.data == b"img"
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "test-image-model"
        assert len(kwargs["contents"]) == 3
        assert kwargs["contents"][-1] == "the prompt"

    async def test_no_image_is_render_failure(self):
        client = MagicMock()
        client.models.generate_content.return_value = _response(SimpleNamespace(inline_data=None))
        with pytest.raises(RenderFailure, match=NO_IMAGE_MESSAGE):
            await GeminiRenderer(model="m", client=client).render("p", [IMAGE])

    async def test_sdk_error_wrapped(self):
        client = MagicMock()
        client.models.generate_content.side_effect = ConnectionError("reset")
        with pytest.raises(RenderFailure, match="reset"):
            await GeminiRenderer(model="m", client=client).render("p", [IMAGE])


class TestChatWithVision:
    @pytest.fixture
    def transport(self, monkeypatch):
        """Route the shared LLM client through a scripted transport."""
        from photoset.services import llm

        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        get_settings.cache_clear()

        requests: list[httpx.Request] = []
        statuses: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            status = statuses.pop(0) if statuses else 200
            if status != 200:
                return httpx.Response(status, json={"error": "busy"}, headers={"retry-after": "0"})
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "A red mug."}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 3},
            })

        monkeypatch.setattr(llm, "_client", httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        return requests, statuses

    async def test_inline_image_payload(self, transport):
        requests, _ = transport

        reply = await chat_with_vision("Describe", [(b"abc", "image/png")])

        assert reply == "A red mug."
        body = json.loads(requests[0].content)
        content = body["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Describe"}
        assert content[1]["image_url"]["url"] == "data:image/png;base64,YWJj"
        assert requests[0].headers["Authorization"] == "Bearer test-key"

    async def test_retries_busy_responses(self, transport):
        requests, statuses = transport
        statuses.extend([503, 429])

        assert await chat_with_vision("Describe", []) == "A red mug."
        assert len(requests) == 3

    async def test_client_error_not_retried(self, transport):
        requests, statuses = transport
        statuses.append(400)

        with pytest.raises(httpx.HTTPStatusError):
            await chat_with_vision("Describe", [])
        assert len(requests) == 1

    async def test_missing_api_key(self):
        with pytest.raises(ValueError):
            await chat_with_vision("Describe", [])

    def test_backoff_delay(self):
        assert backoff_delay(0, "2") == 2.0
        assert backoff_delay(10) == 16.0
        assert 1.0 <= backoff_delay(0, "soon") <= 2.0
