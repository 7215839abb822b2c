"""Unit tests for the image LLM clients."""
import json

import pytest
import responses
from PIL import Image

from kairos.exceptions import InferenceError
from kairos.image_llm_client import (
    OpenAIImageLLMClient,
    StubImageLLMClient,
    build_prompt,
    get_llm_client,
    load_image,
)

API_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture
def image():
    return Image.new("RGBA", (64, 32), (255, 0, 0, 128))


class TestOpenAIImageLLMClient:
    """Test cases for OpenAIImageLLMClient."""

    @responses.activate
    def test_returns_message_content(self, image):
        responses.add(
            responses.POST,
            API_URL,
            json={"choices": [{"message": {"content": '```json\n[{"title": "A"}]\n```'}}]},
            status=200,
        )
        client = OpenAIImageLLMClient("sk-test")
        content = client.generate(image, "extract events")
        assert content == '```json\n[{"title": "A"}]\n```'

        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.body)
        assert body["model"] == "gpt-4o-mini"
        parts = body["messages"][0]["content"]
        assert parts[0] == {"type": "text", "text": "extract events"}
        assert parts[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @responses.activate
    def test_http_error_raises(self, image):
        responses.add(responses.POST, API_URL, json={"error": {"message": "bad key"}}, status=401)
        with pytest.raises(InferenceError):
            OpenAIImageLLMClient("sk-bad").generate(image, "prompt")

    @responses.activate
    def test_empty_content_raises(self, image):
        responses.add(responses.POST, API_URL, json={"choices": [{"message": {"content": ""}}]}, status=200)
        with pytest.raises(InferenceError, match="Empty response"):
            OpenAIImageLLMClient("sk-test").generate(image, "prompt")

    def test_zero_size_image_rejected(self):
        client = OpenAIImageLLMClient("sk-test")
        with pytest.raises(InferenceError):
            client.generate(Image.new("RGB", (0, 0)), "prompt")

    def test_custom_model(self):
        assert OpenAIImageLLMClient("sk-test", model="gpt-4o").model == "gpt-4o"


class TestStubAndFactory:
    """Test cases for the stub client and factory."""

    def test_stub_default_response_contains_json(self, image):
        content = StubImageLLMClient().generate(image, "prompt")
        assert "```json" in content
        assert "Sample Meeting" in content

    def test_stub_custom_response(self, image):
        assert StubImageLLMClient("[]").generate(image, "prompt") == "[]"

    def test_factory_defaults_to_stub(self):
        assert isinstance(get_llm_client(), StubImageLLMClient)

    def test_factory_uses_openai_with_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        client = get_llm_client("gpt-4o")
        assert isinstance(client, OpenAIImageLLMClient)
        assert client.model == "gpt-4o"

    def test_use_stub_wins_over_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("USE_STUB", "1")
        assert isinstance(get_llm_client(), StubImageLLMClient)


class TestHelpers:
    """Test cases for prompt and image helpers."""

    def test_build_prompt_includes_today(self):
        prompt = build_prompt("2025-06-01")
        assert "today being 2025-06-01" in prompt
        assert '"start_datetime"' in prompt

    def test_load_image(self, tmp_path, image):
        path = tmp_path / "flyer.png"
        image.save(path)
        assert load_image(path).size == (64, 32)

    def test_load_image_missing(self, tmp_path):
        with pytest.raises(InferenceError):
            load_image(tmp_path / "missing.png")

    def test_load_image_not_an_image(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        with pytest.raises(InferenceError):
            load_image(path)
