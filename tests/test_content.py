"""
Tests for transcript-based content generation.
"""
import httpx
import pytest

from postmeeting.exceptions import ConfigurationError, ContentGenerationError
from postmeeting.services.content import ContentGenerator

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def _completion(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


@pytest.fixture
def generator(http_client):
    return ContentGenerator("test-openai-key", client=http_client)


@pytest.mark.unit
class TestContentGenerator:
    """Test OpenAI-backed drafting."""

    async def test_generate_email(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, json_body=_completion("  Hi Alice,\nThanks for today.  "))

        email = await generator.generate_email("Alice: Let's rebalance.", ["Alice", "Bob"])

        assert email == "Hi Alice,\nThanks for today."
        request = fake_http.requests[0]
        assert request.headers["Authorization"] == "Bearer test-openai-key"
        body = fake_http.json_of(request)
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0]["role"] == "system"
        assert "Alice: Let's rebalance." in body["messages"][1]["content"]
        assert "Attendees: Alice, Bob" in body["messages"][1]["content"]

    async def test_generate_post_uses_tone_and_hashtags(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, json_body=_completion("Great meeting! #investing"))

        post = await generator.generate_post("Transcript", tone="upbeat", hashtag_count=2)

        assert post == "Great meeting! #investing"
        prompt = fake_http.json_of(fake_http.requests[0])["messages"][1]["content"]
        assert "upbeat tone" in prompt
        assert "Up to 2 relevant hashtags" in prompt

    async def test_generate_from_template(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, json_body=_completion("Templated"))

        await generator.generate_from_template(
            "Write in a {tone} voice with {hashtag_count} tags about {transcript}. Keep {braces}.",
            "the review",
            tone="calm",
            hashtag_count=4,
        )

        prompt = fake_http.json_of(fake_http.requests[0])["messages"][1]["content"]
        assert prompt == "Write in a calm voice with 4 tags about the review. Keep {braces}."

    async def test_empty_transcript(self, generator, fake_http):
        with pytest.raises(ContentGenerationError, match="Transcript is empty"):
            await generator.generate_post("   ")
        assert fake_http.requests == []

    async def test_missing_api_key(self, http_client, fake_http):
        generator = ContentGenerator(None, client=http_client)

        with pytest.raises(ConfigurationError):
            await generator.generate_email("Transcript")
        assert fake_http.requests == []

    async def test_error_status(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, status_code=429, json_body={"error": {"message": "Rate limit"}})

        with pytest.raises(ContentGenerationError) as exc_info:
            await generator.generate_email("Transcript")
        assert exc_info.value.status_code == 429
        assert exc_info.value.service == "openai"

    async def test_empty_completion(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, json_body=_completion(""))

        with pytest.raises(ContentGenerationError, match="no content"):
            await generator.generate_post("Transcript")

    async def test_unexpected_response_shape(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, json_body={"choices": []})

        with pytest.raises(ContentGenerationError, match="unexpected response"):
            await generator.generate_post("Transcript")

    async def test_network_error(self, generator, fake_http):
        fake_http.add("POST", OPENAI_URL, httpx.ReadTimeout("timed out"))

        with pytest.raises(ContentGenerationError):
            await generator.generate_post("Transcript")
