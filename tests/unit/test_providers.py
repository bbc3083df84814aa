"""
Unit tests for cloud providers (requests mocked).
"""

import pytest
from unittest.mock import Mock, patch

import requests

from calltagger.providers.anthropic_provider import AnthropicProvider
from calltagger.providers.base import ChatCompletionOptions, ChatMessage, ProviderError
from calltagger.providers.gemini_provider import GeminiProvider
from calltagger.providers.openai_provider import OpenAIProvider


# Keyring is imported in calltagger.utils.secrets, not in provider modules
KEYRING_PATCH = "calltagger.utils.secrets.keyring"

OPTIONS = ChatCompletionOptions(
    messages=[
        ChatMessage("system", "You are a tagger."),
        ChatMessage("user", "Tag this."),
    ],
    temperature=0.1,
    json_mode=True,
)


def _response(status_code=200, json_data=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data or {}
    response.text = text
    return response


class TestOpenAIProvider:

    def setup_method(self):
        self.config = {"model": "gpt-4o-mini", "api_key": "test-key"}

    @patch(KEYRING_PATCH)
    def test_init_with_explicit_key(self, mock_keyring):
        provider = OpenAIProvider(self.config)

        assert provider.api_key == "test-key"
        mock_keyring.get_password.assert_not_called()

    @patch(KEYRING_PATCH)
    def test_init_with_keyring(self, mock_keyring):
        mock_keyring.get_password.return_value = "keyring-key"

        provider = OpenAIProvider({"model": "gpt-4o-mini"})

        assert provider.api_key == "keyring-key"
        mock_keyring.get_password.assert_called_once_with("calltagger", "openai_api_key")

    @patch(KEYRING_PATCH)
    def test_init_without_key_raises(self, mock_keyring):
        mock_keyring.get_password.return_value = None

        with pytest.raises(ValueError, match="API key not configured"):
            OpenAIProvider({})

    def test_circuit_key(self):
        provider = OpenAIProvider(self.config)

        assert provider.provider_name == "openai"
        assert provider.circuit_key == "openai:gpt-4o-mini"

    @patch("calltagger.providers.openai_provider.requests.post")
    def test_chat_completion_success(self, mock_post):
        mock_post.return_value = _response(json_data={
            "choices": [{"message": {"content": '{"tags": []}'}}],
            "usage": {"prompt_tokens": 120, "completion_tokens": 8, "total_tokens": 128},
        })
        provider = OpenAIProvider(self.config)

        result = provider.chat_completion(OPTIONS)

        assert result.content == '{"tags": []}'
        assert (result.input_tokens, result.output_tokens, result.total_tokens) == (120, 8, 128)

        payload = mock_post.call_args.kwargs["json"]
        assert payload["model"] == "gpt-4o-mini"
        assert payload["temperature"] == 0.1
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["messages"][0] == {"role": "system", "content": "You are a tagger."}
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"

    @patch("calltagger.providers.openai_provider.requests.post")
    def test_error_status_raises_provider_error(self, mock_post):
        mock_post.return_value = _response(status_code=429, text="Rate limit reached")
        provider = OpenAIProvider(self.config)

        with pytest.raises(ProviderError) as exc_info:
            provider.chat_completion(OPTIONS)

        assert exc_info.value.status_code == 429
        assert "OpenAI API error (429)" in str(exc_info.value)

    @patch("calltagger.providers.openai_provider.requests.post")
    def test_timeout_propagates(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout("timed out")
        provider = OpenAIProvider(self.config)

        with pytest.raises(requests.exceptions.Timeout):
            provider.chat_completion(OPTIONS)

    @patch("calltagger.providers.openai_provider.requests.get")
    def test_health_check(self, mock_get):
        provider = OpenAIProvider(self.config)

        mock_get.return_value = _response(status_code=200)
        assert provider.health_check() is True

        mock_get.return_value = _response(status_code=401)
        assert provider.health_check() is False

        mock_get.side_effect = requests.exceptions.ConnectionError("down")
        assert provider.health_check() is False


class TestAnthropicProvider:

    def setup_method(self):
        self.config = {"model": "claude-test", "api_key": "test-key"}

    @patch("calltagger.providers.anthropic_provider.requests.post")
    def test_system_prompt_sent_separately(self, mock_post):
        mock_post.return_value = _response(json_data={
            "content": [{"type": "text", "text": '{"tags": []}'}],
            "usage": {"input_tokens": 100, "output_tokens": 20},
        })
        provider = AnthropicProvider(self.config)

        result = provider.chat_completion(OPTIONS)

        payload = mock_post.call_args.kwargs["json"]
        assert payload["system"] == "You are a tagger."
        assert payload["messages"] == [{"role": "user", "content": "Tag this."}]
        assert payload["temperature"] == 0.1
        assert mock_post.call_args.kwargs["headers"]["x-api-key"] == "test-key"

        assert result.content == '{"tags": []}'
        assert result.total_tokens == 120

    @patch("calltagger.providers.anthropic_provider.requests.post")
    def test_overloaded_is_provider_error(self, mock_post):
        mock_post.return_value = _response(status_code=529, text="Overloaded")
        provider = AnthropicProvider(self.config)

        with pytest.raises(ProviderError) as exc_info:
            provider.chat_completion(OPTIONS)

        assert exc_info.value.status_code == 529


class TestGeminiProvider:

    def setup_method(self):
        self.config = {"model": "gemini-test", "api_key": "test-key"}

    @patch("calltagger.providers.gemini_provider.requests.post")
    def test_generate_content(self, mock_post):
        mock_post.return_value = _response(json_data={
            "candidates": [{"content": {"parts": [{"text": '{"tags": '}, {"text": "[]}"}]}}],
            "usageMetadata": {"promptTokenCount": 90, "candidatesTokenCount": 10, "totalTokenCount": 100},
        })
        provider = GeminiProvider(self.config)

        result = provider.chat_completion(OPTIONS)

        args, kwargs = mock_post.call_args
        assert args[0].endswith("/models/gemini-test:generateContent")
        assert kwargs["params"] == {"key": "test-key"}
        payload = kwargs["json"]
        assert payload["systemInstruction"] == {"parts": [{"text": "You are a tagger."}]}
        assert payload["generationConfig"]["responseMimeType"] == "application/json"
        assert payload["contents"] == [{"role": "user", "parts": [{"text": "Tag this."}]}]

        assert result.content == '{"tags": []}'
        assert result.total_tokens == 100

    @patch("calltagger.providers.gemini_provider.requests.post")
    def test_no_candidates_gives_empty_content(self, mock_post):
        mock_post.return_value = _response(json_data={"candidates": []})
        provider = GeminiProvider(self.config)

        result = provider.chat_completion(OPTIONS)

        assert result.content == ""
        assert result.total_tokens == 0

    @patch("calltagger.providers.gemini_provider.requests.post")
    def test_bad_request_is_fatal_error(self, mock_post):
        mock_post.return_value = _response(status_code=400, text="API key not valid")
        provider = GeminiProvider(self.config)

        with pytest.raises(ProviderError) as exc_info:
            provider.chat_completion(OPTIONS)

        assert exc_info.value.status_code == 400
