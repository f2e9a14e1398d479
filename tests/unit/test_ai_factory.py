"""Tests for AIClientFactory."""

from unittest.mock import patch

import pytest

from docflow.ai.example_client_adapter import ExampleClientAdapter
from docflow.ai.factory import AIClientFactory
from docflow.ai.gemini_client_adapter import GeminiClientAdapter
from docflow.config.settings import Settings


class TestAIClientFactory:
    def test_creates_example_adapter(self) -> None:
        client = AIClientFactory.create(Settings(ai_provider="example"))
        assert isinstance(client, ExampleClientAdapter)

    def test_creates_gemini_adapter(self) -> None:
        settings = Settings(ai_provider="Gemini", gemini_api_key="g-key")
        assert isinstance(AIClientFactory.create(settings), GeminiClientAdapter)

    def test_uses_openai_settings(self) -> None:
        settings = Settings(
            ai_provider="openai",
            openai_api_key="openai-key",
            openai_model_name="gpt-test",
            provider_request_timeout_seconds=42,
            provider_upload_timeout_seconds=17,
        )
        with patch("docflow.ai.factory.OpenAIClientAdapter") as mock_adapter:
            AIClientFactory.create(settings)
        mock_adapter.assert_called_once_with(
            api_key="openai-key",
            model="gpt-test",
            timeout_seconds=42,
            upload_timeout_seconds=17,
            temperature=0.2,
            base_url=None,
        )

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown AI provider"):
            AIClientFactory.create(Settings(ai_provider="claude"))
