from docflow.ai.client_base import BaseFileAnalysisClient
from docflow.ai.example_client_adapter import ExampleClientAdapter
from docflow.ai.gemini_client_adapter import GeminiClientAdapter
from docflow.ai.openai_client_adapter import OpenAIClientAdapter
from docflow.config.settings import Settings


class AIClientFactory:
    """Creates the configured file analysis client."""

    PROVIDERS: tuple[str, ...] = ("gemini", "openai", "example")

    @classmethod
    def create(cls, settings: Settings) -> BaseFileAnalysisClient:
        """Create a configured client from application settings."""
        provider = settings.ai_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()
        if provider == "gemini":
            return GeminiClientAdapter(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model_name,
                temperature=settings.gemini_temperature,
                upload_timeout_seconds=settings.provider_upload_timeout_seconds,
                request_timeout_seconds=settings.provider_request_timeout_seconds,
            )
        if provider == "openai":
            return OpenAIClientAdapter(
                api_key=settings.openai_api_key,
                model=settings.openai_model_name,
                timeout_seconds=settings.provider_request_timeout_seconds,
                upload_timeout_seconds=settings.provider_upload_timeout_seconds,
                temperature=settings.openai_temperature,
                base_url=settings.openai_base_url,
            )
        raise ValueError(
            f"Unknown AI provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )
