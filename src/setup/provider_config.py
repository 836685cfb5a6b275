from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from src.amazongen.domain.models.model_ref import ModelRef, Provider


class ProviderSettings(BaseSettings):
    """Credentials and endpoints of the image generation providers."""
    GOOGLE_API_KEY: str = ""
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_REFERER: str = "https://amazongen.local"
    OPENROUTER_TITLE: str = "AmazonGen"
    HTTP_TIMEOUT_SEC: float = 120.0
    BACKGROUND_REMOVAL_PROVIDER: Provider = Provider.GOOGLE
    BACKGROUND_REMOVAL_MODEL: str = "gemini-2.5-flash-image"

    model_config = ConfigDict(env_file=".env", extra="ignore")

    @property
    def background_removal_model(self) -> ModelRef:
        return ModelRef(
            provider=self.BACKGROUND_REMOVAL_PROVIDER,
            name=self.BACKGROUND_REMOVAL_MODEL,
        )


def get_provider_settings() -> ProviderSettings:
    """Return a fresh provider settings instance."""
    return ProviderSettings()
