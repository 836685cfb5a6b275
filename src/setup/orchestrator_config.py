from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

from src.amazongen.domain.models.model_ref import ModelRef, Provider


class OrchestratorSettings(BaseSettings):
    """Configuration for batch dispatch and the in-memory task board."""
    GENERATION_TIMEOUT_SEC: float = Field(default=90.0, gt=0)
    # 0 keeps every task for the lifetime of the process.
    MAX_SESSION_TASKS: int = Field(default=0, ge=0)
    DEFAULT_PROVIDER: Provider = Provider.GOOGLE
    DEFAULT_MODEL: str = "gemini-2.5-flash-image"

    model_config = ConfigDict(env_file=".env", extra="ignore")

    @property
    def default_model(self) -> ModelRef:
        return ModelRef(provider=self.DEFAULT_PROVIDER, name=self.DEFAULT_MODEL)


def get_orchestrator_settings() -> OrchestratorSettings:
    """Return a fresh orchestrator settings instance."""
    return OrchestratorSettings()
