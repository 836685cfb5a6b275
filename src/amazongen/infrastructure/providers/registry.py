from __future__ import annotations

import logging
from collections.abc import Mapping

from src.amazongen.domain.exceptions import UnknownProviderError
from src.amazongen.domain.models.model_ref import ModelRef, Provider, route_for_model
from src.amazongen.domain.repositories import BackendRouter, GenerationBackend
from src.amazongen.infrastructure.providers.gemini import GeminiBackend
from src.amazongen.infrastructure.providers.openrouter import OpenRouterBackend
from src.setup.provider_config import ProviderSettings, get_provider_settings

logger = logging.getLogger(__name__)


class BackendRegistry(BackendRouter):
    """Registry mapping provider tags to generation backends."""

    def __init__(self, backends: Mapping[Provider, GenerationBackend] | None = None) -> None:
        self._backends: dict[Provider, GenerationBackend] = dict(backends or {})

    def register(self, provider: Provider, backend: GenerationBackend) -> None:
        self._backends[provider] = backend

    @property
    def providers(self) -> list[Provider]:
        return list(self._backends)

    def backend_for(self, model: ModelRef) -> GenerationBackend:
        provider = route_for_model(model)
        try:
            return self._backends[provider]
        except KeyError as exc:
            raise UnknownProviderError(provider.value) from exc

    async def aclose(self) -> None:
        for provider, backend in self._backends.items():
            try:
                await backend.aclose()
            except Exception:
                logger.exception("Failed to close backend", extra={"provider": provider.value})


def build_backend_registry(settings: ProviderSettings | None = None) -> BackendRegistry:
    """Register one backend per supported provider from the configured credentials."""
    if settings is None:
        settings = get_provider_settings()
    registry = BackendRegistry()
    registry.register(Provider.GOOGLE, GeminiBackend(settings.GOOGLE_API_KEY))
    registry.register(
        Provider.OPENROUTER,
        OpenRouterBackend(
            settings.OPENROUTER_API_KEY,
            base_url=settings.OPENROUTER_BASE_URL,
            referer=settings.OPENROUTER_REFERER,
            title=settings.OPENROUTER_TITLE,
            timeout=settings.HTTP_TIMEOUT_SEC,
        ),
    )
    return registry
