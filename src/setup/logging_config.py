import logging

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(env_file=".env", extra="ignore")


def configure_logging(settings: LoggingSettings | None = None) -> None:
    if settings is None:
        settings = LoggingSettings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=_LOG_FORMAT)
