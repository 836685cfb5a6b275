from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class ApiSettings(BaseSettings):
    APP_NAME: str = "amazongen"
    APP_VERSION: str = "0.1.0"
    HISTORY_PAGE_SIZE: int = 50
    MAX_UPLOAD_MB: int = 10

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_api_settings() -> ApiSettings:
    return ApiSettings()  # type: ignore[call-arg]
