from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings

_ENV_FILE = Path(__file__).parent / ".env"
_DEFAULT_TOKEN_FILE = Path.home() / ".rental_console" / "session.json"


class Settings(BaseSettings):
    api_url: str = "http://localhost:3000/api"
    token_file: Path = _DEFAULT_TOKEN_FILE
    request_timeout: float = 30.0
    refresh_timeout: float | None = 30.0   # None/0: only request_timeout applies
    auth_check_interval: float = 30.0

    model_config = {
        "env_prefix": "RENTAL_",
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
