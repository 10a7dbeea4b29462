import warnings
from typing import Literal

from pydantic import PostgresDsn, computed_field, model_validator
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "rssflow"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "rssflow"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return MultiHostUrl.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Script engine: wall-clock budget per invocation (seconds). Covers
    # child start-up, script CPU time and any capability calls it awaits.
    SCRIPT_EXEC_TIMEOUT: float = 5.0
    # multiprocessing start method for the sandbox child ("spawn" keeps no
    # host memory in the child).
    SCRIPT_PROCESS_START_METHOD: Literal["spawn", "forkserver", "fork"] = "spawn"

    # Outbound HTTP from scripts (http / webhook bindings)
    SCRIPT_HTTP_TIMEOUT: float = 10.0
    # Comma-separated host patterns: "*", "api.example.com", "*.example.com"
    SCRIPT_HTTP_ALLOWED_HOSTS: str = "*"
    SCRIPT_HTTP_BLOCK_PRIVATE: bool = True
    SCRIPT_WEBHOOK_USER_AGENT: str = "RSS-Service-Webhook/1.0"

    # LLM client exposed to scripts
    SCRIPT_LLM_BASE_URL: str | None = None
    SCRIPT_LLM_DEFAULT_MODEL: str = "gpt-3.5-turbo"
    SCRIPT_LLM_DEFAULT_EMBEDDING_MODEL: str = "text-embedding-ada-002"
    SCRIPT_LLM_DEFAULT_TEMPERATURE: float = 0.7
    SCRIPT_LLM_DEFAULT_MAX_TOKENS: int = 1000
    SCRIPT_LLM_MAX_TOKENS: int = 2000
    SCRIPT_LLM_TIMEOUT: float = 30.0

    # Execution log + retention sweeps
    SCRIPT_LOG_SOURCE_MAX_LEN: int = 1000
    SCRIPT_LOG_RETENTION_DAYS: int = 7
    ARTICLE_RETENTION_DAYS: int = 30

    # Max scripts run at once by the editor "test script" operation
    SCRIPT_TEST_CONCURRENCY: int = 5

    @property
    def script_http_allowed_hosts(self) -> frozenset[str]:
        raw = (self.SCRIPT_HTTP_ALLOWED_HOSTS or "").strip()
        return frozenset(h.strip().lower() for h in raw.split(",") if h.strip())

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        return self


settings = Settings()  # type: ignore
