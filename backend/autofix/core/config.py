from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MONITOR_API_BASE = "https://sentry.io/api/0"
DEFAULT_GITHUB_API_BASE = "https://api.github.com"
DEFAULT_ISSUE_WEBHOOK_ACTIONS = ["created", "regression"]


class Settings(BaseSettings):
    app_env: str = "development"
    database_url: str = "sqlite+aiosqlite:///./data/autofix.db"

    webhook_secret: str | None = None

    max_concurrent_fixes: int = 1
    max_attempts_per_issue: int = 2

    repos_dir: str = "/tmp/autofix-repos"
    agent_command: List[str] = []
    agent_model: str = "sonnet"
    agent_timeout_seconds: int | None = None

    monitor_api_base: str = DEFAULT_MONITOR_API_BASE
    monitor_auth_token: str | None = None
    monitor_org_slug: str | None = None
    monitor_api_timeout: float = 15.0

    github_api_base: str = DEFAULT_GITHUB_API_BASE
    github_token: str | None = None
    pr_label: str = "autofix"

    projects_config_path: str = "./config.json"
    issue_webhook_actions: List[str] = DEFAULT_ISSUE_WEBHOOK_ACTIONS

    sse_keepalive_seconds: float = 15.0
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator(
        "webhook_secret",
        "monitor_auth_token",
        "monitor_org_slug",
        "github_token",
        "agent_timeout_seconds",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("max_concurrent_fixes", "max_attempts_per_issue")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.monitor_auth_token and self.monitor_org_slug)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
