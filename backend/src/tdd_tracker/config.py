from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


StoreShape = Literal["normalized", "denormalized"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+aiosqlite:///./tdd_tracking.db", alias="DATABASE_URL")
    store_shape: StoreShape = Field(default="normalized", alias="STORE_SHAPE")
    user_id: str = Field(default="", alias="USER_ID")
    repo_path: str = Field(default=".", alias="REPO_PATH")
    default_branch: str = Field(default="main", alias="DEFAULT_BRANCH")
    build_file: str = Field(default="package.json", alias="BUILD_FILE")
    test_command: str = Field(default="npx jest --coverage --json --passWithNoTests", alias="TEST_COMMAND")
    test_timeout_seconds: int = Field(default=600, alias="TEST_TIMEOUT_SECONDS")
    git_timeout_seconds: int = Field(default=30, alias="GIT_TIMEOUT_SECONDS")
    test_log_path: str = Field(default="history_execution.json", alias="TEST_LOG_PATH")

    @property
    def test_argv(self) -> List[str]:
        return [p for p in self.test_command.split() if p]


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
