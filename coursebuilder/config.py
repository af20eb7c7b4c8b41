"""
Runtime settings.

Everything is read from environment variables (COURSEBUILDER_*) or a
local .env file through pydantic-settings. Paths default to the package
data directory, like the storage module; CLI flags override them per
invocation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coursebuilder.firestore import FirestoreCourseStore
from coursebuilder.model import Actor
from coursebuilder.storage import JsonCourseStore

PREFIX = "COURSEBUILDER_"


def _default_home() -> Path:
    return Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    """Editor settings: storage backend, acting user and paths."""

    home: Path = Field(default_factory=_default_home, description="Directory for the draft and local store")
    backend: Literal["local", "firestore"] = Field(default="local", description="Course store backend")

    # Firestore backend
    project_id: str = ""
    school_id: str = ""
    api_key: str = ""
    id_token: str = ""
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # Acting user, as the identity provider reports it
    user_id: str = ""
    role: Literal["admin", "teacher", "student", "parent"] = "teacher"
    user_name: str = ""

    model_config = SettingsConfigDict(
        env_prefix=PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        str_strip_whitespace=True,
        extra="ignore",
    )

    @field_validator("home", mode="before")
    @classmethod
    def parse_home(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return _default_home()
        return Path(str(v).strip()).expanduser()

    @field_validator("backend", "role", mode="before")
    @classmethod
    def lower_choice(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("timeout")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @property
    def draft_path(self) -> Path:
        return self.home / "draft.json"

    @property
    def local_store_path(self) -> Path:
        return self.home / "courses.json"

    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, display_name=self.user_name)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the process environment and .env, or only from
    ``environ`` when it is given.

    Raises ValueError (pydantic's ValidationError) for an unknown
    backend/role or a bad timeout.
    """
    if environ is None:
        return Settings()

    values = {key[len(PREFIX):].lower(): value for key, value in environ.items() if key.upper().startswith(PREFIX)}
    # model_validate skips the environment and .env sources
    return Settings.model_validate(values)


def make_store(settings: Settings, store_path: str | Path | None = None):
    """
    Create the course store selected by settings.backend.
    """
    if settings.backend == "firestore":
        return FirestoreCourseStore(
            project_id=settings.project_id,
            school_id=settings.school_id,
            api_key=settings.api_key,
            id_token=settings.id_token,
            timeout=settings.timeout,
        )

    return JsonCourseStore(store_path if store_path is not None else settings.local_store_path)
