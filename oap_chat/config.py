"""Application configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from oap_chat.prompts import SYSTEM_INSTRUCTION


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    gemini_api_key: str = Field(..., alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )
    mcp_server_url: str = Field(default="http://localhost:3000/sse", alias="MCP_SERVER_URL")
    backend_url: str = Field(default="http://localhost:4000", alias="BACKEND_URL")
    persistence_backend: Literal["http", "sqlite"] = Field(default="http", alias="PERSISTENCE_BACKEND")
    database_path: Path = Field(default=Path("oap_chat.db"), alias="DATABASE_PATH")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    max_tool_iterations: int = Field(default=8, ge=1, alias="MAX_TOOL_ITERATIONS")
    chat_title_length: int = Field(default=30, ge=1, alias="CHAT_TITLE_LENGTH")
    system_instruction_path: Path | None = Field(default=None, alias="SYSTEM_INSTRUCTION_PATH")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def load_system_instruction(settings: Settings) -> str:
    """Return the operating procedure sent as the model's system instruction.

    A file configured via SYSTEM_INSTRUCTION_PATH replaces the built-in text.
    """
    if settings.system_instruction_path is None:
        return SYSTEM_INSTRUCTION
    return settings.system_instruction_path.read_text(encoding="utf-8")
