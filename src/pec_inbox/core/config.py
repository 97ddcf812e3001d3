"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity to the PEC provider."""

    host: str = Field(default="imaps.pec.aruba.it", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="PEC mailbox address")
    password: str | None = Field(default=None, description="PEC mailbox password")
    folder: str = Field(default="INBOX", description="Folder selected on connect")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    timeout_seconds: float | None = Field(
        default=30.0, description="Socket timeout handed to the IMAP client"
    )


class FetchSettings(BaseModel):
    """Settings controlling how message listings are fetched."""

    batch_size: int = Field(
        default=50, ge=1, description="UIDs per ENVELOPE/BODYSTRUCTURE fetch"
    )
    limit: int | None = Field(
        default=None, ge=1, description="Maximum messages returned by a listing"
    )
    newest_first: bool = Field(
        default=True, description="List messages by descending UID"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle key=value structured logging"
    )
    imapclient_level: str = Field(
        default="WARNING", description="Level for the imapclient protocol logger"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "PEC_INBOX_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowercase_value = value.lower()
    if lowercase_value == "true":
        return True
    if lowercase_value == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "FetchSettings",
    "ImapSettings",
    "LoggingSettings",
    "load_app_settings",
]
