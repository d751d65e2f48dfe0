"""Memory configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (DEBUG_MEMORY_* prefix)
    - Default values

Key components:
    - MemoryConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
    - memory_paths(): Directory layout for the record store
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from unittest.mock import patch

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from debugmemory.core.result import ConfigurationError

CONFIG_ENV_VAR = "DEBUG_MEMORY_CONFIG"
SHARED_MEMORY_DIR = Path.home() / ".debug-memory"
LOCAL_MEMORY_DIRNAME = ".debug-memory"


class MemoryConfig(BaseSettings):
    """Configuration for retrieval, extraction and storage location."""

    model_config = SettingsConfigDict(
        env_prefix="DEBUG_MEMORY_",
        extra="ignore",
    )

    storage_mode: Literal["local", "shared"] = Field(
        default="local",
        description="local keeps memory beside the project, shared uses the home directory.",
    )
    memory_path: Path | None = Field(
        default=None, description="Explicit memory directory; derived from storage_mode if unset."
    )
    similarity_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Minimum score for retrieval results."
    )
    max_results: int = Field(default=5, ge=1, description="Maximum results returned by a search.")
    search_timeout: float | None = Field(
        default=30.0, gt=0.0, description="Seconds allowed for loading the corpus per search."
    )
    auto_extract: bool = Field(
        default=True, description="Try pattern extraction right after storing an incident."
    )
    auto_extract_min_similar: int = Field(
        default=3, ge=1, description="Cluster size required by the auto-extraction trigger."
    )
    auto_extract_min_quality: float = Field(
        default=0.75, ge=0.0, le=1.0, description="Commonality required by the trigger."
    )
    extract_min_incidents: int = Field(
        default=3, ge=1, description="Cluster size required by batch extraction."
    )
    extract_min_similarity: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Commonality required by batch extraction."
    )
    log_level: str = Field(default="INFO", description="Log level for dmem output.")

    @model_validator(mode="after")
    def resolve_memory_path(self) -> MemoryConfig:
        """Derive the memory directory from the storage mode when not given."""
        if self.memory_path is None:
            if self.storage_mode == "shared":
                self.memory_path = SHARED_MEMORY_DIR
            else:
                self.memory_path = Path.cwd() / LOCAL_MEMORY_DIRNAME
        self.memory_path = Path(self.memory_path).expanduser()
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


@dataclass(frozen=True)
class MemoryPaths:
    root: Path
    incidents: Path
    patterns: Path


def memory_paths(config: MemoryConfig) -> MemoryPaths:
    """Return the directory layout used by the JSON record store."""
    root = Path(config.memory_path or SHARED_MEMORY_DIR)
    return MemoryPaths(root=root, incidents=root / "incidents", patterns=root / "patterns")


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.home() / ".debug-memory.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables."""
    prefix = MemoryConfig.model_config.get("env_prefix", "")
    overrides: set[str] = set()
    for field in MemoryConfig.model_fields:
        if f"{prefix}{field}".upper() in env_vars:
            overrides.add(field)
    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[MemoryConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = MemoryConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        # The environment may be the invalid source, so build defaults without it.
        config = MemoryConfig.model_construct().resolve_memory_path()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigLoadResult",
    "MemoryConfig",
    "MemoryPaths",
    "load_config",
    "memory_paths",
]
