"""
Configuration loading for resource-cache.

ResourceConfig describes one cached resource and is validated at
construction. ServiceConfig wraps it with HTTP service settings: non-secret
settings come from config.yaml, secrets from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DependencyConfig(BaseModel):
    """One external state value the fetch depends on."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    allow_blank: bool = False
    stale_on_change: bool = False


class ResourceSettings(BaseModel):
    """Static, serializable settings of a cached resource."""

    model_config = ConfigDict(frozen=True)

    name: str

    # Durations in seconds; None means never
    stale_after: Optional[float] = Field(default=None, gt=0)
    retry_after: Optional[float] = Field(default=None, gt=0)
    expire_after: Optional[float] = Field(default=None, gt=0)

    dependencies: list[DependencyConfig] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name parameter is required")
        return value

    @field_validator("stale_after", "retry_after", "expire_after", mode="before")
    @classmethod
    def parse_never(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() == "never":
            return None
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def normalize_dependencies(cls, value: Any) -> Any:
        # Accept "key", {"key": ...} or a list mixing both
        if value is None:
            return []
        if isinstance(value, (str, dict, DependencyConfig)):
            value = [value]
        return [{"key": item} if isinstance(item, str) else item for item in value]

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "ResourceSettings":
        keys = [dep.key for dep in self.dependencies]
        duplicates = [k for k in keys if keys.count(k) > 1]
        if duplicates:
            raise ValueError(f"Duplicate dependency keys: {set(duplicates)}")
        return self

    @property
    def dependency_keys(self) -> list[str]:
        return [dep.key for dep in self.dependencies]


class ResourceConfig(ResourceSettings):
    """Settings plus the fetch operation. One per resource instance."""

    fetch_operation: Callable[..., Awaitable[Any]]
    initial_data: Any = None

    @property
    def has_initial_data(self) -> bool:
        """True when initial_data was given, even if it is None."""
        return "initial_data" in self.model_fields_set


class ServiceConfig(BaseModel):
    """Service configuration. Secrets come from env vars, rest from YAML."""

    # Secrets (from environment only)
    api_key: Optional[str] = None
    source_api_key: Optional[str] = None

    # Upstream source
    source_url: str
    data_field: Optional[str] = None
    request_timeout: float = Field(default=10.0, gt=0)

    # How often the reactor re-checks the view while time passes
    reevaluate_interval: float = Field(default=1.0, gt=0)

    resource: ResourceSettings
    initial_state: dict[str, Any] = Field(default_factory=dict)

    def build_resource_config(
        self, fetch_operation: Callable[..., Awaitable[Any]]
    ) -> ResourceConfig:
        """Combine the resource settings with a fetch operation."""
        return ResourceConfig(
            **self.resource.model_dump(), fetch_operation=fetch_operation
        )


def load_config(config_path: str | None = None) -> ServiceConfig:
    """
    Load configuration from YAML file + environment variables.

    Args:
        config_path: Path to config.yaml. If None, reads CONFIG_PATH env var
                     (default: config.yaml in current directory).

    Returns:
        Validated ServiceConfig instance.
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    # Inject secrets from environment (never from YAML)
    config_data = {
        **raw,
        "api_key": os.environ.get("API_KEY"),
        "source_api_key": os.environ.get("SOURCE_API_KEY"),
    }

    return ServiceConfig(**config_data)
