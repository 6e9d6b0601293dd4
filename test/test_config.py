"""Tests for resource configuration and config loading."""

import pytest
from pydantic import ValidationError

from resource_cache.config import (
    DependencyConfig,
    ResourceConfig,
    ResourceSettings,
    load_config,
)


async def _fetch(context):
    return "One"


@pytest.fixture()
def valid_config_yaml(tmp_path):
    """Write a minimal valid config.yaml and return its path."""
    content = """\
source_url: "http://localhost:9999/items"
data_field: "data"

resource:
  name: "items"
  stale_after: 60
  retry_after: 10
  expire_after: never
  dependencies:
    - "page"
    - key: "page_size"
      allow_blank: true
      stale_on_change: true

initial_state:
  page: 1
"""
    p = tmp_path / "config.yaml"
    p.write_text(content)
    return str(p)


class TestResourceConfig:
    def test_minimal(self):
        config = ResourceConfig(name="test_resource", fetch_operation=_fetch)
        assert config.stale_after is None
        assert config.retry_after is None
        assert config.expire_after is None
        assert config.dependencies == []
        assert config.has_initial_data is False

    def test_missing_name(self):
        with pytest.raises(ValidationError, match="name"):
            ResourceConfig(fetch_operation=_fetch)

    def test_blank_name(self):
        with pytest.raises(ValidationError, match="name parameter is required"):
            ResourceConfig(name="  ", fetch_operation=_fetch)

    def test_missing_fetch_operation(self):
        with pytest.raises(ValidationError, match="fetch_operation"):
            ResourceConfig(name="test_resource")

    def test_fetch_operation_must_be_callable(self):
        with pytest.raises(ValidationError, match="fetch_operation"):
            ResourceConfig(name="test_resource", fetch_operation="")

    def test_durations_must_be_positive(self):
        with pytest.raises(ValidationError, match="stale_after"):
            ResourceConfig(name="r", fetch_operation=_fetch, stale_after=0)

    def test_never_means_none(self):
        config = ResourceConfig(
            name="r", fetch_operation=_fetch, retry_after="never", expire_after="Never"
        )
        assert config.retry_after is None
        assert config.expire_after is None

    def test_is_immutable(self):
        config = ResourceConfig(name="r", fetch_operation=_fetch)
        with pytest.raises(ValidationError):
            config.stale_after = 5

    def test_initial_data_none_is_tracked(self):
        config = ResourceConfig(name="r", fetch_operation=_fetch, initial_data=None)
        assert config.has_initial_data is True


class TestDependencyNormalization:
    def test_single_key(self):
        config = ResourceSettings(name="r", dependencies="page")
        assert config.dependencies == [DependencyConfig(key="page")]

    def test_single_mapping(self):
        config = ResourceSettings(
            name="r", dependencies={"key": "page", "stale_on_change": True}
        )
        assert config.dependencies[0].stale_on_change is True
        assert config.dependencies[0].allow_blank is False

    def test_mixed_list(self):
        config = ResourceSettings(
            name="r", dependencies=["page", {"key": "page_size", "allow_blank": True}]
        )
        assert config.dependency_keys == ["page", "page_size"]
        assert config.dependencies[1].allow_blank is True

    def test_duplicate_keys_raises(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            ResourceSettings(name="r", dependencies=["page", {"key": "page"}])

    def test_empty_key_raises(self):
        with pytest.raises(ValidationError):
            ResourceSettings(name="r", dependencies=[""])


class TestLoadConfig:
    def test_loads_valid_config(self, valid_config_yaml):
        config = load_config(valid_config_yaml)
        assert config.source_url == "http://localhost:9999/items"
        assert config.data_field == "data"
        assert config.resource.name == "items"
        assert config.resource.stale_after == 60
        assert config.resource.retry_after == 10
        assert config.resource.expire_after is None
        assert config.resource.dependency_keys == ["page", "page_size"]
        assert config.initial_state == {"page": 1}

    def test_defaults_applied(self, tmp_path):
        p = tmp_path / "config.yaml"
        p.write_text('source_url: "http://x"\nresource:\n  name: "r"\n')
        config = load_config(str(p))
        assert config.request_timeout == 10.0
        assert config.reevaluate_interval == 1.0
        assert config.data_field is None
        assert config.initial_state == {}

    def test_env_overrides_secrets(self, valid_config_yaml, monkeypatch):
        monkeypatch.setenv("SOURCE_API_KEY", "upstream-key")
        monkeypatch.setenv("API_KEY", "my-secret")
        config = load_config(valid_config_yaml)
        assert config.source_api_key == "upstream-key"
        assert config.api_key == "my-secret"

    def test_secrets_none_when_not_set(self, valid_config_yaml, monkeypatch):
        monkeypatch.delenv("SOURCE_API_KEY", raising=False)
        monkeypatch.delenv("API_KEY", raising=False)
        config = load_config(valid_config_yaml)
        assert config.source_api_key is None
        assert config.api_key is None

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_missing_resource_raises(self, tmp_path):
        p = tmp_path / "config.yaml"
        p.write_text('source_url: "http://x"\n')
        with pytest.raises(ValidationError, match="resource"):
            load_config(str(p))

    def test_missing_resource_name_raises(self, tmp_path):
        p = tmp_path / "config.yaml"
        p.write_text('source_url: "http://x"\nresource:\n  stale_after: 5\n')
        with pytest.raises(ValidationError, match="name"):
            load_config(str(p))

    def test_empty_file_raises(self, tmp_path):
        p = tmp_path / "config.yaml"
        p.write_text("")
        with pytest.raises(ValidationError):
            load_config(str(p))

    def test_config_path_from_env(self, valid_config_yaml, monkeypatch):
        monkeypatch.setenv("CONFIG_PATH", valid_config_yaml)
        config = load_config()
        assert config.resource.name == "items"

    def test_build_resource_config(self, valid_config_yaml):
        config = load_config(valid_config_yaml).build_resource_config(_fetch)
        assert isinstance(config, ResourceConfig)
        assert config.name == "items"
        assert config.fetch_operation is _fetch
        assert config.dependencies[1].stale_on_change is True
