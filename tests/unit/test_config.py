"""Unit tests for configuration loading and schemas."""

import json

import pytest
import yaml
from pydantic import ValidationError

from agent_engine.config import (
    FlowManagerConfig,
    LLMConfig,
    RunnerConfig,
    load_config_file,
    load_flow_config,
    load_flow_configs,
    load_llm_config,
    load_manager_config,
    load_runner_config,
    resolve_flow_path,
)
from agent_engine.config.loader import _expand_env_vars
from agent_engine.models import FlowExecutionMode

FLOW_YAML = """
flow:
  id: yaml-flow
  name: YAML Flow
  version: "1.0.0"
  mode: parallel
  timeout_ms: 5000
  steps:
    - id: greet
      name: Greet
      type: log
      config:
        message: "Hello ${GREETING_TARGET:-world}"
    - id: done
      name: Done
      type: assign
      config:
        values:
          finished: true
      dependencies: [greet]
"""


class TestEnvExpansion:
    """Tests for environment variable expansion."""

    def test_expand(self, monkeypatch):
        """Test ${VAR} and ${VAR:-default} syntax."""
        monkeypatch.setenv("AGENT_ENGINE_TEST_KEY", "secret")
        monkeypatch.delenv("AGENT_ENGINE_MISSING", raising=False)

        data = {
            "key": "${AGENT_ENGINE_TEST_KEY}",
            "nested": ["${AGENT_ENGINE_MISSING:-fallback}", "${AGENT_ENGINE_MISSING}", 3],
        }

        assert _expand_env_vars(data) == {"key": "secret", "nested": ["fallback", "", 3]}


class TestLoaders:
    """Tests for configuration file loaders."""

    def test_load_flow_yaml(self, tmp_path, monkeypatch):
        """Test loading a flow from YAML under a flow key."""
        monkeypatch.setenv("GREETING_TARGET", "ada")
        path = tmp_path / "flow.yaml"
        path.write_text(FLOW_YAML)

        config = load_flow_config(path)

        assert config.id == "yaml-flow"
        assert config.mode == FlowExecutionMode.PARALLEL
        assert config.steps[0].config["message"] == "Hello ada"
        assert config.steps[1].dependencies == ["greet"]

    def test_load_flow_json(self, tmp_path):
        """Test loading a flow from JSON without a wrapper key."""
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({"id": "json-flow", "name": "JSON", "version": "2", "steps": []}))

        assert load_flow_config(path).id == "json-flow"

    def test_load_flow_directory(self, tmp_path):
        """Test loading every flow file of a directory in name order."""
        (tmp_path / "b.json").write_text(json.dumps({"id": "b", "name": "B", "version": "1"}))
        (tmp_path / "a.yml").write_text(yaml.safe_dump({"id": "a", "name": "A", "version": "1"}))
        (tmp_path / "notes.txt").write_text("ignored")

        assert [config.id for config in load_flow_configs(tmp_path)] == ["a", "b"]

    def test_resolve_flow_path(self, tmp_path):
        """Test resolving flow files by name."""
        flows_dir = tmp_path / "flows"
        flows_dir.mkdir()
        (flows_dir / "daily.yaml").write_text("id: daily")

        assert resolve_flow_path("daily", tmp_path) == flows_dir / "daily.yaml"
        with pytest.raises(FileNotFoundError):
            resolve_flow_path("missing", tmp_path)

    def test_section_loaders(self, tmp_path):
        """Test loaders that accept a named section."""
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "flow_manager": {"max_concurrent_executions": 4, "executor": {"max_concurrent_steps": 2}},
                    "runner": {"max_iterations": 3, "max_history_size": 50},
                    "llm": {"model": "gpt-4o-mini", "temperature": 0.2},
                }
            )
        )

        manager = load_manager_config(path)
        assert manager.max_concurrent_executions == 4
        assert manager.executor.max_concurrent_steps == 2
        assert load_runner_config(path).max_history_size == 50
        assert load_llm_config(path).temperature == 0.2

    def test_errors(self, tmp_path):
        """Test missing files, unknown extensions and non-mapping roots."""
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "missing.yaml")

        unknown = tmp_path / "config.toml"
        unknown.write_text("")
        with pytest.raises(ValueError, match="Cannot detect config type"):
            load_config_file(unknown)

        listing = tmp_path / "list.json"
        listing.write_text("[1, 2]")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_config_file(listing)


class TestSchemas:
    """Tests for configuration schemas."""

    def test_defaults(self):
        """Test default values."""
        manager = FlowManagerConfig()
        assert manager.max_concurrent_executions == 10
        assert manager.default_timeout_ms == 30 * 60 * 1000
        assert manager.default_retry.max_retries == 3
        assert manager.executor.step_timeout_ms == 5 * 60 * 1000

        runner = RunnerConfig()
        assert runner.max_iterations == 10
        assert runner.max_history_size == 1000

    def test_llm_config_bounds(self):
        """Test LLM configuration validation."""
        assert LLMConfig(model="m").api_key_env == "OPENAI_API_KEY"
        with pytest.raises(ValidationError):
            LLMConfig(model="m", temperature=3)
        with pytest.raises(ValidationError):
            LLMConfig(model="m", api_type="unknown")

    def test_manager_config_bounds(self):
        """Test manager configuration validation."""
        with pytest.raises(ValidationError):
            FlowManagerConfig(max_concurrent_executions=0)
        with pytest.raises(ValidationError):
            FlowManagerConfig(executor={"step_timeout_ms": 0})
