"""Tests for configuration loading and validation."""

import json

import pytest
import yaml

from raysurfer.config import load_config, validate_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("RAYSURFER_API_KEY", "RAYSURFER_BASE_URL", "RAYSURFER_DEBUG"):
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_load_defaults(self):
        config = load_config(config_dict={})
        assert config.api_key is None
        assert not config.caching_enabled
        assert config.base_url == "https://web-production-3d338.up.railway.app"
        assert config.cache_dir == ".raysurfer_code"
        assert config.api.timeout == 60.0
        assert config.api.max_retries == 3
        assert config.retrieval.top_k == 5
        assert config.retrieval.min_verdict_score == 0.3
        assert config.upload.feedback_sample_rate == 1.0
        assert config.upload.per_file is False
        assert config.agent_access.call == []

    def test_load_from_dict(self):
        config = load_config(config_dict={
            "api_key": "rs-key",
            "base_url": "https://cache.example.com/",
            "api": {"timeout": 5, "max_retries": 1},
            "namespace": {"organization_id": "org-1", "workspace_id": "ws-1", "public_snips": True},
            "retrieval": {"top_k": 8, "prefer_complete": False},
            "upload": {"per_file": True, "feedback_sample_rate": 0.25},
        })
        assert config.caching_enabled
        assert config.base_url == "https://cache.example.com"
        assert config.api.timeout == 5.0
        assert config.api.max_retries == 1
        assert config.namespace.organization_id == "org-1"
        assert config.namespace.public_snips is True
        assert config.retrieval.top_k == 8
        assert config.retrieval.prefer_complete is False
        assert config.upload.per_file is True
        assert config.upload.feedback_sample_rate == 0.25

    def test_load_from_yaml_file(self, tmp_path):
        path = tmp_path / "raysurfer.yaml"
        path.write_text(yaml.dump({
            "api_key": "from-file",
            "retrieval": {"top_k": 2},
            "agent_access": {"call": "tools/*", "deny": ["tools/secret*"]},
        }))
        config = load_config(path)
        assert config.api_key == "from-file"
        assert config.retrieval.top_k == 2
        assert config.agent_access.call == ["tools/*"]
        assert config.agent_access.deny == ["tools/secret*"]

    def test_load_from_json_file(self, tmp_path):
        path = tmp_path / "raysurfer.json"
        path.write_text(json.dumps({"cache_dir": ".cache"}))
        assert load_config(str(path)).cache_dir == ".cache"

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "raysurfer.yaml"
        path.write_text("")
        assert load_config(path).retrieval.top_k == 5

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_discovers_file_in_parent(self, tmp_path, monkeypatch):
        (tmp_path / "raysurfer.yml").write_text("api_key: discovered\n")
        child = tmp_path / "a" / "b"
        child.mkdir(parents=True)
        monkeypatch.chdir(child)
        monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path)
        assert load_config().api_key == "discovered"


class TestEnvOverrides:
    def test_env_wins_over_file_values(self, monkeypatch):
        monkeypatch.setenv("RAYSURFER_API_KEY", "env-key")
        monkeypatch.setenv("RAYSURFER_BASE_URL", "http://localhost:8000/")
        monkeypatch.setenv("RAYSURFER_DEBUG", "true")
        config = load_config(config_dict={"api_key": "file-key", "base_url": "https://x"})
        assert config.api_key == "env-key"
        assert config.base_url == "http://localhost:8000"
        assert config.debug is True

    def test_empty_env_key_ignored(self, monkeypatch):
        monkeypatch.setenv("RAYSURFER_API_KEY", "")
        assert load_config(config_dict={"api_key": "file-key"}).api_key == "file-key"

    @pytest.mark.parametrize("value", ["0", "false", "no", ""])
    def test_debug_flag_falsey(self, monkeypatch, value):
        monkeypatch.setenv("RAYSURFER_DEBUG", value)
        assert load_config(config_dict={}).debug is False


class TestValidateConfig:
    def test_valid(self):
        assert validate_config(load_config(config_dict={})) == []

    def test_collects_every_error(self):
        config = load_config(config_dict={
            "base_url": "ftp://nope",
            "api": {"timeout": 0, "max_retries": -1, "backoff_base": -2},
            "retrieval": {"top_k": 0, "min_verdict_score": 1.5},
            "upload": {"feedback_sample_rate": 2},
            "namespace": {"snips_desired": "everyone"},
            "cache_dir": "",
        })
        errors = validate_config(config)
        assert len(errors) == 9
        assert any("base_url" in e for e in errors)
        assert any("retrieval.top_k" in e for e in errors)
        assert any("snips_desired" in e for e in errors)
