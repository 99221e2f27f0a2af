"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml

from .types import (
    AgentAccessRules,
    ApiConfig,
    NamespaceConfig,
    RaysurferConfig,
    RetrievalConfig,
    UploadConfig,
)

CONFIG_FILENAMES = [
    "raysurfer.yaml",
    "raysurfer.yml",
    "raysurfer.json",
]

ENV_API_KEY = "RAYSURFER_API_KEY"
ENV_BASE_URL = "RAYSURFER_BASE_URL"
ENV_DEBUG = "RAYSURFER_DEBUG"

SNIPS_DESIRED_VALUES = ("company", "client")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _string_list(value: Any) -> list[str]:
    """Accept a YAML list, a single string, or nothing."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return []


def _parse_agent_access(raw: dict[str, Any]) -> AgentAccessRules:
    return AgentAccessRules(
        read=_string_list(raw.get("read")),
        call=_string_list(raw.get("call")),
        deny=_string_list(raw.get("deny")),
    )


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _build_config(raw: dict[str, Any]) -> RaysurferConfig:
    """Build a RaysurferConfig from a raw dict, then apply env overrides."""
    api_raw = raw.get("api", {}) or {}
    api_config = ApiConfig(
        timeout=float(api_raw.get("timeout", 60.0)),
        max_retries=int(api_raw.get("max_retries", 3)),
        backoff_base=float(api_raw.get("backoff_base", 1.0)),
    )

    ns_raw = raw.get("namespace", {}) or {}
    namespace_config = NamespaceConfig(
        organization_id=ns_raw.get("organization_id"),
        workspace_id=ns_raw.get("workspace_id"),
        public_snips=bool(ns_raw.get("public_snips", False)),
        snips_desired=ns_raw.get("snips_desired"),
        name=ns_raw.get("name"),
    )

    retrieval_raw = raw.get("retrieval", {}) or {}
    retrieval_config = RetrievalConfig(
        top_k=int(retrieval_raw.get("top_k", 5)),
        min_verdict_score=float(retrieval_raw.get("min_verdict_score", 0.3)),
        prefer_complete=bool(retrieval_raw.get("prefer_complete", True)),
    )

    upload_raw = raw.get("upload", {}) or {}
    upload_config = UploadConfig(
        feedback_sample_rate=float(upload_raw.get("feedback_sample_rate", 1.0)),
        per_file=bool(upload_raw.get("per_file", False)),
        min_code_block_chars=int(upload_raw.get("min_code_block_chars", 50)),
    )

    config = RaysurferConfig(
        api_key=raw.get("api_key"),
        base_url=raw.get("base_url", RaysurferConfig.base_url),
        cache_dir=raw.get("cache_dir", ".raysurfer_code"),
        debug=bool(raw.get("debug", False)),
        api=api_config,
        namespace=namespace_config,
        retrieval=retrieval_config,
        upload=upload_config,
        agent_access=_parse_agent_access(raw.get("agent_access", {}) or {}),
    )

    # Environment wins over file values
    env_key = os.environ.get(ENV_API_KEY)
    if env_key:
        config.api_key = env_key
    env_url = os.environ.get(ENV_BASE_URL)
    if env_url:
        config.base_url = env_url
    if _env_flag(os.environ.get(ENV_DEBUG)):
        config.debug = True

    config.base_url = config.base_url.rstrip("/")
    return config


def validate_config(config: RaysurferConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if not config.base_url.startswith(("http://", "https://")):
        errors.append(f"base_url must be an http(s) URL, got '{config.base_url}'")

    if config.api.timeout <= 0:
        errors.append(f"api.timeout must be > 0 (got {config.api.timeout})")

    if config.api.max_retries < 0:
        errors.append(f"api.max_retries must be >= 0 (got {config.api.max_retries})")

    if config.api.backoff_base < 0:
        errors.append(f"api.backoff_base must be >= 0 (got {config.api.backoff_base})")

    if config.retrieval.top_k < 1:
        errors.append(f"retrieval.top_k must be >= 1 (got {config.retrieval.top_k})")

    if not 0.0 <= config.retrieval.min_verdict_score <= 1.0:
        errors.append(
            f"retrieval.min_verdict_score must be within [0, 1] "
            f"(got {config.retrieval.min_verdict_score})"
        )

    if not 0.0 <= config.upload.feedback_sample_rate <= 1.0:
        errors.append(
            f"upload.feedback_sample_rate must be within [0, 1] "
            f"(got {config.upload.feedback_sample_rate})"
        )

    snips = config.namespace.snips_desired
    if snips is not None and snips not in SNIPS_DESIRED_VALUES:
        errors.append(
            f"namespace.snips_desired must be one of {', '.join(SNIPS_DESIRED_VALUES)} "
            f"(got '{snips}')"
        )

    if not config.cache_dir:
        errors.append("cache_dir must not be empty")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> RaysurferConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
