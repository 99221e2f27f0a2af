"""Shared fixtures and fake collaborators for raysurfer tests."""

from __future__ import annotations

from typing import Any

import pytest

from raysurfer.config import load_config
from raysurfer.types import (
    FileWritten,
    RaysurferConfig,
    RemoteArtifact,
    SearchResult,
    StoreExecutionResult,
    UploadResult,
)


def make_artifact(n: int = 1, **overrides) -> RemoteArtifact:
    fields = {
        "id": f"cb-{n}",
        "filename": f"snippet_{n}.py",
        "source": f"def snippet_{n}():\n    return {n}\n",
        "entrypoint": f"snippet_{n}",
        "description": f"Snippet number {n}",
        "language": "python",
        "dependencies": {},
        "score": 0.8,
    }
    fields.update(overrides)
    return RemoteArtifact(**fields)


# ---------------------------------------------------------------------------
# Agent message builders (wire-dict shape)
# ---------------------------------------------------------------------------

def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def tool_use(name: str, **tool_input) -> dict:
    return {"type": "tool_use", "id": f"tu_{name}", "name": name, "input": tool_input}


def assistant(*blocks: dict) -> dict:
    return {"type": "assistant", "message": {"role": "assistant", "content": list(blocks)}}


def result(subtype: str = "success") -> dict:
    return {"type": "result", "subtype": subtype, "is_error": subtype != "success"}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClient:
    """In-memory RaySurfer stand-in that records every call."""

    def __init__(
        self,
        artifacts: list[RemoteArtifact] | None = None,
        search_error: Exception | None = None,
        upload_error: Exception | None = None,
    ):
        self.artifacts = artifacts or []
        self.search_error = search_error
        self.upload_error = upload_error
        self.search_calls: list[dict] = []
        self.upload_calls: list[dict] = []
        self.upload_file_calls: list[dict] = []
        self.vote_calls: list[dict] = []
        self.execution_calls: list[dict] = []
        self.execution_error: Exception | None = None
        self.closed = False

    @property
    def network_calls(self) -> int:
        return (
            len(self.search_calls) + len(self.upload_calls)
            + len(self.upload_file_calls) + len(self.vote_calls) + len(self.execution_calls)
        )

    async def search(self, task, top_k=5, min_verdict_score=0.3, prefer_complete=True, workspace_id=None):
        self.search_calls.append({
            "task": task,
            "top_k": top_k,
            "min_verdict_score": min_verdict_score,
            "prefer_complete": prefer_complete,
            "workspace_id": workspace_id,
        })
        if self.search_error:
            raise self.search_error
        found = self.artifacts[:top_k]
        return SearchResult(artifacts=list(found), total_found=len(found), cache_hit=bool(found))

    async def upload(self, task, files_written: list[FileWritten], **kwargs):
        self.upload_calls.append({"task": task, "files_written": list(files_written), **kwargs})
        if self.upload_error:
            raise self.upload_error
        return UploadResult(success=True, code_blocks_stored=len(files_written), message="stored")

    async def upload_file(self, task, file_written: FileWritten, **kwargs):
        self.upload_file_calls.append({"task": task, "file_written": file_written, **kwargs})
        if self.upload_error:
            raise self.upload_error
        name = file_written.path.rsplit(".", 1)[0]
        return UploadResult(success=True, code_blocks_stored=1, snippet_name=f"snip-{name}")

    async def vote(self, task, artifact, succeeded):
        self.vote_calls.append({"task": task, "artifact": artifact, "succeeded": succeeded})
        return True

    async def store_execution(self, code_block_id, triggering_task, input_data, output_data, **kwargs):
        self.execution_calls.append({
            "code_block_id": code_block_id,
            "triggering_task": triggering_task,
            "input_data": input_data,
            "output_data": output_data,
            **kwargs,
        })
        if self.execution_error:
            raise self.execution_error
        return StoreExecutionResult(success=True, execution_id=f"ex-{len(self.execution_calls)}")

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()


class FakeAgentStream:
    """Async iterator over canned messages, optionally raising at the end."""

    def __init__(self, messages: list[Any], error: Exception | None = None):
        self.messages = list(messages)
        self.error = error
        self.pulled = 0
        self.closed = False
        self.interrupted = False
        self.model: str | None = None

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        if self.pulled < len(self.messages):
            message = self.messages[self.pulled]
            self.pulled += 1
            return message
        if self.error is not None:
            raise self.error
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True

    async def interrupt(self):
        self.interrupted = True

    async def set_model(self, model):
        self.model = model


class RecordingFactory:
    """Stream factory that hands out one FakeAgentStream and records its inputs."""

    def __init__(self, stream: FakeAgentStream | None = None, error: Exception | None = None):
        self.stream = stream or FakeAgentStream([])
        self.error = error
        self.calls: list[tuple[str, Any]] = []

    def __call__(self, prompt, options):
        self.calls.append((prompt, options))
        if self.error is not None:
            raise self.error
        return self.stream


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> RaysurferConfig:
    return load_config(config_dict={
        "api_key": "test-key",
        "base_url": "https://cache.test",
        "api": {"backoff_base": 0},
    })


@pytest.fixture
def disabled_config(monkeypatch) -> RaysurferConfig:
    monkeypatch.delenv("RAYSURFER_API_KEY", raising=False)
    return load_config(config_dict={})


@pytest.fixture
def sample_artifacts() -> list[RemoteArtifact]:
    return [make_artifact(1), make_artifact(2), make_artifact(3, filename="pkg/helpers.py")]
