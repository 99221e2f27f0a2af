"""Cached agent sessions: a lazy, intercepting, finalize-once stream wrapper.

Usage mirrors the agent SDK's own ``query``::

    async with query("Build a CSV parser", {"cwd": "/work"}) as stream:
        async for message in stream:
            print(message)

Nothing happens until the first pull. Initialization then retrieves cached
artifacts, writes them into ``<cwd>/.raysurfer_code``, and appends a
description of them to the system prompt before opening the wrapped stream.
Every message is re-yielded unmodified. When the stream ends (exhausted,
closed early, or raised) the files the agent produced are uploaded exactly
once, and only when the run reported success.

Caching failures are logged and never reach the consumer. Errors raised by
the wrapped stream do.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import inspect
import logging
import os
import random
from pathlib import Path
from typing import Any, AsyncIterable, Callable

import yaml

from .client import RaySurfer
from .config import load_config
from .core.changeset import read_text_file
from .core.interceptor import StreamInterceptor
from .core.materializer import materialize
from .core.messages import parse_event
from .core.prompt_builder import build_artifact_prompt
from .types import (
    FileWritten,
    NotInitialized,
    PendingUpload,
    RaysurferConfig,
    RaysurferError,
    RemoteArtifact,
    SessionState,
    UploadResult,
)

logger = logging.getLogger(__name__)

StreamFactory = Callable[[str, Any], Any]

_disabled_warning_emitted = False


def _load_config_or_default() -> RaysurferConfig:
    """Auto-discovered config; a broken config file disables caching instead of raising."""
    try:
        return load_config()
    except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable raysurfer config, caching disabled: %s", e)
        return RaysurferConfig()


def _warn_caching_disabled() -> None:
    global _disabled_warning_emitted
    if not _disabled_warning_emitted:
        _disabled_warning_emitted = True
        logger.warning("RAYSURFER_API_KEY not set, caching disabled")


# ---------------------------------------------------------------------------
# Options helpers (dicts or claude-agent-sdk option objects)
# ---------------------------------------------------------------------------

def _option(options: Any, name: str, default: Any = None) -> Any:
    if isinstance(options, dict):
        return options.get(name, default)
    return getattr(options, name, default)


def _append_prompt(current: Any, fragment: str) -> Any:
    # {"type": "preset", "preset": "claude_code", "append": "..."}
    if isinstance(current, dict):
        updated = dict(current)
        updated["append"] = (current.get("append") or "") + fragment
        return updated
    return (current or "") + fragment


def augment_options(options: Any, fragment: str) -> Any:
    """Copy of options with *fragment* appended to the system prompt."""
    if not fragment:
        return options
    prompt = _append_prompt(_option(options, "system_prompt"), fragment)
    if options is None:
        return {"system_prompt": prompt}
    if isinstance(options, dict):
        return {**options, "system_prompt": prompt}
    if dataclasses.is_dataclass(options):
        return dataclasses.replace(options, system_prompt=prompt)
    updated = copy.copy(options)
    updated.system_prompt = prompt
    return updated


def default_stream_factory(prompt: str, options: Any) -> AsyncIterable[Any]:
    """Open a claude-agent-sdk ``query`` stream."""
    try:
        from claude_agent_sdk import ClaudeAgentOptions
        from claude_agent_sdk import query as sdk_query
    except ImportError as e:
        raise RaysurferError(
            "claude-agent-sdk is not installed. Install it with: pip install 'raysurfer[agent]'"
        ) from e

    if options is None:
        options = ClaudeAgentOptions()
    elif isinstance(options, dict):
        options = ClaudeAgentOptions(**options)
    return sdk_query(prompt=prompt, options=options)


# ---------------------------------------------------------------------------
# CachedQuery
# ---------------------------------------------------------------------------

class CachedQuery:
    """Async iterator over the wrapped agent stream with caching around it."""

    def __init__(
        self,
        prompt: str,
        options: Any = None,
        *,
        config: RaysurferConfig | None = None,
        client: RaySurfer | None = None,
        stream_factory: StreamFactory | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.prompt = prompt
        self.options = options
        self.config = config or _load_config_or_default()
        if self.config.debug:
            logging.getLogger("raysurfer").setLevel(logging.DEBUG)

        self.caching_enabled = client is not None or self.config.caching_enabled
        self._client = client
        self._owns_client = client is None
        self._stream_factory = stream_factory or default_stream_factory
        self._rng = rng or random.Random()

        self.work_dir = Path(_option(options, "cwd") or os.getcwd())
        self.scratch_dir = self.work_dir / self.config.cache_dir

        self.state = SessionState.UNSTARTED
        self.interceptor = StreamInterceptor(self.config.upload.min_code_block_chars)
        self.artifacts: list[RemoteArtifact] = []
        self.prompt_fragment = ""
        self.upload_result: UploadResult | None = None

        self._init_task: asyncio.Future | None = None
        self._stream: Any = None
        self._iterator: Any = None
        self._finalized = False
        self._closing = False

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def __aiter__(self) -> CachedQuery:
        return self

    async def __anext__(self) -> Any:
        if self.state is SessionState.CLOSED:
            raise StopAsyncIteration
        if self._iterator is None:
            await self._ensure_started()
            if self.state is SessionState.CLOSED or self._iterator is None:
                raise StopAsyncIteration

        try:
            message = await self._iterator.__anext__()
        except StopAsyncIteration:
            await self._finalize()
            raise
        except asyncio.CancelledError:
            await asyncio.shield(self._finalize())
            raise
        except Exception:
            await self._finalize()
            raise

        try:
            self.interceptor.observe(parse_event(message))
        except Exception as e:
            logger.warning("Failed to inspect agent message: %s", e)
            logger.debug("Inspection failure", exc_info=True)
        return message

    async def _ensure_started(self) -> None:
        if self._init_task is None:
            self.state = SessionState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._initialize())
        try:
            # Shielded: a cancelled waiter must not cancel the shared initialization
            await asyncio.shield(self._init_task)
        except asyncio.CancelledError:
            # Initialization itself cancelled by aclose(); the waiter just stops
            if self._init_task.cancelled() and self._closing:
                return
            raise
        except Exception:
            self.state = SessionState.CLOSED
            self._finalized = True
            await self._close_client()
            raise

    async def _initialize(self) -> None:
        options = self.options
        if self.caching_enabled:
            fragment = await self._retrieve()
            options = augment_options(options, fragment)
        else:
            _warn_caching_disabled()

        stream = self._stream_factory(self.prompt, options)
        if inspect.isawaitable(stream):
            stream = await stream
        self._stream = stream
        self._iterator = stream.__aiter__()
        if self.state is SessionState.INITIALIZING:
            self.state = SessionState.STREAMING

    async def _retrieve(self) -> str:
        """Search, materialize, and render the prompt fragment. Never raises."""
        retrieval = self.config.retrieval
        try:
            client = self._get_client()
            result = await client.search(
                self.prompt,
                top_k=retrieval.top_k,
                min_verdict_score=retrieval.min_verdict_score,
                prefer_complete=retrieval.prefer_complete,
            )
            if not result.artifacts:
                logger.info("Cache miss: no artifacts for this task")
                return ""
            await asyncio.to_thread(materialize, result.artifacts, self.scratch_dir)
        except Exception as e:
            logger.warning("Cache unavailable: %s", e)
            logger.debug("Retrieval failure", exc_info=True)
            return ""

        self.artifacts = list(result.artifacts)
        self.prompt_fragment = build_artifact_prompt(self.artifacts, self.scratch_dir)
        logger.info("Cache hit: %d artifacts retrieved", len(self.artifacts))
        return self.prompt_fragment

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        self.state = SessionState.FINALIZING
        try:
            await self._upload_results()
        except Exception as e:
            logger.warning("Cache upload failed: %s", e)
            logger.debug("Upload failure", exc_info=True)
        finally:
            self.state = SessionState.CLOSED
            await self._close_client()

    async def _upload_results(self) -> None:
        if not self.caching_enabled:
            return
        if not self.interceptor.succeeded:
            logger.debug(
                "No successful result (subtype=%r), skipping upload",
                self.interceptor.result_subtype,
            )
            return

        files = await asyncio.to_thread(self._collect_files)
        rate = self.config.upload.feedback_sample_rate
        feedback = list(self.artifacts) if self._rng.random() < rate else []
        pending = PendingUpload(files=files, feedback=feedback)
        if pending.empty:
            logger.debug("Nothing to upload")
            return

        client = self._get_client()
        if self.config.upload.per_file:
            await self._upload_per_file(client, pending)
            return

        self.upload_result = await client.upload(
            self.prompt,
            pending.files,
            succeeded=True,
            cached_artifacts=pending.feedback or None,
        )
        logger.info(
            "Cache upload successful: %d files, feedback on %d artifacts",
            len(pending.files), len(pending.feedback),
        )

    async def _upload_per_file(self, client: RaySurfer, pending: PendingUpload) -> None:
        if not pending.files:
            for artifact in pending.feedback:
                try:
                    await client.vote(self.prompt, artifact, succeeded=True)
                except Exception as e:
                    logger.warning("Vote for %s failed: %s", artifact.id, e)
            return

        for i, f in enumerate(pending.files):
            try:
                self.upload_result = await client.upload_file(
                    self.prompt,
                    f,
                    succeeded=True,
                    cached_artifacts=(pending.feedback or None) if i == 0 else None,
                )
            except Exception as e:
                logger.warning("Upload of %s failed: %s", f.path, e)
        logger.info("Cache upload finished: %d files", len(pending.files))

    def _collect_files(self) -> list[FileWritten]:
        """Read tracked files; skip missing, binary, and scratch-dir paths."""
        scratch = self.scratch_dir.resolve()
        files: list[FileWritten] = []
        for raw in self.interceptor.tracked_paths:
            path = Path(raw)
            if not path.is_absolute():
                path = self.work_dir / path
            resolved = path.resolve()
            if resolved == scratch or scratch in resolved.parents:
                logger.debug("Skipping cached file %s", raw)
                continue
            content = read_text_file(resolved)
            if content is None:
                logger.debug("Skipping missing or binary file %s", raw)
                continue
            files.append(FileWritten(path=raw, content=content))

        generated = self.interceptor.generated_artifact()
        if generated is not None:
            files.append(generated)
        return files

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close early. Finalizes (and possibly uploads) exactly once."""
        if self._finalized:
            return
        self._closing = True
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
            await asyncio.wait([self._init_task])

        closer = getattr(self._stream, "aclose", None)
        try:
            if closer is not None:
                await closer()
        finally:
            await self._finalize()

    async def __aenter__(self) -> CachedQuery:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _get_client(self) -> RaySurfer:
        if self._client is None:
            self._client = RaySurfer.from_config(self.config)
        return self._client

    async def _close_client(self) -> None:
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    # ------------------------------------------------------------------
    # Control interface (forwarded to the wrapped stream)
    # ------------------------------------------------------------------

    async def _forward(self, name: str, *args: Any) -> Any:
        if self._stream is None:
            raise NotInitialized(f"{name}() called before the agent stream was started")
        method = getattr(self._stream, name, None)
        if method is None:
            raise NotInitialized(f"The agent stream does not support {name}()")
        result = method(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def interrupt(self) -> None:
        await self._forward("interrupt")

    async def set_permission_mode(self, mode: str) -> None:
        await self._forward("set_permission_mode", mode)

    async def set_model(self, model: str | None = None) -> None:
        await self._forward("set_model", model)

    async def get_server_info(self) -> dict[str, Any] | None:
        return await self._forward("get_server_info")


def query(
    prompt: str,
    options: Any = None,
    *,
    config: RaysurferConfig | None = None,
    client: RaySurfer | None = None,
    stream_factory: StreamFactory | None = None,
    rng: random.Random | None = None,
) -> CachedQuery:
    """Drop-in replacement for the agent SDK's ``query`` with caching."""
    return CachedQuery(
        prompt,
        options,
        config=config,
        client=client,
        stream_factory=stream_factory,
        rng=rng,
    )


class ClaudeSDKClient:
    """Class form: holds options, opens one CachedQuery per prompt."""

    def __init__(
        self,
        options: Any = None,
        *,
        config: RaysurferConfig | None = None,
        client: RaySurfer | None = None,
        stream_factory: StreamFactory | None = None,
    ) -> None:
        self.options = options
        self.config = config
        self.client = client
        self.stream_factory = stream_factory
        self._queries: list[CachedQuery] = []

    def query(self, prompt: str) -> CachedQuery:
        self._queries = [q for q in self._queries if q.state is not SessionState.CLOSED]
        q = query(
            prompt,
            self.options,
            config=self.config,
            client=self.client,
            stream_factory=self.stream_factory,
        )
        self._queries.append(q)
        return q

    async def aclose(self) -> None:
        queries, self._queries = self._queries, []
        for q in queries:
            await q.aclose()

    async def __aenter__(self) -> ClaudeSDKClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


RaysurferClient = ClaudeSDKClient
