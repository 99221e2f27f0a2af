"""RaySurfer API client: endpoint methods and wire <-> record mapping."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .transport import Transport
from .types import (
    AgentReview,
    AgentVerdict,
    AlternativeCandidate,
    AutoReviewResult,
    BestMatch,
    BestMatchResult,
    CodeBlock,
    CodeBlockMatch,
    ExecutionIO,
    ExecutionRecord,
    ExecutionsResult,
    ExecutionState,
    FewShotExample,
    FileWritten,
    RaysurferConfig,
    RemoteArtifact,
    RetrieveResult,
    SearchResult,
    StoreCodeBlockResult,
    StoreExecutionResult,
    TaskPattern,
    UploadResult,
    ValidationError,
)

logger = logging.getLogger(__name__)

SEARCH_PATH = "/api/retrieve/search"
RETRIEVE_PATH = "/api/retrieve/code-blocks"
BEST_FOR_TASK_PATH = "/api/retrieve/best-for-task"
FEW_SHOT_PATH = "/api/retrieve/few-shot-examples"
TASK_PATTERNS_PATH = "/api/retrieve/task-patterns"
EXECUTIONS_PATH = "/api/retrieve/executions"
UPLOAD_PATH = "/api/store/execution-result"
STORE_CODE_BLOCK_PATH = "/api/store/code-block"
STORE_EXECUTION_PATH = "/api/store/execution"
AUTO_REVIEW_PATH = "/api/store/auto-review"
VOTE_PATH = "/api/store/cache-usage"

DEFAULT_TOP_K = 5
DEFAULT_MIN_VERDICT_SCORE = 0.3


def normalize_dependencies(raw: Any) -> dict[str, str]:
    """Wire dependencies may be a name list or a name -> version map."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): "" if v is None else str(v) for k, v in raw.items()}
    if isinstance(raw, (list, tuple)):
        return {str(name): "" for name in raw}
    return {}


def _parse_match(data: dict) -> RemoteArtifact:
    """Map one search match to a RemoteArtifact.

    Matches nest the stored block under ``code_block``; flat ``code-files``
    style entries (``code_block_id`` at the top level) are accepted too.
    """
    block = data.get("code_block") or {}
    artifact_id = block.get("id") or data.get("code_block_id") or data.get("id") or ""
    filename = data.get("filename") or block.get("name") or f"{artifact_id}.txt"

    score = data.get("score")
    if score is None:
        score = data.get("combined_score")
    if score is None:
        score = data.get("verdict_score", 0.0)

    deps = data.get("dependencies")
    if deps is None:
        deps = block.get("dependencies")

    return RemoteArtifact(
        id=str(artifact_id),
        filename=str(filename),
        source=block.get("source", data.get("source", "")) or "",
        entrypoint=data.get("entrypoint") or block.get("entrypoint") or "",
        description=block.get("description", data.get("description", "")) or "",
        language=data.get("language") or block.get("language") or "",
        dependencies=normalize_dependencies(deps),
        score=float(score or 0.0),
        thumbs_up=int(data.get("thumbs_up", 0) or 0),
        thumbs_down=int(data.get("thumbs_down", 0) or 0),
    )


def _feedback_entries(artifacts: list[RemoteArtifact]) -> list[dict[str, str]]:
    return [
        {
            "code_block_id": a.id,
            "filename": a.filename,
            "description": a.description,
        }
        for a in artifacts
    ]


def _file_dict(f: FileWritten) -> dict[str, str]:
    return {"path": f.path, "content": f.content}


def _upload_result(data: dict) -> UploadResult:
    return UploadResult(
        success=bool(data.get("success", False)),
        code_blocks_stored=int(data.get("code_blocks_stored", 0) or 0),
        message=str(data.get("message", "") or ""),
        snippet_name=data.get("snippet_name") or None,
    )


def _enum_value(enum_cls, value, default=None):
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        return default


def _list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _parse_code_block(data: dict) -> CodeBlock:
    return CodeBlock(
        id=str(data.get("id", "") or ""),
        name=str(data.get("name", "") or ""),
        source=data.get("source", "") or "",
        entrypoint=data.get("entrypoint", "") or "",
        description=data.get("description", "") or "",
        language=data.get("language", "") or "",
        language_version=data.get("language_version"),
        input_schema=data.get("input_schema") or {},
        output_schema=data.get("output_schema") or {},
        dependencies=[str(d) for d in _list(data.get("dependencies"))],
        tags=[str(t) for t in _list(data.get("tags"))],
        capabilities=[str(c) for c in _list(data.get("capabilities"))],
        example_queries=data.get("example_queries"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


def _parse_review(data: dict | None) -> AgentReview | None:
    if not isinstance(data, dict):
        return None
    return AgentReview(
        verdict=_enum_value(AgentVerdict, data.get("verdict"), AgentVerdict.PENDING),
        reasoning=data.get("reasoning", "") or "",
        timestamp=data.get("timestamp", "") or "",
        what_worked=_list(data.get("what_worked")),
        what_didnt_work=_list(data.get("what_didnt_work")),
        output_was_useful=bool(data.get("output_was_useful", False)),
        output_was_correct=bool(data.get("output_was_correct", False)),
        output_was_complete=bool(data.get("output_was_complete", False)),
        error_was_appropriate=data.get("error_was_appropriate"),
        would_use_again=bool(data.get("would_use_again", False)),
        suggested_improvements=_list(data.get("suggested_improvements")),
        required_workaround=bool(data.get("required_workaround", False)),
        workaround_description=data.get("workaround_description"),
    )


def _parse_execution(data: dict) -> ExecutionRecord:
    io = data.get("io") or {}
    return ExecutionRecord(
        id=str(data.get("id", "") or ""),
        code_block_id=str(data.get("code_block_id", "") or ""),
        triggering_task=data.get("triggering_task", "") or "",
        timestamp=data.get("timestamp", "") or "",
        execution_state=_enum_value(
            ExecutionState, data.get("execution_state"), ExecutionState.COMPLETED
        ),
        duration_ms=int(data.get("duration_ms", 0) or 0),
        error_message=data.get("error_message"),
        error_type=data.get("error_type"),
        io=ExecutionIO(
            input_data=io.get("input_data") or {},
            input_hash=io.get("input_hash", "") or "",
            output_data=io.get("output_data"),
            output_hash=io.get("output_hash", "") or "",
            output_type=io.get("output_type", "") or "",
        ),
        retrieval_score=float(data.get("retrieval_score", 0.0) or 0.0),
        verdict=_enum_value(AgentVerdict, data.get("verdict")),
        review=_parse_review(data.get("review")),
    )


def _output_type(value: Any) -> str:
    """Type tag the service expects for stored output (JSON-ish names)."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


class RaySurfer:
    """Async client for the Raysurfer code cache."""

    def __init__(self, transport: Transport, workspace_id: str | None = None) -> None:
        self.transport = transport
        self.workspace_id = workspace_id

    @classmethod
    def from_config(
        cls,
        config: RaysurferConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> RaySurfer:
        return cls(
            Transport.from_config(config, client=http_client),
            workspace_id=config.namespace.workspace_id,
        )

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    async def search(
        self,
        task: str,
        top_k: int = DEFAULT_TOP_K,
        min_verdict_score: float = DEFAULT_MIN_VERDICT_SCORE,
        prefer_complete: bool = True,
        workspace_id: str | None = None,
    ) -> SearchResult:
        """Search the store for artifacts that fit *task*."""
        if top_k < 1:
            raise ValidationError(f"top_k must be >= 1 (got {top_k})")

        body: dict[str, Any] = {
            "task": task,
            "top_k": top_k,
            "min_verdict_score": min_verdict_score,
            "prefer_complete": prefer_complete,
        }
        ws = workspace_id or self.workspace_id
        if ws:
            body["workspace_id"] = ws

        data = await self.transport.send("POST", SEARCH_PATH, body)
        raw_matches = data.get("matches")
        if raw_matches is None:
            raw_matches = data.get("files", [])
        artifacts = [_parse_match(m) for m in raw_matches if isinstance(m, dict)]
        logger.debug("search returned %d artifacts for task %r", len(artifacts), task[:80])
        return SearchResult(
            artifacts=artifacts,
            total_found=int(data.get("total_found", len(artifacts)) or 0),
            cache_hit=bool(data.get("cache_hit", bool(artifacts))),
        )

    async def retrieve(
        self,
        task: str,
        top_k: int = 10,
        min_verdict_score: float = 0.0,
    ) -> RetrieveResult:
        """Semantic search over code blocks, with their full metadata."""
        if top_k < 1:
            raise ValidationError(f"top_k must be >= 1 (got {top_k})")
        body = {"task": task, "top_k": top_k, "min_verdict_score": min_verdict_score}
        data = await self.transport.send("POST", RETRIEVE_PATH, body)
        matches = [
            CodeBlockMatch(
                code_block=_parse_code_block(m.get("code_block") or {}),
                score=float(m.get("score", 0.0) or 0.0),
                verdict_score=float(m.get("verdict_score", 0.0) or 0.0),
                thumbs_up=int(m.get("thumbs_up", 0) or 0),
                thumbs_down=int(m.get("thumbs_down", 0) or 0),
                recent_executions=_list(m.get("recent_executions")),
            )
            for m in _list(data.get("code_blocks"))
            if isinstance(m, dict)
        ]
        return RetrieveResult(
            code_blocks=matches,
            total_found=int(data.get("total_found", len(matches)) or 0),
        )

    async def retrieve_best(
        self,
        task: str,
        top_k: int = 10,
        min_verdict_score: float = 0.0,
    ) -> BestMatchResult:
        """The single best code block for *task*, plus the runners-up."""
        if top_k < 1:
            raise ValidationError(f"top_k must be >= 1 (got {top_k})")
        body = {"task": task, "top_k": top_k, "min_verdict_score": min_verdict_score}
        data = await self.transport.send("POST", BEST_FOR_TASK_PATH, body)

        best = None
        raw_best = data.get("best_match")
        if isinstance(raw_best, dict):
            best = BestMatch(
                code_block=_parse_code_block(raw_best.get("code_block") or {}),
                combined_score=float(raw_best.get("combined_score", 0.0) or 0.0),
                vector_score=float(raw_best.get("vector_score", 0.0) or 0.0),
                verdict_score=float(raw_best.get("verdict_score", 0.0) or 0.0),
                error_resilience=float(raw_best.get("error_resilience", 0.0) or 0.0),
                thumbs_up=int(raw_best.get("thumbs_up", 0) or 0),
                thumbs_down=int(raw_best.get("thumbs_down", 0) or 0),
            )
        alternatives = [
            AlternativeCandidate(
                code_block_id=str(a.get("code_block_id", "") or ""),
                name=a.get("name", "") or "",
                combined_score=float(a.get("combined_score", 0.0) or 0.0),
                reason=a.get("reason", "") or "",
            )
            for a in _list(data.get("alternative_candidates"))
            if isinstance(a, dict)
        ]
        return BestMatchResult(
            best_match=best,
            alternative_candidates=alternatives,
            retrieval_confidence=str(data.get("retrieval_confidence", "") or ""),
        )

    async def get_few_shot_examples(self, task: str, k: int = 3) -> list[FewShotExample]:
        data = await self.transport.send("POST", FEW_SHOT_PATH, {"task": task, "k": k})
        return [
            FewShotExample(
                task=e.get("task", "") or "",
                input_sample=e.get("input_sample") or {},
                output_sample=e.get("output_sample"),
                code_snippet=e.get("code_snippet", "") or "",
            )
            for e in _list(data.get("examples"))
            if isinstance(e, dict)
        ]

    async def get_task_patterns(
        self,
        task: str | None = None,
        code_block_id: str | None = None,
        min_thumbs_up: int = 0,
        top_k: int = 20,
    ) -> list[TaskPattern]:
        """Proven task -> code mappings, by task text or code block."""
        body = {
            "task": task,
            "code_block_id": code_block_id,
            "min_thumbs_up": min_thumbs_up,
            "top_k": top_k,
        }
        data = await self.transport.send("POST", TASK_PATTERNS_PATH, body)
        return [
            TaskPattern(
                task_pattern=p.get("task_pattern", "") or "",
                code_block_id=str(p.get("code_block_id", "") or ""),
                code_block_name=p.get("code_block_name", "") or "",
                thumbs_up=int(p.get("thumbs_up", 0) or 0),
                thumbs_down=int(p.get("thumbs_down", 0) or 0),
                verdict_score=float(p.get("verdict_score", 0.0) or 0.0),
                error_resilience=float(p.get("error_resilience", 0.0) or 0.0),
                last_thumbs_up=p.get("last_thumbs_up"),
                last_thumbs_down=p.get("last_thumbs_down"),
            )
            for p in _list(data.get("patterns"))
            if isinstance(p, dict)
        ]

    async def get_executions(
        self,
        code_block_id: str | None = None,
        task: str | None = None,
        verdict: AgentVerdict | str | None = None,
        limit: int = 20,
    ) -> ExecutionsResult:
        """Execution records filtered by code block, task, or verdict."""
        body: dict[str, Any] = {"limit": limit}
        if code_block_id:
            body["code_block_id"] = code_block_id
        if task:
            body["task"] = task
        if verdict:
            body["verdict"] = AgentVerdict(verdict).value
        data = await self.transport.send("POST", EXECUTIONS_PATH, body)
        executions = [_parse_execution(e) for e in _list(data.get("executions")) if isinstance(e, dict)]
        return ExecutionsResult(
            executions=executions,
            total_found=int(data.get("total_found", len(executions)) or 0),
        )

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def _upload_body(
        self,
        task: str,
        succeeded: bool,
        cached_artifacts: list[RemoteArtifact] | None,
        use_ai_voting: bool,
        execution_logs: str | None,
        dependencies: dict[str, str] | None,
        workspace_id: str | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "task": task,
            "succeeded": succeeded,
            "use_raysurfer_ai_voting": use_ai_voting,
        }
        if execution_logs:
            body["execution_logs"] = execution_logs
        if dependencies:
            body["dependencies"] = dict(dependencies)
        if cached_artifacts:
            body["cached_code_blocks"] = _feedback_entries(cached_artifacts)
        ws = workspace_id or self.workspace_id
        if ws:
            body["workspace_id"] = ws
        return body

    async def upload(
        self,
        task: str,
        files_written: list[FileWritten],
        succeeded: bool = True,
        cached_artifacts: list[RemoteArtifact] | None = None,
        use_ai_voting: bool = True,
        execution_logs: str | None = None,
        dependencies: dict[str, str] | None = None,
        workspace_id: str | None = None,
    ) -> UploadResult:
        """Store every written file plus feedback in one call."""
        body = self._upload_body(
            task, succeeded, cached_artifacts, use_ai_voting,
            execution_logs, dependencies, workspace_id,
        )
        body["files_written"] = [_file_dict(f) for f in files_written]
        data = await self.transport.send("POST", UPLOAD_PATH, body)
        return _upload_result(data)

    submit_execution_result = upload

    async def upload_file(
        self,
        task: str,
        file_written: FileWritten,
        succeeded: bool = True,
        cached_artifacts: list[RemoteArtifact] | None = None,
        use_ai_voting: bool = True,
        execution_logs: str | None = None,
        dependencies: dict[str, str] | None = None,
        workspace_id: str | None = None,
        tags: list[str] | None = None,
    ) -> UploadResult:
        """Legacy single-file upload."""
        body = self._upload_body(
            task, succeeded, cached_artifacts, use_ai_voting,
            execution_logs, dependencies, workspace_id,
        )
        body["file_written"] = _file_dict(file_written)
        if tags:
            body["tags"] = list(tags)
        data = await self.transport.send("POST", UPLOAD_PATH, body)
        return _upload_result(data)

    async def vote(self, task: str, artifact: RemoteArtifact, succeeded: bool) -> bool:
        """Record that *artifact* was used for *task*. Returns the server's ack."""
        body = {
            "task": task,
            "code_block_id": artifact.id,
            "code_block_name": artifact.filename,
            "code_block_description": artifact.description,
            "succeeded": succeeded,
        }
        data = await self.transport.send("POST", VOTE_PATH, body)
        return bool(data.get("success", False))

    async def store_code_block(
        self,
        name: str,
        source: str,
        entrypoint: str,
        language: str,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
        output_schema: dict[str, Any] | None = None,
        language_version: str | None = None,
        dependencies: list[str] | None = None,
        tags: list[str] | None = None,
        capabilities: list[str] | None = None,
        example_queries: list[str] | None = None,
    ) -> StoreCodeBlockResult:
        """Store one code block directly, bypassing server-side extraction."""
        body = {
            "name": name,
            "description": description,
            "source": source,
            "entrypoint": entrypoint,
            "language": language,
            "input_schema": input_schema or {},
            "output_schema": output_schema or {},
            "language_version": language_version,
            "dependencies": list(dependencies or []),
            "tags": list(tags or []),
            "capabilities": list(capabilities or []),
            "example_queries": example_queries,
        }
        data = await self.transport.send("POST", STORE_CODE_BLOCK_PATH, body)
        return StoreCodeBlockResult(
            success=bool(data.get("success", False)),
            code_block_id=str(data.get("code_block_id", "") or ""),
            embedding_id=str(data.get("embedding_id", "") or ""),
            message=str(data.get("message", "") or ""),
        )

    async def store_execution(
        self,
        code_block_id: str,
        triggering_task: str,
        input_data: dict[str, Any],
        output_data: Any,
        execution_state: ExecutionState | str = ExecutionState.COMPLETED,
        duration_ms: int = 0,
        error_message: str | None = None,
        error_type: str | None = None,
        verdict: AgentVerdict | str | None = None,
        review: dict[str, Any] | None = None,
    ) -> StoreExecutionResult:
        """Record one run of a stored code block."""
        body = {
            "code_block_id": code_block_id,
            "triggering_task": triggering_task,
            "io": {
                "input_data": input_data,
                "input_hash": "",
                "output_data": output_data,
                "output_hash": "",
                "output_type": _output_type(output_data),
            },
            "execution_state": ExecutionState(execution_state).value,
            "duration_ms": duration_ms,
            "error_message": error_message,
            "error_type": error_type,
            "verdict": AgentVerdict(verdict).value if verdict else None,
            "review": review,
        }
        data = await self.transport.send("POST", STORE_EXECUTION_PATH, body)
        return StoreExecutionResult(
            success=bool(data.get("success", False)),
            execution_id=str(data.get("execution_id", "") or ""),
            pattern_updated=bool(data.get("pattern_updated", False)),
            message=str(data.get("message", "") or ""),
        )

    async def auto_review(
        self,
        execution_id: str,
        triggering_task: str,
        execution_state: ExecutionState | str,
        input_data: dict[str, Any],
        output_data: Any,
        code_block_name: str,
        code_block_description: str,
        error_message: str | None = None,
    ) -> AutoReviewResult:
        """Ask the service to review an execution and return its verdict."""
        body: dict[str, Any] = {
            "execution_id": execution_id,
            "triggering_task": triggering_task,
            "execution_state": ExecutionState(execution_state).value,
            "input_data": input_data,
            "output_data": output_data,
            "code_block_name": code_block_name,
            "code_block_description": code_block_description,
        }
        if error_message is not None:
            body["error_message"] = error_message
        data = await self.transport.send("POST", AUTO_REVIEW_PATH, body)
        return AutoReviewResult(
            success=bool(data.get("success", False)),
            execution_id=str(data.get("execution_id", "") or ""),
            review=_parse_review(data.get("review")),
            message=str(data.get("message", "") or ""),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> RaySurfer:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
