"""All dataclasses, enums, and exceptions for raysurfer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Remote artifacts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemoteArtifact:
    """A stored, previously validated code unit returned by search."""
    id: str
    filename: str
    source: str
    entrypoint: str = ""
    description: str = ""
    language: str = ""
    dependencies: dict[str, str] = field(default_factory=dict)  # package -> version
    score: float = 0.0  # combined score, rendered as confidence %
    thumbs_up: int = 0
    thumbs_down: int = 0


@dataclass
class SearchResult:
    artifacts: list[RemoteArtifact] = field(default_factory=list)
    total_found: int = 0
    cache_hit: bool = False


@dataclass
class FileWritten:
    """A file produced during agent execution."""
    path: str
    content: str


@dataclass
class UploadResult:
    success: bool = False
    code_blocks_stored: int = 0
    message: str = ""
    snippet_name: str | None = None  # set by single-file uploads


@dataclass
class PendingUpload:
    """Everything one session termination hands to a single upload."""
    files: list[FileWritten] = field(default_factory=list)
    feedback: list[RemoteArtifact] = field(default_factory=list)
    execution_logs: str | None = None

    @property
    def empty(self) -> bool:
        return not self.files and not self.feedback


@dataclass
class MaterializeContext:
    """What a caller needs to run one turn against materialized artifacts."""
    scratch_dir: str
    prompt_fragment: str = ""
    artifacts: list[RemoteArtifact] = field(default_factory=list)
    top_k: int = 5
    workspace_id: str | None = None


# ---------------------------------------------------------------------------
# Code blocks, executions, reviews (store / retrieve endpoints)
# ---------------------------------------------------------------------------

class ExecutionState(str, enum.Enum):
    COMPLETED = "completed"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class AgentVerdict(str, enum.Enum):
    THUMBS_UP = "thumbs_up"
    THUMBS_DOWN = "thumbs_down"
    PENDING = "pending"


@dataclass
class CodeBlock:
    """A stored code unit with its full metadata."""
    id: str
    name: str
    source: str
    entrypoint: str = ""
    description: str = ""
    language: str = ""
    language_version: str | None = None
    input_schema: dict[str, Any] = field(default_factory=dict)
    output_schema: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    capabilities: list[str] = field(default_factory=list)
    example_queries: list[str] | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class CodeBlockMatch:
    code_block: CodeBlock
    score: float = 0.0
    verdict_score: float = 0.0
    thumbs_up: int = 0
    thumbs_down: int = 0
    recent_executions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class RetrieveResult:
    code_blocks: list[CodeBlockMatch] = field(default_factory=list)
    total_found: int = 0


@dataclass
class BestMatch:
    code_block: CodeBlock
    combined_score: float = 0.0
    vector_score: float = 0.0
    verdict_score: float = 0.0
    error_resilience: float = 0.0
    thumbs_up: int = 0
    thumbs_down: int = 0


@dataclass
class AlternativeCandidate:
    code_block_id: str
    name: str = ""
    combined_score: float = 0.0
    reason: str = ""


@dataclass
class BestMatchResult:
    best_match: BestMatch | None = None
    alternative_candidates: list[AlternativeCandidate] = field(default_factory=list)
    retrieval_confidence: str = ""


@dataclass
class FewShotExample:
    task: str
    input_sample: dict[str, Any] = field(default_factory=dict)
    output_sample: Any = None
    code_snippet: str = ""


@dataclass
class TaskPattern:
    """A proven task -> code block mapping."""
    task_pattern: str
    code_block_id: str
    code_block_name: str = ""
    thumbs_up: int = 0
    thumbs_down: int = 0
    verdict_score: float = 0.0
    error_resilience: float = 0.0
    last_thumbs_up: str | None = None
    last_thumbs_down: str | None = None


@dataclass
class StoreCodeBlockResult:
    success: bool = False
    code_block_id: str = ""
    embedding_id: str = ""
    message: str = ""


@dataclass
class StoreExecutionResult:
    success: bool = False
    execution_id: str = ""
    pattern_updated: bool = False
    message: str = ""


@dataclass
class AgentReview:
    verdict: AgentVerdict = AgentVerdict.PENDING
    reasoning: str = ""
    timestamp: str = ""
    what_worked: list[str] = field(default_factory=list)
    what_didnt_work: list[str] = field(default_factory=list)
    output_was_useful: bool = False
    output_was_correct: bool = False
    output_was_complete: bool = False
    error_was_appropriate: bool | None = None
    would_use_again: bool = False
    suggested_improvements: list[str] = field(default_factory=list)
    required_workaround: bool = False
    workaround_description: str | None = None


@dataclass
class ExecutionIO:
    input_data: dict[str, Any] = field(default_factory=dict)
    input_hash: str = ""
    output_data: Any = None
    output_hash: str = ""
    output_type: str = ""


@dataclass
class ExecutionRecord:
    id: str
    code_block_id: str
    triggering_task: str = ""
    timestamp: str = ""
    execution_state: ExecutionState = ExecutionState.COMPLETED
    duration_ms: int = 0
    error_message: str | None = None
    error_type: str | None = None
    io: ExecutionIO = field(default_factory=ExecutionIO)
    retrieval_score: float = 0.0
    verdict: AgentVerdict | None = None
    review: AgentReview | None = None


@dataclass
class ExecutionsResult:
    executions: list[ExecutionRecord] = field(default_factory=list)
    total_found: int = 0


@dataclass
class AutoReviewResult:
    success: bool = False
    execution_id: str = ""
    review: AgentReview | None = None
    message: str = ""


# ---------------------------------------------------------------------------
# Agent stream events (tagged variants)
# ---------------------------------------------------------------------------

class EventKind(str, enum.Enum):
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"
    RESULT = "result"
    OTHER = "other"


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    name: str
    input: dict = field(default_factory=dict)
    id: str = ""


@dataclass
class ToolResultBlock:
    tool_use_id: str = ""
    content: Any = None


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


@dataclass
class AssistantEvent:
    blocks: list[ContentBlock] = field(default_factory=list)
    kind: EventKind = EventKind.ASSISTANT


@dataclass
class ToolResultEvent:
    blocks: list[ContentBlock] = field(default_factory=list)
    kind: EventKind = EventKind.TOOL_RESULT


@dataclass
class ResultEvent:
    """Terminal message of an agent run."""
    subtype: str = ""
    is_error: bool = False
    kind: EventKind = EventKind.RESULT

    @property
    def succeeded(self) -> bool:
        return self.subtype == "success"


@dataclass
class OtherEvent:
    type: str = ""
    kind: EventKind = EventKind.OTHER


AgentEvent = AssistantEvent | ToolResultEvent | ResultEvent | OtherEvent


# ---------------------------------------------------------------------------
# Session orchestration
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    UNSTARTED = "unstarted"
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RaysurferError(Exception):
    """Base error for raysurfer."""


class ApiError(RaysurferError):
    """Remote service returned a non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationFailure(ApiError):
    def __init__(self, message: str = "Invalid API key", body: str = "") -> None:
        super().__init__(message, status_code=401, body=body)


class RateLimited(ApiError):
    def __init__(self, message: str, retry_after: float | None = None, body: str = "") -> None:
        super().__init__(message, status_code=429, body=body)
        self.retry_after = retry_after


class ServiceUnavailable(ApiError):
    """5xx or connection failure that survived every retry."""


class Timeout(RaysurferError):
    """A single attempt exceeded the caller's deadline."""


class ValidationError(RaysurferError):
    """Malformed caller input."""


class NotInitialized(RaysurferError):
    """Control method called before the wrapped stream exists."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ApiConfig:
    timeout: float = 60.0  # seconds, per attempt
    max_retries: int = 3
    backoff_base: float = 1.0  # delay = base * 2**attempt -> 1, 2, 4


@dataclass
class NamespaceConfig:
    organization_id: str | None = None
    workspace_id: str | None = None
    public_snips: bool = False
    snips_desired: str | None = None  # "company" or "client"
    name: str | None = None  # custom namespace override


@dataclass
class RetrievalConfig:
    top_k: int = 5
    min_verdict_score: float = 0.3
    prefer_complete: bool = True


@dataclass
class UploadConfig:
    feedback_sample_rate: float = 1.0
    per_file: bool = False  # one call per file, feedback on the first only
    min_code_block_chars: int = 50


@dataclass
class AgentAccessRules:
    read: list[str] = field(default_factory=list)
    call: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)


@dataclass
class RaysurferConfig:
    api_key: str | None = None
    base_url: str = "https://web-production-3d338.up.railway.app"
    cache_dir: str = ".raysurfer_code"
    debug: bool = False
    api: ApiConfig = field(default_factory=ApiConfig)
    namespace: NamespaceConfig = field(default_factory=NamespaceConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    agent_access: AgentAccessRules = field(default_factory=AgentAccessRules)

    @property
    def caching_enabled(self) -> bool:
        return bool(self.api_key)
