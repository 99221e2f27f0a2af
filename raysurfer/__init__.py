"""raysurfer: retrieve validated code for AI coding agents, upload what they produce."""

from .access import (
    agent_accessible,
    load_accessible_functions,
    publish_function_registry,
    set_tracking_client,
    to_anthropic_tool,
)
from .client import RaySurfer
from .config import load_config, validate_config
from .programmatic import ProgrammaticToolCallingSession
from .session import CachedQuery, ClaudeSDKClient, RaysurferClient, query
from .telemetry import FunctionTelemetry
from .transport import VERSION
from .types import (
    AgentVerdict,
    ApiError,
    AuthenticationFailure,
    ExecutionState,
    FileWritten,
    MaterializeContext,
    NotInitialized,
    RateLimited,
    RaysurferConfig,
    RaysurferError,
    RemoteArtifact,
    SearchResult,
    ServiceUnavailable,
    Timeout,
    UploadResult,
    ValidationError,
)

__version__ = VERSION

__all__ = [
    "query",
    "CachedQuery",
    "ClaudeSDKClient",
    "RaysurferClient",
    "RaySurfer",
    "ProgrammaticToolCallingSession",
    "FunctionTelemetry",
    "agent_accessible",
    "load_accessible_functions",
    "to_anthropic_tool",
    "publish_function_registry",
    "set_tracking_client",
    "load_config",
    "validate_config",
    "RaysurferConfig",
    "RemoteArtifact",
    "SearchResult",
    "FileWritten",
    "UploadResult",
    "MaterializeContext",
    "ExecutionState",
    "AgentVerdict",
    "RaysurferError",
    "ApiError",
    "AuthenticationFailure",
    "RateLimited",
    "ServiceUnavailable",
    "Timeout",
    "ValidationError",
    "NotInitialized",
]
