"""Agent-accessible functions: marking, tool schemas, and raysurfer.yaml rules.

``agent_access`` in raysurfer.yaml selects which functions an agent may call::

    agent_access:
      call: ["tools/*:fetch_*"]
      deny: ["tools/internal*"]

Selectors are ``<module path>:<function name>``; patterns are globs.
"""

from __future__ import annotations

import asyncio
import fnmatch
import functools
import inspect
import logging
import time
import types
from pathlib import Path
from typing import Any, Callable, Mapping

from .client import RaySurfer
from .config import load_config
from .types import AgentAccessRules, ExecutionState, FileWritten, RaysurferConfig

logger = logging.getLogger(__name__)

ACCESSIBLE_ATTR = "_raysurfer_accessible"
SCHEMA_ATTR = "_raysurfer_schema"
CLIENT_ATTR = "_raysurfer_client"

_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}
_JSON_TYPE_NAMES = {t.__name__: name for t, name in _JSON_TYPES.items()}


def _json_type(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    # String annotations under `from __future__ import annotations`
    if isinstance(annotation, str):
        return _JSON_TYPE_NAMES.get(annotation.strip(), "string")
    return _JSON_TYPES.get(annotation, "string")


def infer_input_schema(fn: Callable) -> dict[str, Any]:
    """JSON schema for fn's named parameters."""
    properties: dict[str, dict[str, str]] = {}
    required: list[str] = []
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return {"type": "object", "properties": {}}
    for param in sig.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        properties[param.name] = {"type": _json_type(param.annotation)}
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _source_of(fn: Callable) -> str:
    try:
        return inspect.getsource(fn)
    except (OSError, TypeError):
        return ""


def agent_accessible(
    fn: Callable | None = None,
    *,
    name: str | None = None,
    description: str = "",
    input_schema: dict[str, Any] | None = None,
):
    """Mark a function as callable by agents. Usable bare or with arguments.

    Returns a thin wrapper carrying the tool schema. Once a client is
    attached (``set_tracking_client`` or ``publish_function_registry``),
    every call is also recorded as an execution in the background.
    """

    def mark(target: Callable) -> Callable:
        if inspect.iscoroutinefunction(target):
            @functools.wraps(target)
            async def wrapper(*args, **kwargs):
                started = time.monotonic()
                try:
                    result = await target(*args, **kwargs)
                except Exception as e:
                    _track_call(wrapper, args, kwargs, None, e, started)
                    raise
                _track_call(wrapper, args, kwargs, result, None, started)
                return result
        else:
            @functools.wraps(target)
            def wrapper(*args, **kwargs):
                started = time.monotonic()
                try:
                    result = target(*args, **kwargs)
                except Exception as e:
                    _track_call(wrapper, args, kwargs, None, e, started)
                    raise
                _track_call(wrapper, args, kwargs, result, None, started)
                return result

        setattr(wrapper, ACCESSIBLE_ATTR, True)
        setattr(wrapper, SCHEMA_ATTR, {
            "name": name or getattr(target, "__name__", "anonymous"),
            "description": description or inspect.getdoc(target) or "",
            "input_schema": input_schema or infer_input_schema(target),
            "source": _source_of(target),
        })
        setattr(wrapper, CLIENT_ATTR, None)
        return wrapper

    if fn is not None:
        return mark(fn)
    return mark


def is_agent_accessible(fn: Callable) -> bool:
    return bool(getattr(fn, ACCESSIBLE_ATTR, False))


def to_anthropic_tool(fn: Callable) -> dict[str, Any]:
    """Anthropic tool definition for a marked function."""
    schema = getattr(fn, SCHEMA_ATTR, None)
    if schema is None:
        raise ValueError(f"{fn!r} is not marked agent-accessible")
    return {
        "name": schema["name"],
        "description": schema["description"],
        "input_schema": schema["input_schema"],
    }


# ---------------------------------------------------------------------------
# Function registry and usage tracking
# ---------------------------------------------------------------------------

REGISTRY_TAGS = ["function_registry", "agent_accessible"]

# Tracking tasks still in flight; holds references until they finish
_pending_tracking: set[asyncio.Task] = set()


def set_tracking_client(fn: Callable, client: RaySurfer | None) -> None:
    """Attach (or with None, detach) the client that records fn's calls."""
    if not is_agent_accessible(fn):
        raise ValueError(f"{fn!r} is not marked agent-accessible")
    setattr(fn, CLIENT_ATTR, client)


def _tracking_done(task: asyncio.Task) -> None:
    _pending_tracking.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Usage tracking failed: %s", exc)


def _track_call(
    fn: Callable,
    args: tuple,
    kwargs: dict,
    result: Any,
    error: BaseException | None,
    started: float,
) -> None:
    client = getattr(fn, CLIENT_ATTR, None)
    if client is None:
        return
    schema = getattr(fn, SCHEMA_ATTR)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running event loop, call to %s not tracked", schema["name"])
        return

    input_data: dict[str, Any] = {"args": list(args)}
    if kwargs:
        input_data["kwargs"] = dict(kwargs)
    task = loop.create_task(client.store_execution(
        code_block_id=schema.get("code_block_id") or f"function_registry:{schema['name']}",
        triggering_task=f"agent_accessible:{schema['name']}",
        input_data=input_data,
        output_data={"error": str(error)} if error is not None else result,
        execution_state=ExecutionState.ERRORED if error is not None else ExecutionState.COMPLETED,
        duration_ms=int((time.monotonic() - started) * 1000),
        error_message=str(error) if error is not None else None,
        error_type=type(error).__name__ if error is not None else None,
    ))
    _pending_tracking.add(task)
    task.add_done_callback(_tracking_done)


async def drain_usage_tracking() -> None:
    """Wait for every in-flight usage record. Failures are only logged."""
    while _pending_tracking:
        await asyncio.gather(*list(_pending_tracking), return_exceptions=True)


async def publish_function_registry(client: RaySurfer, functions: list[Callable]) -> list[str]:
    """Upload each marked function as a snippet and start tracking its calls.

    Unmarked functions are skipped. Returns the snippet names the service
    assigned; each one becomes the function's ``code_block_id`` for tracking.
    """
    snippet_names: list[str] = []
    for fn in functions:
        if not is_agent_accessible(fn):
            continue
        schema = getattr(fn, SCHEMA_ATTR)
        result = await client.upload_file(
            task=f"Call {schema['name']}: {schema['description']}",
            file_written=FileWritten(path=f"{schema['name']}.py", content=schema["source"]),
            succeeded=True,
            use_ai_voting=False,
            tags=list(REGISTRY_TAGS),
        )
        if result.snippet_name:
            snippet_names.append(result.snippet_name)
            schema["code_block_id"] = result.snippet_name
        set_tracking_client(fn, client)
    logger.info("Published %d functions to the registry", len(snippet_names))
    return snippet_names


# ---------------------------------------------------------------------------
# raysurfer.yaml rules
# ---------------------------------------------------------------------------

def matches_any(value: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatchcase(value, p.replace("\\", "/")) for p in patterns)


def _module_functions(module: Mapping[str, Callable] | types.ModuleType) -> dict[str, Callable]:
    if isinstance(module, types.ModuleType):
        return {
            n: f for n, f in inspect.getmembers(module, inspect.isfunction)
            if f.__module__ == module.__name__ and not n.startswith("_")
        }
    return dict(module)


def _rules_from(source: str | Path | AgentAccessRules | RaysurferConfig) -> AgentAccessRules:
    if isinstance(source, AgentAccessRules):
        return source
    if isinstance(source, RaysurferConfig):
        return source.agent_access
    return load_config(config_path=source).agent_access


def load_accessible_functions(
    source: str | Path | AgentAccessRules | RaysurferConfig,
    modules: Mapping[str, Mapping[str, Callable] | types.ModuleType],
) -> list[Callable]:
    """Select and mark functions allowed by the ``agent_access`` rules.

    *modules* maps a module path (e.g. ``"tools/search.py"``) to its
    functions, either as a ``{name: callable}`` map or a module object.
    """
    rules = _rules_from(source)
    selected: list[Callable] = []

    for module_path, module in modules.items():
        normalized = module_path.replace("\\", "/")
        for fn_name, fn in _module_functions(module).items():
            selector = f"{normalized}:{fn_name}"
            if rules.call and not matches_any(selector, rules.call):
                continue
            if matches_any(normalized, rules.deny) or matches_any(selector, rules.deny):
                logger.debug("Denied %s", selector)
                continue
            if not is_agent_accessible(fn):
                fn = agent_accessible(fn, name=fn_name)
            selected.append(fn)

    return selected
