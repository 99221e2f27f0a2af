"""Render the "available artifacts" section appended to an agent's system prompt.

Pure functions, no I/O.
"""

from __future__ import annotations

from pathlib import Path

from ..types import RemoteArtifact

_HEADING = "\n\n## IMPORTANT: Pre-validated Code Files Available\n"
_INTRO = (
    "The following validated code has been retrieved from the cache. "
    "Use these files directly instead of regenerating code.\n"
)
_INSTRUCTIONS = (
    "\n\n**Instructions**:",
    "1. Read the cached file(s) before writing new code",
    "2. Use the cached code as your starting point",
    "3. Only modify if the task requires specific changes",
    "4. Do not regenerate code that already exists\n",
)


def format_dependencies(deps: dict[str, str]) -> str:
    return ", ".join(f"{name}@{version}" if version else name for name, version in deps.items())


def build_artifact_prompt(artifacts: list[RemoteArtifact], cache_dir: str | Path | None = None) -> str:
    """Describe each artifact (path, description, language, entrypoint,
    confidence, dependencies). Empty string when there is nothing to offer.
    """
    if not artifacts:
        return ""

    lines: list[str] = [_HEADING, _INTRO]
    for a in artifacts:
        if cache_dir is not None:
            full_path = (Path(cache_dir) / a.filename).as_posix()
            lines.append(f"\n### `{a.filename}` -> `{full_path}`")
        else:
            lines.append(f"\n### `{a.filename}`")
        lines.append(f"- **Description**: {a.description}")
        lines.append(f"- **Language**: {a.language}")
        lines.append(f"- **Entrypoint**: `{a.entrypoint}`")
        lines.append(f"- **Confidence**: {round(a.score * 100)}%")
        if a.dependencies:
            lines.append(f"- **Dependencies**: {format_dependencies(a.dependencies)}")

    lines.extend(_INSTRUCTIONS)
    return "\n".join(lines)
