"""Stream interception: record filesystem side effects of an agent run.

Every message is parsed into its tagged variant and inspected; nothing is
modified. Bookkeeping is synchronous and in-memory. File contents are read
later, at finalization.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Any

from ..patterns import (
    BASH_OUTPUT_PATTERNS,
    BASH_TOOL,
    CODE_FENCE_PATTERN,
    DEFAULT_FENCE_EXTENSION,
    FENCE_EXTENSIONS,
    FILE_MODIFY_TOOLS,
    FILE_PATH_KEYS,
    GENERATED_CODE_STEM,
    TRACKABLE_EXTENSIONS,
)
from ..types import AgentEvent, EventKind, FileWritten, TextBlock, ToolUseBlock

logger = logging.getLogger(__name__)

_BASH_OUTPUT_RE = [re.compile(p) for p in BASH_OUTPUT_PATTERNS]
_CODE_FENCE_RE = re.compile(CODE_FENCE_PATTERN, re.DOTALL)


def extract_bash_outputs(command: str) -> list[str]:
    """Output paths with a trackable extension named in a shell command."""
    found: dict[str, None] = {}
    for pattern in _BASH_OUTPUT_RE:
        for m in pattern.finditer(command):
            path = m.group(1)
            if path and PurePath(path).suffix.lower() in TRACKABLE_EXTENSIONS:
                found[path] = None
    return list(found)


def extract_code_blocks(text: str, min_chars: int = 50) -> list[tuple[str, str]]:
    """(fence language, stripped code) for fenced blocks longer than min_chars."""
    blocks: list[tuple[str, str]] = []
    for m in _CODE_FENCE_RE.finditer(text):
        code = m.group(2).strip()
        if len(code) > min_chars:
            blocks.append((m.group(1).lower(), code))
    return blocks


def generated_code_filename(language: str) -> str:
    ext = FENCE_EXTENSIONS.get(language.lower(), DEFAULT_FENCE_EXTENSION)
    return f"{GENERATED_CODE_STEM}{ext}"


class StreamInterceptor:
    """Accumulates tracked paths, embedded code and the success flag for one run."""

    def __init__(self, min_code_block_chars: int = 50) -> None:
        self.min_code_block_chars = min_code_block_chars
        # Insertion-ordered sets
        self._tool_paths: dict[str, None] = {}
        self._bash_paths: dict[str, None] = {}
        self.code_blocks: list[tuple[str, str]] = []
        self.succeeded = False
        self.result_subtype: str | None = None
        self.message_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def observe(self, event: AgentEvent) -> None:
        """Inspect one parsed event."""
        self.message_count += 1

        if event.kind is EventKind.ASSISTANT:
            for block in event.blocks:
                if isinstance(block, ToolUseBlock):
                    self._inspect_tool_use(block)
                elif isinstance(block, TextBlock):
                    self._inspect_text(block.text)

        elif event.kind is EventKind.RESULT:
            self.result_subtype = event.subtype
            if event.succeeded:
                self.succeeded = True
                logger.debug("Task succeeded after %d messages", self.message_count)
            else:
                logger.debug("Task ended with subtype %r", event.subtype)

    @property
    def tracked_paths(self) -> list[str]:
        """Tool-edited paths first, then Bash outputs not already tracked."""
        paths = list(self._tool_paths)
        paths.extend(p for p in self._bash_paths if p not in self._tool_paths)
        return paths

    def generated_artifact(self) -> FileWritten | None:
        """The longest captured code block as a synthetic file, if any."""
        if not self.code_blocks:
            return None
        language, code = max(self.code_blocks, key=lambda b: len(b[1]))
        return FileWritten(path=generated_code_filename(language), content=code)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _inspect_tool_use(self, block: ToolUseBlock) -> None:
        if block.name in FILE_MODIFY_TOOLS:
            path = self._path_from_input(block.input)
            if path:
                logger.debug("%s tool touched %s", block.name, path)
                self._tool_paths[path] = None
        elif block.name == BASH_TOOL:
            command = block.input.get("command")
            if isinstance(command, str) and command:
                for path in extract_bash_outputs(command):
                    logger.debug("Bash output file detected: %s", path)
                    self._bash_paths[path] = None

    def _inspect_text(self, text: str) -> None:
        for language, code in extract_code_blocks(text, self.min_code_block_chars):
            logger.debug("Captured %s code block (%d chars)", language or "plain", len(code))
            self.code_blocks.append((language, code))

    @staticmethod
    def _path_from_input(tool_input: dict[str, Any]) -> str | None:
        for key in FILE_PATH_KEYS:
            value = tool_input.get(key)
            if isinstance(value, str) and value:
                return value
        return None
