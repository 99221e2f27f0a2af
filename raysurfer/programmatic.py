"""Explicit-call caching for callers that drive their own tool loop.

Where ``CachedQuery`` wraps a stream, a ``ProgrammaticToolCallingSession``
is driven by hand: ``prepare_turn`` materializes artifacts into a scratch
directory and returns the prompt fragment, the caller runs its tools
against that directory, and ``upload_changed_code`` uploads whatever the
tools changed. Errors from these calls propagate.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import uuid
from pathlib import Path

from .client import DEFAULT_MIN_VERDICT_SCORE, DEFAULT_TOP_K, RaySurfer
from .core.changeset import ContentSnapshot, diff, snapshot
from .core.materializer import materialize
from .core.prompt_builder import build_artifact_prompt
from .types import MaterializeContext, RemoteArtifact, UploadResult, ValidationError

logger = logging.getLogger(__name__)


def _validate_top_k(top_k: int) -> int:
    if top_k < 1:
        raise ValidationError(f"top_k must be >= 1 (got {top_k})")
    return top_k


class ProgrammaticToolCallingSession:
    """One scratch directory, one baseline snapshot, one log buffer."""

    def __init__(
        self,
        client: RaySurfer,
        top_k: int = DEFAULT_TOP_K,
        workspace_id: str | None = None,
        scratch_dir: str | Path | None = None,
        min_verdict_score: float = DEFAULT_MIN_VERDICT_SCORE,
        prefer_complete: bool = True,
    ) -> None:
        self.client = client
        self.top_k = _validate_top_k(top_k)
        self.workspace_id = workspace_id
        self.min_verdict_score = min_verdict_score
        self.prefer_complete = prefer_complete
        self.owns_scratch_dir = scratch_dir is None
        if scratch_dir is None:
            scratch_dir = Path(tempfile.gettempdir()) / f"raysurfer_ptc_{uuid.uuid4()}"
        self.scratch_dir = Path(scratch_dir).resolve()

        self._baseline: ContentSnapshot | None = None
        self._artifacts: list[RemoteArtifact] = []
        self._prompt_fragment = ""
        self._logs: list[str] = []

    def append_log(self, line: str) -> None:
        if line.strip():
            self._logs.append(line)

    def _context(self) -> MaterializeContext:
        return MaterializeContext(
            scratch_dir=str(self.scratch_dir),
            prompt_fragment=self._prompt_fragment,
            artifacts=list(self._artifacts),
            top_k=self.top_k,
            workspace_id=self.workspace_id,
        )

    async def prepare_turn(self, task: str, first_message: bool = True) -> MaterializeContext:
        """Materialize artifacts on a first turn and record the baseline.

        Later turns only record a baseline if none exists yet.
        """
        await asyncio.to_thread(self.scratch_dir.mkdir, parents=True, exist_ok=True)

        if first_message:
            result = await self.client.search(
                task,
                top_k=self.top_k,
                min_verdict_score=self.min_verdict_score,
                prefer_complete=self.prefer_complete,
                workspace_id=self.workspace_id,
            )
            await asyncio.to_thread(materialize, result.artifacts, self.scratch_dir)
            self._artifacts = list(result.artifacts)
            self._prompt_fragment = build_artifact_prompt(self._artifacts, self.scratch_dir)
            self._baseline = await asyncio.to_thread(snapshot, self.scratch_dir)
            logger.info("Prepared %d artifacts in %s", len(self._artifacts), self.scratch_dir)
        elif self._baseline is None:
            self._baseline = await asyncio.to_thread(snapshot, self.scratch_dir)

        return self._context()

    async def upload_changed_code(
        self,
        task: str,
        succeeded: bool = True,
        execution_logs: str | None = None,
        use_ai_voting: bool = True,
    ) -> UploadResult | None:
        """Upload files changed since the last baseline. None when nothing changed."""
        changes, current = await asyncio.to_thread(diff, self._baseline or {}, self.scratch_dir)
        if not changes:
            self._baseline = current
            return None

        if execution_logs is None and self._logs:
            execution_logs = "\n---\n".join(self._logs)

        result = await self.client.upload(
            task,
            changes,
            succeeded=succeeded,
            use_ai_voting=use_ai_voting,
            execution_logs=execution_logs,
            workspace_id=self.workspace_id,
        )
        self._baseline = current
        self._logs = []
        logger.info("Uploaded %d changed files", len(changes))
        return result

    async def cleanup(self, remove_scratch_dir: bool = False) -> None:
        if remove_scratch_dir and self.owns_scratch_dir:
            await asyncio.to_thread(shutil.rmtree, self.scratch_dir, ignore_errors=True)
