"""Write retrieved artifacts into a scratch directory."""

from __future__ import annotations

import logging
from pathlib import Path

from ..types import RemoteArtifact, ValidationError

logger = logging.getLogger(__name__)


def resolve_safe_target(base_dir: str | Path, filename: str) -> Path:
    """Resolve *filename* under *base_dir*, refusing anything that escapes it."""
    base = Path(base_dir).resolve()
    target = (base / filename).resolve()
    if base not in target.parents:
        raise ValidationError(
            f"Invalid artifact filename {filename!r}: must be a relative path inside {base}"
        )
    return target


def materialize(artifacts: list[RemoteArtifact], scratch_dir: str | Path) -> list[Path]:
    """Write each artifact's source under scratch_dir. Returns written paths.

    Every target is validated before the first write, so a bad filename
    leaves the directory untouched.
    """
    targets = [(resolve_safe_target(scratch_dir, a.filename), a) for a in artifacts]
    Path(scratch_dir).mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for target, artifact in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(artifact.source, encoding="utf-8")
        logger.debug("Materialized %s -> %s", artifact.id, target)
        written.append(target)
    return written
