"""Tests for artifact materialization and the prompt fragment."""

import pytest

from raysurfer.core.materializer import materialize, resolve_safe_target
from raysurfer.core.prompt_builder import build_artifact_prompt
from raysurfer.types import ValidationError

from conftest import make_artifact


class TestResolveSafeTarget:
    def test_relative_path_inside(self, tmp_path):
        target = resolve_safe_target(tmp_path, "pkg/mod.py")
        assert target == (tmp_path / "pkg" / "mod.py").resolve()

    @pytest.mark.parametrize("name", ["../escape.py", "a/../../escape.py", "/etc/passwd", "."])
    def test_escapes_rejected(self, tmp_path, name):
        with pytest.raises(ValidationError):
            resolve_safe_target(tmp_path, name)


class TestMaterialize:
    def test_writes_every_artifact(self, tmp_path, sample_artifacts):
        scratch = tmp_path / "scratch"
        written = materialize(sample_artifacts, scratch)
        assert len(written) == 3
        for art in sample_artifacts:
            assert (scratch / art.filename).read_text() == art.source

    def test_traversal_rejected_before_any_write(self, tmp_path):
        scratch = tmp_path / "scratch"
        arts = [make_artifact(1), make_artifact(2, filename="../../evil.py")]
        with pytest.raises(ValidationError):
            materialize(arts, scratch)
        assert not scratch.exists()
        assert not (tmp_path / "evil.py").exists()


class TestPromptBuilder:
    def test_empty(self):
        assert build_artifact_prompt([]) == ""

    def test_lists_each_artifact(self, tmp_path):
        arts = [
            make_artifact(1, score=0.876, dependencies={"pandas": "2.2.0", "numpy": ""}),
            make_artifact(2),
        ]
        text = build_artifact_prompt(arts, tmp_path)
        assert text.startswith("\n\n## IMPORTANT: Pre-validated Code Files Available\n")
        assert f"### `snippet_1.py` -> `{(tmp_path / 'snippet_1.py').as_posix()}`" in text
        assert "- **Description**: Snippet number 1" in text
        assert "- **Language**: python" in text
        assert "- **Entrypoint**: `snippet_1`" in text
        assert "- **Confidence**: 88%" in text
        assert "- **Dependencies**: pandas@2.2.0, numpy" in text
        # Only the first artifact has dependencies
        assert text.count("**Dependencies**") == 1
        assert "4. Do not regenerate code that already exists\n" in text

    def test_without_cache_dir(self):
        text = build_artifact_prompt([make_artifact(1)])
        assert "### `snippet_1.py`\n" in text
        assert "->" not in text
