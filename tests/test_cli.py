"""Tests for the raysurfer CLI."""

import json

import pytest

from raysurfer.cli.main import main
from raysurfer.client import RaySurfer
from raysurfer.types import ServiceUnavailable

from conftest import FakeClient, make_artifact


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("RAYSURFER_API_KEY", "RAYSURFER_BASE_URL", "RAYSURFER_DEBUG"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "raysurfer.yaml"
    path.write_text("api_key: test-key\nnamespace:\n  workspace_id: ws-cli\n")
    return path


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeClient([make_artifact(1), make_artifact(2, language="typescript", filename="b.ts")])
    monkeypatch.setattr(RaySurfer, "from_config", staticmethod(lambda config, http_client=None: client))
    return client


class TestSearch:
    def test_table(self, config_file, fake_client, capsys):
        main(["-c", str(config_file), "search", "parse csv", "-k", "2"])
        out = capsys.readouterr().out
        assert "snippet_1.py" in out
        assert "b.ts" in out
        assert "typescript" in out
        assert "2 of 2 matches shown" in out
        assert fake_client.search_calls[0]["top_k"] == 2
        assert fake_client.closed

    def test_json(self, config_file, fake_client, capsys):
        main(["-c", str(config_file), "search", "parse csv", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["cache_hit"] is True
        assert [a["id"] for a in data["artifacts"]] == ["cb-1", "cb-2"]
        assert fake_client.search_calls[0]["top_k"] == 5

    def test_no_matches(self, config_file, fake_client, capsys):
        fake_client.artifacts = []
        main(["-c", str(config_file), "search", "x"])
        assert "No cached code found" in capsys.readouterr().out

    def test_service_error_exits_1(self, config_file, fake_client, capsys):
        fake_client.search_error = ServiceUnavailable("service down", status_code=503)
        with pytest.raises(SystemExit) as exc:
            main(["-c", str(config_file), "search", "x"])
        assert exc.value.code == 1
        assert "Error: service down" in capsys.readouterr().err


class TestMaterialize:
    def test_writes_files_and_prints_prompt(self, config_file, fake_client, tmp_path, capsys):
        target = tmp_path / "out"
        main(["-c", str(config_file), "materialize", "parse csv", "--dir", str(target)])
        captured = capsys.readouterr()
        assert (target / "snippet_1.py").exists()
        assert (target / "b.ts").exists()
        assert "Wrote 2 files" in captured.err
        assert "Pre-validated Code Files Available" in captured.out
        assert fake_client.search_calls[0]["workspace_id"] == "ws-cli"


class TestUpload:
    def test_uploads_every_text_file(self, config_file, fake_client, tmp_path, capsys):
        src = tmp_path / "src"
        src.mkdir()
        (src / "a.py").write_text("a = 1\n")
        (src / "blob.bin").write_bytes(b"\x00\x00")
        main(["-c", str(config_file), "upload", "csv task", "--dir", str(src)])

        call = fake_client.upload_calls[0]
        assert [f.path for f in call["files_written"]] == ["a.py"]
        assert call["succeeded"] is True
        assert call["workspace_id"] == "ws-cli"
        out = capsys.readouterr().out
        assert "Upload ok: 1 code blocks stored" in out

    def test_failed_flag(self, config_file, fake_client, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "a.py").write_text("a = 1\n")
        main(["-c", str(config_file), "upload", "csv task", "--dir", str(src), "--failed"])
        assert fake_client.upload_calls[0]["succeeded"] is False

    def test_empty_dir(self, config_file, fake_client, tmp_path, capsys):
        main(["-c", str(config_file), "upload", "x", "--dir", str(tmp_path / "empty")])
        assert fake_client.upload_calls == []
        assert "No text files found" in capsys.readouterr().out


class TestConfigValidate:
    def test_valid(self, config_file, capsys):
        main(["-c", str(config_file), "config", "validate"])
        out = capsys.readouterr().out
        assert "Config is valid." in out
        assert "API key: set" in out

    def test_invalid(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("retrieval:\n  top_k: 0\n")
        with pytest.raises(SystemExit) as exc:
            main(["-c", str(path), "config", "validate"])
        assert exc.value.code == 1
        assert "retrieval.top_k" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["-c", str(tmp_path / "nope.yaml"), "config", "validate"])
        assert exc.value.code == 1
        assert "Error loading config" in capsys.readouterr().err


def test_no_command_prints_help():
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
