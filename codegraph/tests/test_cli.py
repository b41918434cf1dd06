import json

import pytest

import main
from codegraph.config import settings


@pytest.fixture
def json_backend(monkeypatch, tmp_path):
    """Point the CLI at a JSON store in a temp directory."""
    monkeypatch.setattr(settings, "graph_backend", "json")
    monkeypatch.setattr(settings, "graph_json_path", str(tmp_path / "cli_graph.json"))
    return tmp_path / "cli_graph.json"


def run_cli(capsys, *argv):
    code = main.main(list(argv))
    return code, capsys.readouterr().out


class TestCli:
    """Test command line exit codes and output."""

    def test_extract_then_query(self, capsys, json_backend, temp_repo):
        code, out = run_cli(capsys, "extract", "--root", str(temp_repo), "--output", "json")
        assert code == 0
        assert json.loads(out)["success"] is True
        assert json_backend.exists()

        code, out = run_cli(capsys, "query", "--find-entity", "User", "--include-related")
        assert code == 0
        response = json.loads(out)
        assert response["results"]["primary_target"]["name"] == "User"
        assert "packages/schema/src/entities/user.ts" in response["results"]["related_files"]["schemas"]

    def test_extract_console(self, capsys, json_backend, temp_repo):
        code, out = run_cli(capsys, "extract", "--root", str(temp_repo), "--extractor", "schema",
                            "--output", "console")
        assert code == 0
        payload = json.loads(out)
        assert payload["metadata"]["extractor_name"] == "schema"
        assert any(node["id"] == "schema:User" for node in payload["nodes"])
        assert not json_backend.exists()

    def test_query_text_format(self, capsys, json_backend, temp_repo):
        run_cli(capsys, "extract", "--root", str(temp_repo), "--output", "json")
        code, out = run_cli(capsys, "query", "--find-symbol", "fetchUser", "--format", "text")
        assert code == 0
        assert out.startswith("Function fetchUser")

    def test_query_failure_exits_nonzero(self, capsys, json_backend):
        code, out = run_cli(capsys, "query", "--find-entity", " ")
        assert code == 1
        assert json.loads(out)["success"] is False

    def test_missing_root_exits_nonzero(self, capsys, json_backend, tmp_path):
        code, out = run_cli(capsys, "extract", "--root", str(tmp_path / "missing"), "--output", "json")
        assert code == 1
        payload = json.loads(out)
        assert payload["success"] is False
        assert "does not exist" in payload["error"]

    def test_analyze(self, capsys, json_backend):
        code, out = run_cli(capsys, "analyze", "给User加一个生日字段")
        assert code == 0
        plan = json.loads(out)
        assert plan["requirement"]["intent"] == "ADD_FIELD"
        assert plan["field_suggestion"]["serialization_hint"]["prisma"] == "birthday DateTime?"
        assert len(plan["implementation_steps"]) == 5

    def test_analyze_text(self, capsys, json_backend):
        code, out = run_cli(capsys, "analyze", "create api for orders", "--format", "text")
        assert code == 0
        assert out.startswith("CREATE_API Order")

    def test_stats(self, capsys, json_backend, temp_repo):
        run_cli(capsys, "extract", "--root", str(temp_repo), "--output", "json")
        code, out = run_cli(capsys, "stats")
        assert code == 0
        stats = json.loads(out)
        assert stats["node_types"]["Package"] == 3

    def test_requires_subcommand(self):
        with pytest.raises(SystemExit):
            main.main([])
