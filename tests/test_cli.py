"""
Tests for the ``instruction-context`` CLI (instruction_context.cli).
"""

import json
import logging
import os
from unittest.mock import MagicMock, patch

import pytest
import yaml

from instruction_context.cli import _build_parser, main
from instruction_context.log_setup import setup_logger


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("INSTRUCTION_CONTEXT_"):
            monkeypatch.delenv(key)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("INSTRUCTION_CONTEXT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class TestParser:

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])

    def test_language_choices(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["compose", "hi", "--language", "de"])

    def test_compose_flags(self):
        args = _build_parser().parse_args(
            ["compose", "hi", "-l", "is", "--session-topic", "hours", "--max-chars", "900",
             "--broader-recall", "--json"])
        assert args.language == "is"
        assert args.session_topic == "hours"
        assert args.max_chars == 900
        assert args.broader_recall and args.json


# ---------------------------------------------------------------------------
# compose / topics / modules
# ---------------------------------------------------------------------------

class TestCompose:

    def test_json_output(self, capsys):
        main(["compose", "What time do you close?", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["language"] == "en"
        assert data["topics"] == ["hours"]
        assert "formatting/time_format" in data["ordered_modules"]
        assert data["fragment_sources"]["en.hours.daily"] == "keyword"
        assert data["warnings"] == []
        assert data["total_length"] == len(data["text"])

    def test_text_output_detects_language(self, capsys):
        main(["compose", "Hvenær lokar lónið?"])
        out = capsys.readouterr().out
        assert "(detected language: is" in out
        assert "RESPOND IN ICELANDIC." in out
        assert "Topics    : hours" in out

    def test_session_topic_carry_over(self, capsys):
        main(["compose", "ok", "-l", "en", "--session-topic", "age_policy", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert "policies/age_policy" in data["ordered_modules"]

    def test_budget_too_small_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["compose", "hi", "--max-chars", "50"])
        assert exc.value.code == 2
        assert "Configuration error" in capsys.readouterr().err

    @pytest.mark.parametrize("name, value, expected", [
        ("INSTRUCTION_CONTEXT_MAX_CHARS", "abc", "INSTRUCTION_CONTEXT_MAX_CHARS"),
        ("INSTRUCTION_CONTEXT_VECTOR_BACKEND", "opneai", "'opneai'"),
    ])
    def test_bad_setting_exits_2(self, capsys, monkeypatch, name, value, expected):
        monkeypatch.setenv(name, value)
        with pytest.raises(SystemExit) as exc:
            main(["compose", "hi"])
        assert exc.value.code == 2
        err = capsys.readouterr().err
        assert "Configuration error" in err
        assert expected in err


class TestTopics:

    def test_shows_activations(self, capsys):
        main(["topics", "My son is 12, what age do you allow?", "-l", "en"])
        out = capsys.readouterr().out
        assert "Rule topics: age_policy" in out
        assert "age_policy  [keyword]" in out
        assert "en.age.policy" in out

    def test_no_topics(self, capsys):
        main(["topics", "xyzzy", "-l", "en"])
        assert "No topics detected" in capsys.readouterr().out


class TestModules:

    def test_lists_in_composition_order(self, capsys):
        main(["modules", "-l", "is"])
        out = capsys.readouterr().out
        assert "language/icelandic_rules" in out
        assert "language/english_rules" not in out
        assert out.index("core/identity") < out.index("formatting/time_format")


# ---------------------------------------------------------------------------
# search / embed
# ---------------------------------------------------------------------------

class TestSearch:

    def test_disabled_backend_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["search", "food", "-l", "en"])
        assert exc.value.code == 1
        assert "disabled" in capsys.readouterr().err

    def test_http_backend(self, capsys):
        response = MagicMock()
        response.json.return_value = {"results": [{"fragment_ref": "en.dining.options", "score": 0.87}]}
        with patch("instruction_context.knowledge.backends.requests.post",
                   return_value=response) as post:
            main(["search", "somewhere to get a bite", "-l", "en", "--backend", "http"])
        out = capsys.readouterr().out
        assert "en.dining.options" in out
        assert "0.8700" in out
        assert post.call_args.kwargs["json"]["language"] == "en"

    def test_http_backend_failure_exits_1(self, capsys):
        import requests

        with patch("instruction_context.knowledge.backends.requests.post",
                   side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(SystemExit) as exc:
                main(["search", "food", "-l", "en", "--backend", "http"])
        assert exc.value.code == 1
        assert "Search failed" in capsys.readouterr().err


class TestEmbed:

    def test_missing_client_exits_1(self, capsys):
        with patch("instruction_context.cli.get_openai_client",
                   side_effect=EnvironmentError("OPENAI_API_KEY environment variable is not set.")):
            with pytest.raises(SystemExit) as exc:
                main(["embed"])
        assert exc.value.code == 1
        assert "Cannot embed" in capsys.readouterr().err

    def test_embeds_into_configured_store(self, capsys, cli_env, monkeypatch):
        db_path = cli_env / "store" / "vectors.db"
        monkeypatch.setenv("INSTRUCTION_CONTEXT_VECTOR_DB_PATH", str(db_path))

        client = MagicMock()

        def create(model, input):
            response = MagicMock()
            response.data = [MagicMock(embedding=[1.0, float(i)]) for i, _ in enumerate(input)]
            return response

        client.embeddings.create.side_effect = create
        with patch("instruction_context.cli.get_openai_client", return_value=client):
            main(["embed", "--clear"])

        out = capsys.readouterr().out
        assert "Embed complete" in out
        assert "Errors    : 0" in out
        assert db_path.exists()


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------

class TestExport:

    def test_export_modules_to_stdout(self, capsys):
        main(["export", "modules"])
        data = yaml.safe_load(capsys.readouterr().out)
        assert data["modules"][0]["id"] == "core/identity"

    def test_export_knowledge_round_trips_through_config(self, capsys, cli_env):
        path = cli_env / "knowledge.yaml"
        main(["export", "knowledge", "-o", str(path)])
        assert "Wrote knowledge" in capsys.readouterr().out

        (cli_env / ".instruction_context.yaml").write_text(
            f"knowledge_file: {path}\n", encoding="utf-8")
        main(["compose", "What time do you close?", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["topics"] == ["hours"]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class TestLogging:

    def test_setup_logger_does_not_stack_handlers(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        logger = setup_logger(log_dir)
        setup_logger(log_dir, console=True)
        ours = [h for h in logger.handlers if getattr(h, "_instruction_context", False)]
        try:
            assert len(ours) == 2
            assert any(isinstance(h, logging.FileHandler) for h in ours)
            assert os.listdir(log_dir)
        finally:
            for h in ours:
                logger.removeHandler(h)
                h.close()
