"""Tests for the command-line front end, using the offline providers."""
import pytest

from ragcore.cli import build_parser, main


@pytest.fixture
def offline_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("EMBEDDING_PROVIDER", "mock")
    monkeypatch.setenv("EMBEDDING_DIMENSIONS", "32")
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return tmp_path


def test_parser_subcommands():
    parser = build_parser()

    args = parser.parse_args(["search", "rockets", "--limit", "3", "--threshold", "0.5"])
    assert (args.command, args.query, args.limit, args.threshold) == ("search", "rockets", 3, 0.5)

    args = parser.parse_args(["ingest-dir", "docs", "-r", "--pattern", "*.md"])
    assert args.recursive is True
    assert args.pattern == "*.md"


def test_ingest_ask_and_delete(offline_env, capsys):
    doc = offline_env / "rockets.txt"
    doc.write_text("Rockets burn fuel to reach orbit.")

    assert main(["ingest", str(doc)]) == 0
    assert "Ingested 'rockets': 1 chunks" in capsys.readouterr().out

    assert main(["ask", "rockets orbit"]) == 0
    out = capsys.readouterr().out
    assert "Rockets burn fuel to reach orbit." in out
    assert "Sources: rockets" in out

    assert main(["delete", "rockets"]) == 0
    assert "rockets: deleted" in capsys.readouterr().out


def test_ingest_dir_exit_code(offline_env, capsys):
    docs = offline_env / "docs"
    docs.mkdir()
    (docs / "a.txt").write_text("Alpha.")
    (docs / "b.txt").write_bytes(b"\xff\xfe")

    assert main(["ingest-dir", str(docs)]) == 1
    assert "b.txt" in capsys.readouterr().out


def test_errors_are_reported(offline_env, capsys):
    assert main(["search", "   "]) == 1
    assert "validation: Query cannot be empty" in capsys.readouterr().out


def test_health(offline_env, capsys):
    assert main(["health"]) == 0
    assert "Status: healthy" in capsys.readouterr().out
