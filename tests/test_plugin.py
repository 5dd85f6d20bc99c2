import json

import click
import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine

from llm_quiz_document import db, plugin

DOCUMENT = {
    "sentences": [
        {
            "furigana": ["私は", {"ruby": "学生", "rt": "がくせい"}, "です"],
            "subfacts": [{"factType": "particle", "text": "私/は/学生"}],
            "translation": {"en": "I am a student."},
        }
    ]
}
PARTICLE = "model/私は学生です/particle/私_は_学生"


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    test_db = str(tmp_path / "test_plugin.db")
    monkeypatch.setenv("LLM_QUIZ_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield


@pytest.fixture
def cli():
    @click.group()
    def group() -> None:
        pass

    plugin.register_commands(group)
    return group


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "doc.json"
    path.write_text(json.dumps(DOCUMENT, ensure_ascii=False), encoding="utf-8")
    return str(path)


def test_keys_lists_document_keys(cli, document):
    result = CliRunner().invoke(cli, ["quiz-keys", document])
    assert result.exit_code == 0
    assert PARTICLE in result.output
    assert "model/私は学生です/reading" in result.output


def test_learn_rejects_unknown_keys(cli, document):
    result = CliRunner().invoke(cli, ["quiz-learn", document, "model/nope/meaning"])
    assert result.exit_code != 0
    assert "Not in document" in result.output


def test_study_session_round_trip(cli, document):
    runner = CliRunner()
    assert runner.invoke(cli, ["quiz-learn", document, PARTICLE]).exit_code == 0

    result = runner.invoke(cli, ["quiz-study", document], input="は\nq\n")
    assert result.exit_code == 0, result.output
    assert "私＿＿学生です" in result.output
    assert "Correct" in result.output
    assert "Nothing left to review" not in result.output

    history = runner.invoke(cli, ["quiz-history", PARTICLE])
    assert "active" in history.output

    status = runner.invoke(cli, ["quiz-status", document])
    assert PARTICLE in status.output
    assert "unknown" in status.output


def test_study_with_nothing_learned_reports_caught_up(cli, document):
    result = CliRunner().invoke(cli, ["quiz-study", document])
    assert result.exit_code == 0, result.output
    assert "Nothing left to review" in result.output


def test_unlearn(cli, document):
    runner = CliRunner()
    runner.invoke(cli, ["quiz-learn", document, "--all"])
    result = runner.invoke(cli, ["quiz-unlearn", PARTICLE])
    assert "Unlearned 1 key(s)." in result.output


def test_bad_document_is_reported(cli, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"sentences": [{"furigana": "a/b"}]}), encoding="utf-8")
    result = CliRunner().invoke(cli, ["quiz-keys", str(path)])
    assert result.exit_code != 0
    assert "Could not load document" in result.output
