import datetime

import pytest
from sqlalchemy import create_engine

from llm_quiz_document import db
from llm_quiz_document.db import DocumentStore
from llm_quiz_document.facts import ParticleFact, Ruby, SentenceFact
from llm_quiz_document.recall import RecallModel
from llm_quiz_document.review import ReviewError, events_for, learn, unlearn
from llm_quiz_document.session import Feedback, Idle, InvalidTransitionError, Presenting
from llm_quiz_document.study import StudySession

START = datetime.datetime(2026, 10, 18, 12, 0, tzinfo=datetime.timezone.utc)
SENTENCE = SentenceFact(
    furigana=("私は", Ruby("学生", "がくせい"), "です"),
    subfacts=(ParticleFact("私", "は", "学生"),),
    translation={"en": "I am a student."},
)
MEANING = "model/私は学生です/meaning"
READING = "model/私は学生です/reading"
PARTICLE = "model/私は学生です/particle/私_は_学生"


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    test_db = str(tmp_path / "test_study.db")
    monkeypatch.setenv("LLM_QUIZ_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, hours):
        self.now += datetime.timedelta(hours=hours)


def test_correct_answer_is_recorded_and_loops():
    store = DocumentStore()
    clock = FakeClock(START)
    learn(store, [PARTICLE], START)
    clock.advance(1)

    with StudySession.from_sentences([SENTENCE], store, clock) as session:
        state = session.start()
        assert state == Presenting(PARTICLE, SENTENCE.subfacts[0], SENTENCE)
        answer = session.answer("は")
        assert answer.correct
        assert answer.event.model_key == PARTICLE
        # Still the only learned key, so it is presented again
        assert isinstance(answer.state, Presenting)
        stored = RecallModel.from_doc(store.get(PARTICLE))
        assert session.bridge.models[PARTICLE] == stored
        assert not session.bridge.provisional


def test_wrong_answer_goes_to_feedback_and_refreshes_siblings():
    store = DocumentStore()
    clock = FakeClock(START)
    learn(store, [PARTICLE, READING], START)
    clock.advance(2)

    with StudySession.from_sentences([SENTENCE], store, clock) as session:
        session.start()
        presented = session.state.key
        answer = session.answer("が")
        assert not answer.correct
        assert answer.state == Feedback(presented, session.state.fact, session.state.parent, "が")
        other = READING if presented == PARTICLE else PARTICLE
        assert session.bridge.models[other].last_seen == clock.now
        assert len(events_for(store, other)) == 1
        assert session.end() == Idle()


def test_answer_outside_presenting_is_rejected():
    with StudySession.from_sentences([SENTENCE], DocumentStore(), FakeClock(START)) as session:
        with pytest.raises(InvalidTransitionError):
            session.answer("は")


def test_unlearned_mid_presentation_can_repick():
    store = DocumentStore()
    clock = FakeClock(START)
    learn(store, [PARTICLE, MEANING], START)
    clock.advance(1)

    with StudySession.from_sentences([SENTENCE], store, clock) as session:
        session.start()
        presented = session.state.key
        unlearn(store, [presented])
        with pytest.raises(ReviewError):
            session.answer("y")
        state = session.start()
        assert isinstance(state, Presenting)
        assert state.key != presented


def test_empty_store_means_nothing_to_review():
    with StudySession.from_sentences([SENTENCE], DocumentStore(), FakeClock(START)) as session:
        assert session.start() == Idle()
        assert session.current_quiz() is None
