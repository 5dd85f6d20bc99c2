from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .db import DocumentStore
from .exercises import Quiz, build_quiz, grade
from .facts import SentenceFact
from .graph import FactGraph
from .review import QuizEvent, apply_review
from .session import Clock, Feedback, InvalidTransitionError, Presenting, SessionMachine, SessionState, utc_now
from .sync import SyncBridge


@dataclass(frozen=True)
class Answer:
    correct: bool
    quiz: Quiz
    event: QuizEvent
    state: SessionState


class StudySession:
    """One study session over a parsed document.

    Holds the store handle and the clock explicitly. Use as a context manager
    so the change subscription is released when the session ends.
    """

    def __init__(self, graph: FactGraph, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.graph = graph
        self.store = store
        self.clock = clock
        self.bridge = SyncBridge(store, graph.keys())
        self.machine = SessionMachine(graph, self.bridge.models, clock)

    @classmethod
    def from_sentences(cls, sentences: Iterable[SentenceFact], store: DocumentStore, clock: Clock = utc_now) -> StudySession:
        return cls(FactGraph.from_sentences(sentences), store, clock)

    @property
    def state(self) -> SessionState:
        return self.machine.state

    def open(self) -> StudySession:
        self.bridge.load()
        return self

    def close(self) -> None:
        self.bridge.close()

    def __enter__(self) -> StudySession:
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def current_quiz(self) -> Optional[Quiz]:
        state = self.machine.state
        if not isinstance(state, (Presenting, Feedback)):
            return None
        return build_quiz(state.key, state.fact, state.parent)

    def start(self) -> SessionState:
        """Start (or restart) picking: refresh from the store first."""
        self.bridge.sync()
        return self.machine.start_session()

    def end(self) -> SessionState:
        return self.machine.end_session()

    def answer(self, response: str) -> Answer:
        """Grade `response` for the presented key, record the review, then advance.

        The review is written through to the store before the local mapping is
        touched; pending notifications are folded afterwards so the store's
        state is what the next selection sees.
        """
        state = self.machine.state
        if not isinstance(state, Presenting):
            raise InvalidTransitionError(f"nothing to answer while {state.kind.value}")
        quiz = build_quiz(state.key, state.fact, state.parent)
        correct = grade(quiz, response)
        updated, event = apply_review(self.store, quiz.key, correct, self.clock(), response)
        self.bridge.apply_local(updated)
        self.bridge.sync()
        if correct:
            next_state = self.machine.submit_success()
        else:
            next_state = self.machine.submit_failure(response)
        return Answer(correct, quiz, event, next_state)
