"""
Quiz session state machine.

    Idle        --start_session-->   Selecting
    Selecting   --key picked-->      Presenting(key, fact, parent)
    Selecting   --nothing to pick--> Idle
    Presenting  --submit_failure-->  Feedback(key, fact, parent, response)
    Presenting  --submit_success-->  Selecting
    Presenting  --start_session-->   Selecting   (re-pick)
    Presenting  --end_session-->     Idle
    Feedback    --start_session-->   Selecting
    Feedback    --end_session-->     Idle

Selecting is transient: entering it immediately asks the scheduler for a key.
Any other (state, action) pair raises InvalidTransitionError.
"""
from __future__ import annotations
import datetime
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .facts import Fact, SentenceFact
from .graph import FactGraph
from .recall import RecallModel
from .scheduler import select_next

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class InvalidTransitionError(RuntimeError):
    pass


class StateKind(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PRESENTING = "presenting"
    FEEDBACK = "feedback"


class Action(str, Enum):
    START_SESSION = "start_session"
    SUBMIT_SUCCESS = "submit_success"
    SUBMIT_FAILURE = "submit_failure"
    END_SESSION = "end_session"


@dataclass(frozen=True)
class Idle:
    kind: StateKind = StateKind.IDLE


@dataclass(frozen=True)
class Selecting:
    kind: StateKind = StateKind.SELECTING


@dataclass(frozen=True)
class Presenting:
    key: str
    fact: Fact
    parent: Optional[SentenceFact]
    kind: StateKind = StateKind.PRESENTING


@dataclass(frozen=True)
class Feedback:
    key: str
    fact: Fact
    parent: Optional[SentenceFact]
    response: str
    kind: StateKind = StateKind.FEEDBACK


SessionState = Union[Idle, Selecting, Presenting, Feedback]

TRANSITIONS: Dict[Tuple[StateKind, Action], StateKind] = {
    (StateKind.IDLE, Action.START_SESSION): StateKind.SELECTING,
    (StateKind.PRESENTING, Action.SUBMIT_FAILURE): StateKind.FEEDBACK,
    (StateKind.PRESENTING, Action.SUBMIT_SUCCESS): StateKind.SELECTING,
    (StateKind.PRESENTING, Action.START_SESSION): StateKind.SELECTING,
    (StateKind.PRESENTING, Action.END_SESSION): StateKind.IDLE,
    (StateKind.FEEDBACK, Action.START_SESSION): StateKind.SELECTING,
    (StateKind.FEEDBACK, Action.END_SESSION): StateKind.IDLE,
}


class SessionMachine:
    """Drives one study session over a fact graph and a live model mapping.

    `models` is read at every selection, so a mapping kept current by a
    SyncBridge is seen as it changes.
    """

    def __init__(
        self,
        graph: FactGraph,
        models: Mapping[str, Optional[RecallModel]],
        clock: Clock = utc_now,
    ) -> None:
        self.graph = graph
        self.models = models
        self.clock = clock
        self.state: SessionState = Idle()
        self.trace: List[SessionState] = [self.state]

    def _enter(self, state: SessionState) -> SessionState:
        if DEBUG_MODE:
            print(f"🔁 {self.state.kind.value} -> {state.kind.value}")
        self.state = state
        self.trace.append(state)
        return state

    def _check(self, action: Action) -> StateKind:
        target = TRANSITIONS.get((self.state.kind, action))
        if target is None:
            raise InvalidTransitionError(f"{action.value} is not allowed while {self.state.kind.value}")
        return target

    def _select(self) -> SessionState:
        self._enter(Selecting())
        key = select_next({k: self.models.get(k) for k in self.graph}, self.clock())
        if key is None:
            return self._enter(Idle())
        return self._enter(Presenting(key, self.graph.fact(key), self.graph.parent_sentence(key)))

    def start_session(self) -> SessionState:
        self._check(Action.START_SESSION)
        return self._select()

    def submit_success(self) -> SessionState:
        self._check(Action.SUBMIT_SUCCESS)
        return self._select()

    def submit_failure(self, response: str) -> SessionState:
        self._check(Action.SUBMIT_FAILURE)
        state = self.state
        if not isinstance(state, Presenting):
            raise InvalidTransitionError(f"nothing presented while {state.kind.value}")
        return self._enter(Feedback(state.key, state.fact, state.parent, response))

    def end_session(self) -> SessionState:
        self._check(Action.END_SESSION)
        return self._enter(Idle())

    def dispatch(self, action: Action, response: str = "") -> SessionState:
        if action is Action.SUBMIT_FAILURE:
            return self.submit_failure(response)
        return ACTION_HANDLERS[action](self)


ACTION_HANDLERS: Dict[Action, Callable[[SessionMachine], SessionState]] = {
    Action.START_SESSION: SessionMachine.start_session,
    Action.SUBMIT_SUCCESS: SessionMachine.submit_success,
    Action.END_SESSION: SessionMachine.end_session,
}
