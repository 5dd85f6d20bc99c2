from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .facts import (
    ConjugatedFact,
    Fact,
    FactType,
    ParticleFact,
    SentenceFact,
    VocabFact,
    furigana_to_plain,
    furigana_to_reading,
    has_kanji,
    normalize_reading,
)
from .graph import FactGraphError
from .keys import READING

BLANK = "＿＿"
YES_ANSWERS = frozenset({"y", "yes", "はい", "1", "true"})


class QuizKind(str, Enum):
    COMPREHENSION = "comprehension"  # binary, self-graded
    READING = "reading"  # free text, normalized kana comparison
    FILL_IN = "fill_in"  # free text, exact match


@dataclass(frozen=True)
class Quiz:
    key: str
    kind: QuizKind
    prompt: str
    accepted: Tuple[str, ...] = ()
    hints: str = ""
    context: str = ""  # sentence text or definition shown after answering


def _sentence_quiz(key: str, fact: SentenceFact, parent: Optional[SentenceFact]) -> Quiz:
    translation = "; ".join(f"{lang}: {text}" for lang, text in fact.translation.items())
    if key.endswith("/" + READING):
        return Quiz(
            key, QuizKind.READING,
            prompt=f"Read aloud: {fact.text}",
            accepted=(furigana_to_reading(fact.furigana),),
            context=translation,
        )
    return Quiz(
        key, QuizKind.COMPREHENSION,
        prompt=f"Do you understand: {fact.text}",
        context=translation,
    )


def _vocab_quiz(key: str, fact: VocabFact, parent: Optional[SentenceFact]) -> Quiz:
    forms = "・".join(fact.kanji_kana)
    if key.endswith("/" + READING):
        kanji_forms = "・".join(f for f in fact.kanji_kana if has_kanji(f))
        readings = tuple(f for f in fact.kanji_kana if not has_kanji(f))
        if not readings:
            # no kana form to check against, so the reading is self-graded
            return Quiz(
                key, QuizKind.COMPREHENSION,
                prompt=f"Do you know the reading of: {kanji_forms}",
                context=fact.definition,
            )
        return Quiz(
            key, QuizKind.READING,
            prompt=f"Reading of: {kanji_forms}",
            accepted=readings,
            context=fact.definition,
        )
    return Quiz(
        key, QuizKind.COMPREHENSION,
        prompt=f"Do you know the meaning of: {forms}",
        context=fact.definition,
    )


def _blank_span(text: str, left: str, target: str, right: str) -> str:
    """Replace `target` in `text` with a blank, preferring the occurrence framed by left/right."""
    framed = left + target + right
    at = text.find(framed) if framed != target else -1
    if at >= 0:
        start = at + len(left)
    else:
        start = text.find(target)
        if start < 0:
            return text + " " + BLANK
    return text[:start] + BLANK + text[start + len(target):]


def _conjugated_quiz(key: str, fact: ConjugatedFact, parent: Optional[SentenceFact]) -> Quiz:
    if parent is None:
        raise FactGraphError(f"{key} needs its enclosing sentence")
    expected = furigana_to_plain(fact.expected)
    return Quiz(
        key, QuizKind.FILL_IN,
        prompt=_blank_span(parent.text, "", expected, ""),
        accepted=(expected,),
        hints=furigana_to_plain(fact.hints),
        context=parent.text,
    )


def _particle_quiz(key: str, fact: ParticleFact, parent: Optional[SentenceFact]) -> Quiz:
    if parent is None:
        raise FactGraphError(f"{key} needs its enclosing sentence")
    return Quiz(
        key, QuizKind.FILL_IN,
        prompt=_blank_span(parent.text, fact.left, fact.cloze, fact.right),
        accepted=(fact.cloze,),
        context=parent.text,
    )


QUIZ_BUILDERS: Dict[FactType, Callable[..., Quiz]] = {
    FactType.SENTENCE: _sentence_quiz,
    FactType.VOCAB: _vocab_quiz,
    FactType.CONJUGATED: _conjugated_quiz,
    FactType.PARTICLE: _particle_quiz,
}


def build_quiz(key: str, fact: Fact, parent: Optional[SentenceFact] = None) -> Quiz:
    """Build the presentation payload for one key.

    Particle and conjugated quizzes blank a span of `parent`, which the
    caller resolves from the fact graph.
    """
    return QUIZ_BUILDERS[fact.fact_type](key, fact, parent)


def grade(quiz: Quiz, response: str) -> bool:
    """Grade a response locally and deterministically."""
    if quiz.kind is QuizKind.COMPREHENSION:
        return response.strip().lower() in YES_ANSWERS
    if quiz.kind is QuizKind.READING:
        given = normalize_reading(response)
        return any(given == normalize_reading(a) for a in quiz.accepted)
    return any(response.strip() == a for a in quiz.accepted)
