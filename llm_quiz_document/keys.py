"""
Deterministic identity keys for every reviewable aspect of a fact.

    Sentence    model/<text>/meaning  (+ model/<text>/reading if it has kanji)
    Vocab       model/<forms joined by ・>/meaning  (+ /reading if it has kanji)
    Conjugated  model/<sentence text>/conjugated/<expected text>
    Particle    model/<sentence text>/particle/<left>_<cloze>_<right>

The first two path segments of a key are its root; every key under a root
belongs to the same sentence (or the same vocab entry).
"""
from typing import List, Optional

from .facts import (
    ConjugatedFact,
    Fact,
    FactType,
    ParticleFact,
    SentenceFact,
    VocabFact,
    furigana_to_plain,
    has_kanji,
)

SEPARATOR = "/"
MODEL_PREFIX = "model"
QUIZ_PREFIX = "quiz"
MEANING = "meaning"
READING = "reading"
# Upper bound for "every key nested under a prefix" range scans
RANGE_END = "\uffff"


class KeyDerivationError(ValueError):
    pass


def _check_segment(text: str, what: str) -> str:
    if SEPARATOR in text:
        raise KeyDerivationError(f"{what} text may not contain {SEPARATOR!r}: {text}")
    if not text:
        raise KeyDerivationError(f"{what} text is empty")
    return text


def sentence_root(sentence: SentenceFact) -> str:
    return MODEL_PREFIX + SEPARATOR + _check_segment(sentence.text, "sentence")


def vocab_root(vocab: VocabFact) -> str:
    return MODEL_PREFIX + SEPARATOR + _check_segment("・".join(vocab.kanji_kana), "vocab")


def _meaning_reading(root: str, text: str) -> List[str]:
    keys = [f"{root}/{MEANING}"]
    if has_kanji(text):
        keys.append(f"{root}/{READING}")
    return keys


def _sentence_keys(fact: SentenceFact, parent: Optional[SentenceFact]) -> List[str]:
    return _meaning_reading(sentence_root(fact), fact.text)


def _vocab_keys(fact: VocabFact, parent: Optional[SentenceFact]) -> List[str]:
    return _meaning_reading(vocab_root(fact), "・".join(fact.kanji_kana))


def _conjugated_keys(fact: ConjugatedFact, parent: Optional[SentenceFact]) -> List[str]:
    if parent is None:
        raise KeyDerivationError("conjugated facts need a parent sentence")
    return [f"{sentence_root(parent)}/conjugated/{furigana_to_plain(fact.expected)}"]


def _particle_keys(fact: ParticleFact, parent: Optional[SentenceFact]) -> List[str]:
    if parent is None:
        raise KeyDerivationError("particle facts need a parent sentence")
    return [f"{sentence_root(parent)}/particle/{fact.left}_{fact.cloze}_{fact.right}"]


KEY_DERIVERS = {
    FactType.SENTENCE: _sentence_keys,
    FactType.VOCAB: _vocab_keys,
    FactType.CONJUGATED: _conjugated_keys,
    FactType.PARTICLE: _particle_keys,
}


def derive_keys(fact: Fact, parent: Optional[SentenceFact] = None) -> List[str]:
    """Return the ordered keys for one fact.

    `parent` is the enclosing sentence, required for particle and conjugated
    facts. Raises KeyDerivationError when the text that forms the key root
    contains the path separator.
    """
    return KEY_DERIVERS[fact.fact_type](fact, parent)  # type: ignore[operator]


def derive_sentence_keys(sentence: SentenceFact) -> List[str]:
    """Keys for a sentence followed by the keys of each of its sub-facts."""
    keys = derive_keys(sentence)
    for sub in sentence.subfacts:
        keys.extend(derive_keys(sub, sentence))
    return keys


def key_root(key: str) -> str:
    """Truncate a key to its first two path segments, e.g. `model/<text>`."""
    return SEPARATOR.join(key.split(SEPARATOR)[:2])


def parent_meaning_key(key: str) -> str:
    return f"{key_root(key)}/{MEANING}"


def key_range(root: str) -> tuple[str, str]:
    """Inclusive-exclusive bounds of every key nested under `root`."""
    return f"{root}{SEPARATOR}", f"{root}{SEPARATOR}{RANGE_END}"
