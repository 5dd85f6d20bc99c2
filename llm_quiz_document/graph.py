from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from .facts import Fact, FactType, SentenceFact
from .keys import derive_keys, parent_meaning_key


class FactGraphError(LookupError):
    pass


@dataclass(frozen=True)
class FactEntry:
    key: str
    fact: Fact
    sentence: Optional[SentenceFact]  # enclosing sentence for sub-facts


class FactGraph:
    """Key -> fact lookup built once per parsed document.

    Keys keep document order: each sentence's own keys, then its sub-facts'.
    A key produced twice (the same vocab in two sentences) keeps its first
    occurrence. Review activity never mutates the graph.
    """

    def __init__(self, entries: Iterable[FactEntry]) -> None:
        self._entries: Dict[str, FactEntry] = {}
        for entry in entries:
            self._entries.setdefault(entry.key, entry)

    @classmethod
    def from_sentences(cls, sentences: Iterable[SentenceFact]) -> "FactGraph":
        entries: List[FactEntry] = []
        for sentence in sentences:
            for key in derive_keys(sentence):
                entries.append(FactEntry(key, sentence, None))
            for sub in sentence.subfacts:
                for key in derive_keys(sub, sentence):
                    entries.append(FactEntry(key, sub, sentence))
        return cls(entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries)

    def entry(self, key: str) -> FactEntry:
        try:
            return self._entries[key]
        except KeyError:
            raise FactGraphError(f"unknown key: {key}") from None

    def fact(self, key: str) -> Fact:
        return self.entry(key).fact

    def parent_sentence(self, key: str) -> Optional[SentenceFact]:
        """The sentence a particle/conjugated key belongs to; None for other facts.

        Resolved from the key itself (root + `/meaning`), which must name a
        sentence in this graph.
        """
        fact = self.fact(key)
        if fact.fact_type not in (FactType.PARTICLE, FactType.CONJUGATED):
            return None
        parent_key = parent_meaning_key(key)
        parent = self._entries.get(parent_key)
        if parent is None or parent.fact.fact_type is not FactType.SENTENCE:
            raise FactGraphError(f"no parent sentence {parent_key} for {key}")
        return parent.fact  # type: ignore[return-value]
