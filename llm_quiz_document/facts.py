from __future__ import annotations
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Tuple, Union


class FactParseError(ValueError):
    pass


@dataclass(frozen=True)
class Ruby:
    ruby: str
    rt: str


Furigana = Union[str, Ruby]


class FactType(str, Enum):
    VOCAB = "vocab"
    CONJUGATED = "conjugated"
    PARTICLE = "particle"
    SENTENCE = "sentence"


@dataclass(frozen=True)
class VocabFact:
    kanji_kana: Tuple[str, ...]
    definition: str
    fact_type: FactType = field(default=FactType.VOCAB, init=False)


@dataclass(frozen=True)
class ParticleFact:
    left: str
    cloze: str
    right: str
    fact_type: FactType = field(default=FactType.PARTICLE, init=False)


@dataclass(frozen=True)
class ConjugatedFact:
    expected: Tuple[Furigana, ...]
    hints: Tuple[Furigana, ...]
    fact_type: FactType = field(default=FactType.CONJUGATED, init=False)


SubFact = Union[VocabFact, ParticleFact, ConjugatedFact]


@dataclass(frozen=True)
class SentenceFact:
    furigana: Tuple[Furigana, ...]
    subfacts: Tuple[SubFact, ...]
    translation: Dict[str, str]
    fact_type: FactType = field(default=FactType.SENTENCE, init=False)

    @property
    def text(self) -> str:
        return furigana_to_plain(self.furigana)


Fact = Union[VocabFact, ParticleFact, ConjugatedFact, SentenceFact]

# Han script: CJK blocks plus the iteration/closing marks 々〆〇
_KANJI_RE = re.compile("[\u3005-\u3007\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\U00020000-\U0003134f]")
_WHITESPACE_RE = re.compile(r"\s+")

VOCAB_BREAK = "："
CONJUGATED_BREAK = "："


def has_kanji(text: str) -> bool:
    return _KANJI_RE.search(text) is not None


def furigana_to_plain(furigana: Sequence[Furigana]) -> str:
    """Render the base text of a furigana sequence, dropping readings."""
    return "".join(f if isinstance(f, str) else f.ruby for f in furigana)


def furigana_to_reading(furigana: Sequence[Furigana]) -> str:
    """Render the kana reading: `rt` for annotated units, the text itself otherwise."""
    return "".join(f if isinstance(f, str) else f.rt for f in furigana)


def katakana_to_hiragana(text: str) -> str:
    # ァ (U+30A1) .. ヶ (U+30F6) sit exactly 0x60 above their hiragana
    return "".join(chr(ord(c) - 0x60) if "ァ" <= c <= "ヶ" else c for c in text)


def normalize_reading(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    text = _WHITESPACE_RE.sub("", text)
    # punctuation such as 。、！ is not part of a reading
    text = "".join(c for c in text if not unicodedata.category(c).startswith("P"))
    return katakana_to_hiragana(text)


def text_to_vocab(text: str) -> VocabFact:
    """Parse vocab text like `遣る・行る「やる」：to do/to undertake`.

    Everything before the break is a list of surface forms separated by `・`,
    with the kana form optionally wrapped in 「」. Everything after it is the
    definition.
    """
    split = text.split(VOCAB_BREAK)
    if len(split) != 2:
        raise FactParseError(f"unable to split vocab: {text}")
    forms_text, definition = split
    forms = forms_text.replace("」", "").replace("「", "・").split("・")
    kanji_kana = tuple(f for f in forms if f)
    if not kanji_kana:
        raise FactParseError(f"vocab has no surface forms: {text}")
    return VocabFact(kanji_kana=kanji_kana, definition=definition)


def text_to_particle(text: str) -> ParticleFact:
    split = text.split("/")
    if len(split) == 1:
        return ParticleFact(left="", cloze=split[0], right="")
    if len(split) == 3:
        return ParticleFact(left=split[0], cloze=split[1], right=split[2])
    raise FactParseError(f"unable to split particle: {text}")


def furigana_to_conjugated(contents: Sequence[Furigana]) -> ConjugatedFact:
    """Split a furigana sequence at the first `：` into expected text and hints."""
    expected: List[Furigana] = []
    hints: List[Furigana] = []
    split_found = False
    for item in contents:
        if not isinstance(item, str):
            (hints if split_found else expected).append(item)
        elif split_found:
            hints.append(item)
        elif CONJUGATED_BREAK in item:
            split_found = True
            pre, post = item.split(CONJUGATED_BREAK, 1)
            if pre:
                expected.append(pre)
            if post:
                hints.append(post)
        else:
            expected.append(item)
    return ConjugatedFact(expected=tuple(expected), hints=tuple(hints))
