"""
Load a study document from JSON.

    {
      "sentences": [
        {
          "furigana": ["私", "は", {"ruby": "学生", "rt": "がくせい"}, "です"],
          "subfacts": [
            {"factType": "particle", "text": "私/は/学生"},
            {"factType": "vocab", "text": "学生「がくせい」：student"},
            {"factType": "conjugated", "expected": ["です"], "hints": ["copula"]}
          ],
          "translation": {"en": "I am a student."}
        }
      ]
    }

Sub-facts either carry their fields directly (`kanjiKana`/`definition`,
`left`/`cloze`/`right`, `expected`/`hints`) or a raw `text` that is run
through the matching text parser. Conjugated `text` may be a furigana list
containing the `：` break.
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Union

from .facts import (
    ConjugatedFact,
    FactParseError,
    FactType,
    Furigana,
    ParticleFact,
    Ruby,
    SentenceFact,
    SubFact,
    VocabFact,
    furigana_to_conjugated,
    text_to_particle,
    text_to_vocab,
)
from .keys import derive_sentence_keys


def parse_furigana(raw: Any) -> List[Furigana]:
    if isinstance(raw, str):
        return [raw]
    out: List[Furigana] = []
    for item in raw:
        if isinstance(item, str):
            out.append(item)
        elif isinstance(item, dict) and "ruby" in item:
            rt = item.get("rt") or ""
            # <ruby> without <rt> is plain text
            out.append(Ruby(item["ruby"], rt) if rt else item["ruby"])
        else:
            raise FactParseError(f"not a furigana unit: {item!r}")
    return out


def parse_subfact(raw: Dict[str, Any]) -> SubFact:
    try:
        fact_type = FactType(raw.get("factType"))
    except ValueError:
        raise FactParseError(f"unknown fact type: {raw.get('factType')!r}") from None

    if fact_type is FactType.VOCAB:
        if "text" in raw:
            return text_to_vocab(raw["text"])
        return VocabFact(kanji_kana=tuple(raw["kanjiKana"]), definition=raw.get("definition", ""))
    if fact_type is FactType.PARTICLE:
        if "text" in raw:
            return text_to_particle(raw["text"])
        return ParticleFact(left=raw.get("left", ""), cloze=raw["cloze"], right=raw.get("right", ""))
    if fact_type is FactType.CONJUGATED:
        if "text" in raw:
            return furigana_to_conjugated(parse_furigana(raw["text"]))
        return ConjugatedFact(
            expected=tuple(parse_furigana(raw["expected"])),
            hints=tuple(parse_furigana(raw.get("hints", []))),
        )
    raise FactParseError("sentences do not nest")


def parse_sentence(raw: Dict[str, Any]) -> SentenceFact:
    sentence = SentenceFact(
        furigana=tuple(parse_furigana(raw["furigana"])),
        subfacts=tuple(parse_subfact(s) for s in raw.get("subfacts", [])),
        translation=dict(raw.get("translation", {})),
    )
    # Reject separator-bearing text here, before anything is keyed
    derive_sentence_keys(sentence)
    return sentence


def parse_document(data: Dict[str, Any]) -> List[SentenceFact]:
    return [parse_sentence(s) for s in data.get("sentences", [])]


def load_document(path: Union[str, Path]) -> List[SentenceFact]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_document(json.load(f))
