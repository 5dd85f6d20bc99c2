import pytest

from llm_quiz_document.facts import ConjugatedFact, FactType, ParticleFact, Ruby, SentenceFact, VocabFact
from llm_quiz_document.keys import (
    KEY_DERIVERS,
    KeyDerivationError,
    derive_keys,
    derive_sentence_keys,
    key_range,
    key_root,
    parent_meaning_key,
)


def sentence(*furigana, subfacts=()):
    return SentenceFact(furigana=tuple(furigana), subfacts=tuple(subfacts), translation={})


def test_sentence_with_kanji_gets_meaning_and_reading():
    s = sentence(Ruby("猫", "ねこ"), "が", Ruby("好", "す"), "き")
    assert derive_keys(s) == ["model/猫が好き/meaning", "model/猫が好き/reading"]


def test_sentence_without_kanji_gets_meaning_only():
    assert derive_keys(sentence("I like cats")) == ["model/I like cats/meaning"]


def test_particle_key():
    s = sentence("私は", Ruby("学生", "がくせい"), "です")
    particle = ParticleFact(left="私", cloze="は", right="学生")
    assert derive_keys(particle, s) == ["model/私は学生です/particle/私_は_学生"]


def test_conjugated_key_uses_plain_expected_text():
    s = sentence(Ruby("行", "い"), "きました")
    conj = ConjugatedFact(expected=(Ruby("行", "い"), "きました"), hints=("go, past polite",))
    assert derive_keys(conj, s) == ["model/行きました/conjugated/行きました"]


def test_vocab_keys_join_forms():
    vocab = VocabFact(kanji_kana=("遣る", "行る", "やる"), definition="to do")
    assert derive_keys(vocab) == ["model/遣る・行る・やる/meaning", "model/遣る・行る・やる/reading"]
    assert derive_keys(VocabFact(kanji_kana=("やる",), definition="to do")) == ["model/やる/meaning"]


def test_derivation_is_idempotent():
    def build():
        return sentence(
            "私は", Ruby("学生", "がくせい"), "です",
            subfacts=[ParticleFact("私", "は", "学生"), VocabFact(("学生", "がくせい"), "student")],
        )
    assert derive_sentence_keys(build()) == derive_sentence_keys(build())


def test_distinct_content_gives_distinct_keys():
    s = sentence(
        "私は", Ruby("学生", "がくせい"), "です",
        subfacts=[ParticleFact("私", "は", "学生"), ParticleFact("", "は", "")],
    )
    keys = derive_sentence_keys(s)
    assert len(keys) == len(set(keys))


def test_separator_in_sentence_is_rejected():
    with pytest.raises(KeyDerivationError):
        derive_keys(sentence("and/or"))
    with pytest.raises(KeyDerivationError):
        derive_keys(ParticleFact("", "は", ""), sentence("a/b"))


def test_subfacts_need_a_parent():
    with pytest.raises(KeyDerivationError):
        derive_keys(ParticleFact("", "は", ""))


def test_root_and_parent_helpers():
    key = "model/私は学生です/particle/私_は_学生"
    assert key_root(key) == "model/私は学生です"
    assert parent_meaning_key(key) == "model/私は学生です/meaning"
    start, end = key_range("model/私は学生です")
    assert start <= key < end
    assert not (start <= "model/私は学生ですか/meaning" < end)


def test_every_fact_type_has_a_deriver():
    assert set(KEY_DERIVERS) == set(FactType)
