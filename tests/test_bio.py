from med7.extraction.bio import PartialEntity, advance, reconstruct_entities, split_tag
from med7.extraction.entities import Entity, TaggedToken


def _tokens(*triples, special=()):
    return [
        TaggedToken(start=start, end=end, tag=tag, special=idx in special)
        for idx, (start, end, tag) in enumerate(triples)
    ]


def test_merge_then_split() -> None:
    text = "abc de mgte"
    entities = reconstruct_entities(text, _tokens((0, 3, "B-DRUG"), (4, 6, "I-DRUG"), (7, 11, "B-DOSAGE")))
    assert entities == [
        Entity(start=1, stop=6, label="DRUG", text="abc de"),
        Entity(start=8, stop=11, label="DOSAGE", text="mgte"),
    ]


def test_dangling_inside_tag_opens_entity() -> None:
    entities = reconstruct_entities("aspirin 10mg", _tokens((0, 7, "I-DRUG")))
    assert entities == [Entity(start=1, stop=7, label="DRUG", text="aspirin")]


def test_inside_tag_with_other_label_starts_new_entity() -> None:
    text = "aspirin 10mg"
    entities = reconstruct_entities(text, _tokens((0, 7, "B-DRUG"), (8, 12, "I-DOSAGE")))
    assert [(entity.label, entity.text) for entity in entities] == [("DRUG", "aspirin"), ("DOSAGE", "10mg")]


def test_outside_tag_closes_entity() -> None:
    text = "aspirin and ibuprofen"
    entities = reconstruct_entities(text, _tokens((0, 7, "B-DRUG"), (8, 11, "O"), (12, 21, "I-DRUG")))
    assert [entity.text for entity in entities] == ["aspirin", "ibuprofen"]


def test_unknown_type_acts_like_outside() -> None:
    text = "metformin John"
    entities = reconstruct_entities(text, _tokens((0, 9, "B-DRUG"), (10, 14, "B-PERSON")))
    assert entities == [Entity(start=1, stop=9, label="DRUG", text="metformin")]


def test_subword_pieces_merge_into_one_entity() -> None:
    text = "metformin 500mg"
    entities = reconstruct_entities(
        text,
        _tokens((0, 3, "B-DRUG"), (3, 6, "I-DRUG"), (6, 9, "I-DRUG"), (10, 13, "B-DOSAGE"), (13, 15, "I-DOSAGE")),
    )
    assert [(entity.start, entity.stop, entity.text) for entity in entities] == [(1, 9, "metformin"), (11, 15, "500mg")]


def test_special_tokens_are_skipped_without_breaking_entity() -> None:
    text = "twice daily"
    tokens = _tokens(
        (0, 0, "O"),
        (0, 5, "B-FREQUENCY"),
        (0, 0, "O"),
        (6, 11, "I-FREQUENCY"),
        (0, 0, "O"),
        special={0, 2, 4},
    )
    assert reconstruct_entities(text, tokens) == [Entity(start=1, stop=11, label="FREQUENCY", text="twice daily")]


def test_stop_is_clamped_to_text_length() -> None:
    entities = reconstruct_entities("abc", _tokens((0, 10, "B-DRUG")))
    assert entities == [Entity(start=1, stop=3, label="DRUG", text="abc")]


def test_empty_and_all_outside_sequences() -> None:
    assert reconstruct_entities("", []) == []
    assert reconstruct_entities("take it", _tokens((0, 4, "O"), (5, 7, "O"))) == []


def test_lowercase_and_underscore_tags_are_accepted() -> None:
    assert split_tag("b-drug") == ("B", "DRUG")
    assert split_tag("I_ROUTE") == ("I", "ROUTE")
    assert split_tag("O") == ("O", None)
    assert split_tag(None) == ("O", None)
    assert split_tag("B-PER") == ("O", None)
    assert split_tag("DRUG") == ("O", None)


def test_advance_is_a_pure_step() -> None:
    current, closed = advance(None, TaggedToken(start=0, end=3, tag="I-DRUG"), 10)
    assert current == PartialEntity(start=0, end=3, label="DRUG")
    assert closed is None

    current, closed = advance(current, TaggedToken(start=4, end=6, tag="I-DRUG"), 10)
    assert current == PartialEntity(start=0, end=6, label="DRUG")
    assert closed is None

    current, closed = advance(current, TaggedToken(start=7, end=9, tag="O"), 10)
    assert current is None
    assert closed == PartialEntity(start=0, end=6, label="DRUG")


def test_unicode_offsets_are_character_offsets() -> None:
    text = "β-agonist salbutamol"
    entities = reconstruct_entities(text, _tokens((10, 20, "B-DRUG")))
    assert entities == [Entity(start=11, stop=20, label="DRUG", text="salbutamol")]
    assert text[entities[0].start - 1 : entities[0].stop] == "salbutamol"


def test_non_string_tags_act_like_outside() -> None:
    assert split_tag(3) == ("O", None)
    assert split_tag(["B-DRUG"]) == ("O", None)
    text = "aspirin 10mg daily"
    tokens = [
        TaggedToken(start=0, end=7, tag="B-DRUG"),
        TaggedToken(start=8, end=12, tag=7),  # type: ignore[arg-type]
        TaggedToken(start=13, end=18, tag="I-DRUG"),
    ]
    assert [entity.text for entity in reconstruct_entities(text, tokens)] == ["aspirin", "daily"]
