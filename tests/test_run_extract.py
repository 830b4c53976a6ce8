import json

import pytest

from med7.config import ENV_ALLOW_FALLBACK, ENV_BATCH_SIZE, ENV_MODEL
from med7.extraction.entities import Document, Entity
from med7.extraction.run_extract import build_model, iter_records, main, output_name, parse_args, serialize_document


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (ENV_MODEL, ENV_BATCH_SIZE, ENV_ALLOW_FALLBACK):
        monkeypatch.delenv(name, raising=False)


def test_iter_records_reads_directory_and_jsonl(tmp_path) -> None:
    (tmp_path / "b.txt").write_text("Take insulin 10units BID", encoding="utf-8")
    (tmp_path / "a.txt").write_text("Take aspirin 81mg daily", encoding="utf-8")
    assert [record_id for record_id, _ in iter_records(tmp_path)] == ["a", "b"]

    jsonl = tmp_path / "notes.jsonl"
    jsonl.write_text('{"id": "n1", "text": "warfarin 5mg at bedtime"}\n\n{"text": "PRN"}\n', encoding="utf-8")
    assert list(iter_records(jsonl)) == [("n1", "warfarin 5mg at bedtime"), ("2", "PRN")]


def test_serialize_document() -> None:
    doc = Document(text="aspirin", entities=(Entity(start=1, stop=7, label="DRUG", text="aspirin"),))
    payload = serialize_document("x", doc)
    assert payload == {
        "id": "x",
        "text": "aspirin",
        "entities": [{"start": 1, "stop": 7, "label": "DRUG", "text": "aspirin"}],
    }


def test_main_writes_one_json_per_text(tmp_path) -> None:
    source = tmp_path / "notes"
    source.mkdir()
    (source / "rx1.txt").write_text("Take 10mg aspirin daily", encoding="utf-8")
    (source / "rx2.txt").write_text("", encoding="utf-8")
    output_dir = tmp_path / "out"

    exit_code = main(["--input", str(source), "--output-dir", str(output_dir), "--pattern-only", "--batch-size", "1"])

    assert exit_code == 0
    payload = json.loads((output_dir / "rx1.json").read_text(encoding="utf-8"))
    assert {entity["label"] for entity in payload["entities"]} == {"DRUG", "DOSAGE", "FREQUENCY"}
    empty = json.loads((output_dir / "rx2.json").read_text(encoding="utf-8"))
    assert empty["entities"] == []


def test_main_writes_jsonl(tmp_path) -> None:
    source = tmp_path / "notes.jsonl"
    source.write_text(
        "\n".join(json.dumps({"id": f"n{idx}", "text": text}) for idx, text in enumerate(["Use ibuprofen 200mg PRN", "nothing"])),
        encoding="utf-8",
    )
    output = tmp_path / "out" / "docs.jsonl"

    assert main(["--input", str(source), "--output", str(output), "--pattern-only", "--workers", "2"]) == 0

    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert [line["id"] for line in lines] == ["n0", "n1"]
    assert [entity["text"] for entity in lines[0]["entities"]] == ["ibuprofen", "200mg", "PRN"]
    assert lines[1]["entities"] == []


def test_main_missing_input(tmp_path) -> None:
    assert main(["--input", str(tmp_path / "missing.txt"), "--pattern-only"]) == 1


def test_main_strict_failure(tmp_path) -> None:
    source = tmp_path / "note.txt"
    source.write_text("aspirin", encoding="utf-8")
    assert main(["--input", str(source), "--model", "med7-test-missing-model", "--strict"]) == 2


def test_non_string_text_is_converted(tmp_path) -> None:
    source = tmp_path / "notes.jsonl"
    source.write_text('{"id": "a", "text": 42}\n{"id": "b", "text": null}\n', encoding="utf-8")
    assert list(iter_records(source)) == [("a", "42"), ("b", "")]

    output = tmp_path / "docs.jsonl"
    assert main(["--input", str(source), "--output", str(output), "--pattern-only"]) == 0
    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert [line["text"] for line in lines] == ["42", ""]


def test_record_ids_are_safe_file_names(tmp_path) -> None:
    assert output_name("ward/7") == "ward_7"
    assert output_name("../../etc") == "_.._etc"
    assert output_name("..") == "record"

    source = tmp_path / "notes.jsonl"
    source.write_text('{"id": "ward/7", "text": "aspirin 10mg"}\n', encoding="utf-8")
    output_dir = tmp_path / "out"
    assert main(["--input", str(source), "--output-dir", str(output_dir), "--pattern-only"]) == 0
    payload = json.loads((output_dir / "ward_7.json").read_text(encoding="utf-8"))
    assert payload["id"] == "ward/7"
    assert [entity["text"] for entity in payload["entities"]] == ["aspirin", "10mg"]


def test_build_model_carries_cli_settings() -> None:
    model = build_model(parse_args(["--input", "x.txt", "--pattern-only", "--batch-size", "3", "--strict", "--model", "m"]))
    assert model.is_fallback
    assert model.config.batch_size == 3
    assert model.config.allow_fallback is False
    assert model.config.preferred_backend_name == "m"
