"""CLI to extract medication entities from text files or JSON lines."""
from __future__ import annotations

import argparse
import json
import logging
import re
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from tqdm import tqdm

from med7.config import ModelConfig
from med7.extraction.entities import Document, validate_document
from med7.extraction.model import Med7Model, PatternBacked, StrictLoadFailure, load_model_from_config

LOGGER = logging.getLogger("med7.extract")
UNSAFE_NAME_RE = re.compile(r"[^\w.\-]+")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    defaults = ModelConfig.from_env()
    parser = argparse.ArgumentParser(description="Extract medication entities from clinical text.")
    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="A .txt file, a .jsonl file with a 'text' key per line, or a directory of .txt files.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory to write one JSON document per input record.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write all documents to a single JSON lines file instead.",
    )
    parser.add_argument("--model", default=defaults.preferred_backend_name, help="Backend to try first.")
    parser.add_argument("--batch-size", type=int, default=defaults.batch_size, help="Texts per backend call.")
    parser.add_argument("--workers", type=int, default=None, help="Threads used for per-text reconstruction.")
    parser.add_argument(
        "--strict",
        action="store_true",
        default=not defaults.allow_fallback,
        help="Fail instead of falling back to regex patterns when --model cannot be loaded.",
    )
    parser.add_argument("--pattern-only", action="store_true", help="Skip model loading and use regex patterns.")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    parser.add_argument("--log-file", type=Path, default=None, help="Optional file to write execution logs.")
    return parser.parse_args(argv)


def configure_logging(log_file: Optional[Path]) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s", handlers=handlers)


def iter_records(path: Path) -> Iterator[Tuple[str, str]]:
    """Yield ``(record_id, text)`` pairs from *path*."""

    if path.is_dir():
        for text_path in sorted(path.glob("*.txt")):
            yield text_path.stem, text_path.read_text(encoding="utf-8")
        return
    if path.suffix == ".jsonl":
        with path.open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh):
                if not line.strip():
                    continue
                record = json.loads(line)
                record_id = str(record.get("id", line_no))
                yield record_id, _record_text(record_id, record.get("text"))
        return
    yield path.stem, path.read_text(encoding="utf-8")


def _record_text(record_id: str, value: object) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        LOGGER.warning("Record %s has non-string text of type %s; converting it", record_id, type(value).__name__)
        return str(value)
    return value


def output_name(record_id: str) -> str:
    """File stem for *record_id* that stays inside the output directory."""

    name = UNSAFE_NAME_RE.sub("_", record_id).strip(".")
    return name or "record"


def serialize_document(record_id: str, document: Document) -> dict:
    payload = validate_document(document).model_dump(mode="json")
    payload["id"] = record_id
    return payload


def build_model(args: argparse.Namespace) -> Med7Model:
    config = ModelConfig(preferred_backend_name=args.model, batch_size=args.batch_size, allow_fallback=not args.strict)
    if args.pattern_only:
        return Med7Model(PatternBacked(), config=config)
    return load_model_from_config(config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_file)
    if not args.input.exists():
        LOGGER.error("Input %s not found", args.input)
        return 1

    try:
        model = build_model(args)
    except StrictLoadFailure as exc:
        LOGGER.error("Failed to load backend: %s", exc)
        return 2
    LOGGER.info("Using %r", model)

    records = list(iter_records(args.input))
    indent = 2 if args.pretty else None
    total_entities = 0
    sink = None
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        sink = args.output.open("w", encoding="utf-8")
    elif args.output_dir is not None:
        args.output_dir.mkdir(parents=True, exist_ok=True)
    try:
        with tqdm(total=len(records), desc="extract", unit="doc") as progress:
            for offset in range(0, len(records), model.batch_size):
                chunk = records[offset : offset + model.batch_size]
                documents = model.process_batch([text for _, text in chunk], workers=args.workers)
                for (record_id, _), document in zip(chunk, documents):
                    payload = serialize_document(record_id, document)
                    total_entities += len(document.entities)
                    if sink is not None:
                        sink.write(json.dumps(payload, ensure_ascii=False) + "\n")
                    elif args.output_dir is not None:
                        output_path = args.output_dir / f"{output_name(record_id)}.json"
                        output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=indent), encoding="utf-8")
                    else:
                        print(json.dumps(payload, ensure_ascii=False, indent=indent))
                progress.update(len(chunk))
    finally:
        if sink is not None:
            sink.close()

    LOGGER.info("Completed extraction for %s records (total entities: %s)", len(records), total_entities)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
