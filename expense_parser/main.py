from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from expense_parser.config import Settings, load_dotenv
from expense_parser.extractor import DocumentFieldExtractor, ExtractorConfig
from expense_parser.logger import configure_logging
from expense_parser.metrics import JsonlMetricsSink, MetricsCollector
from expense_parser.model_extraction import ExtractionError, client_from_settings
from expense_parser.review_queue import route_to_review_queue
from expense_parser.service import METHODS, parse_document_text

logger = logging.getLogger(__name__)


def _load_settings() -> Settings:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return settings


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8", errors="replace")


def run_parse(path: str, method: str = "rules") -> int:
    settings = _load_settings()
    extractor = DocumentFieldExtractor(ExtractorConfig.from_settings(settings))

    try:
        text = _read_text(path)
    except OSError:
        logger.exception("Could not read document text from %s", path)
        return 1

    try:
        client = client_from_settings(settings) if method == "model" else None
        outcome = parse_document_text(
            text,
            extractor=extractor,
            settings=settings,
            method=method,
            model_client=client,
        )
    except ExtractionError as exc:
        logger.error("Model extraction failed code=%s: %s", exc.code, exc)
        print(json.dumps({"success": False, "error": str(exc), "code": exc.code}, ensure_ascii=False))
        return 2

    print(json.dumps(outcome.to_response(), ensure_ascii=False, indent=2))
    return 0


def run_batch(
    input_dir: str,
    *,
    pattern: str = "*.txt",
    queue_dir: str | None = None,
    metrics_path: str | None = None,
    move: bool = False,
) -> int:
    settings = _load_settings()
    extractor = DocumentFieldExtractor(ExtractorConfig.from_settings(settings))
    active_queue = queue_dir or settings.review_queue_dir
    metrics = MetricsCollector()
    metrics_sink = JsonlMetricsSink(metrics_path or settings.metrics_path)

    files = sorted(p for p in Path(input_dir).glob(pattern) if p.is_file())
    logger.info("Found %d candidate files in %s", len(files), input_dir)

    for path in files:
        started = time.perf_counter()
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            metrics.record_read_failure()
            logger.exception("Could not read %s", path)
            continue

        outcome = parse_document_text(text, extractor=extractor, settings=settings)
        route_to_review_queue(
            document_id=outcome.document_id,
            decision=outcome.decision,
            fields=outcome.fields,
            queue_dir=active_queue,
            source_file=path if move else None,
            metadata={
                "source_file": str(path),
                "violations": outcome.violations,
                "completeness_score": outcome.completeness_score,
            },
        )
        metrics.record_outcome(outcome, int((time.perf_counter() - started) * 1000))

    snapshot = metrics.snapshot()
    metrics_sink.emit_snapshot(snapshot, stage="batch")
    logger.info("Batch summary: %s", snapshot)
    return 1 if snapshot["read_failures_total"] else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Expense document field parser")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Parse one text dump and print the result")
    parse.add_argument("path", help="UTF-8 text file, or - for stdin")
    parse.add_argument("--method", default="rules", choices=list(METHODS))

    batch = subparsers.add_parser("batch", help="Parse a folder of text dumps into the review queue")
    batch.add_argument("--input-dir", required=True)
    batch.add_argument("--pattern", default="*.txt")
    batch.add_argument("--queue-dir", default=None)
    batch.add_argument("--metrics-path", default=None)
    batch.add_argument("--move", action="store_true", help="Move source files into the review queue")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "parse":
        return run_parse(args.path, method=args.method)
    if args.command == "batch":
        return run_batch(
            args.input_dir,
            pattern=args.pattern,
            queue_dir=args.queue_dir,
            metrics_path=args.metrics_path,
            move=args.move,
        )
    if args.command == "serve":
        from expense_parser import api_main

        api_main.main(host=args.host, port=args.port)
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
