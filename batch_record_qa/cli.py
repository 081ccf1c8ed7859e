"""CLI interface for the batch record QA engine."""

from __future__ import annotations

import json
import logging
from typing import Any

import click

from batch_record_qa.models import ClassifierConfig, ProcessingConfig

_INPUT_ERRORS = (ValueError, FileNotFoundError, RuntimeError)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


def _read_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        _fail(f"File not found: {path}")
    except json.JSONDecodeError as exc:
        _fail(f"Invalid JSON in {path}: {exc}")


def _write_json(data: Any, output_path: str | None) -> None:
    text = json.dumps(data, indent=2)
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        click.echo(f"Output written to {output_path}", err=True)
    else:
        click.echo(text)


def _pages_payload(data: Any) -> list:
    """Accept a single page object, a list of pages, or ``{"pages": [...]}``."""
    if isinstance(data, dict):
        return data["pages"] if isinstance(data.get("pages"), list) else [data]
    if isinstance(data, list):
        return data
    raise ValueError("Expected a page object or a list of pages")


_output_option = click.option(
    "-o", "--output", "output_path", default=None, type=click.Path(),
    help="Output file path. Writes to stdout if omitted.",
)
_patterns_option = click.option(
    "--patterns", "patterns_path", default=None, type=click.Path(),
    help="JSON file overriding the built-in section/field/keyword tables.",
)
_verbose_option = click.option(
    "-v", "--verbose", is_flag=True, default=False, help="Enable detailed progress logging.",
)


@click.group()
def cli() -> None:
    """Batch record QA: layout analysis, page classification and QA checklists."""


@cli.command()
@click.argument("input_path", type=click.Path(exists=False))
@_output_option
@_patterns_option
@click.option("--include-form-fields", is_flag=True, default=False, help="Map form-field values into section fields.")
@_verbose_option
def analyze(
    input_path: str,
    output_path: str | None,
    patterns_path: str | None,
    include_form_fields: bool,
    verbose: bool,
) -> None:
    """Analyze the layout of extracted pages.

    INPUT_PATH is an extraction JSON file (one page, a list of pages, or
    {"pages": [...]}) or a native-text PDF.
    """
    _configure_logging(verbose)

    from batch_record_qa.layout_analyzer import LayoutAnalyzer
    from batch_record_qa.patterns import load_pattern_tables
    from batch_record_qa.serialization import (
        format_validation_error,
        parse_extracted_page,
        to_dict,
    )

    try:
        analyzer = LayoutAnalyzer(
            load_pattern_tables(patterns_path), include_form_fields=include_form_fields
        )
        if input_path.lower().endswith(".pdf"):
            from batch_record_qa.pdf_source import iter_pdf_pages

            pages = [extracted for _, _, extracted in iter_pdf_pages(input_path)]
        else:
            pages = [parse_extracted_page(p) for p in _pages_payload(_read_json(input_path))]
    except _INPUT_ERRORS as exc:
        _fail(format_validation_error(exc))

    _write_json([to_dict(analyzer.analyze(page)) for page in pages], output_path)


@cli.command()
@click.argument("input_path", type=click.Path(exists=False))
@_output_option
@_patterns_option
@click.option("--model", default=None, help="OpenAI model used when OPENAI_API_KEY is set.")
@_verbose_option
def classify(
    input_path: str,
    output_path: str | None,
    patterns_path: str | None,
    model: str | None,
    verbose: bool,
) -> None:
    """Classify page texts and check the page sequence.

    INPUT_PATH is a JSON list of pages of the form {"pageNumber", "text"}.
    """
    _configure_logging(verbose)

    from batch_record_qa.page_classifier import create_page_classifier, detect_quality_issues
    from batch_record_qa.patterns import load_pattern_tables
    from batch_record_qa.serialization import format_validation_error, parse_page_records, to_dict

    classifier_config = ClassifierConfig.from_env()
    if model:
        classifier_config.model = model

    try:
        records = parse_page_records(_pages_payload(_read_json(input_path)))
        classifier = create_page_classifier(classifier_config, load_pattern_tables(patterns_path))
    except _INPUT_ERRORS as exc:
        _fail(format_validation_error(exc))

    pages = []
    for record in records:
        result = classifier.classify_page(record.text, record.page_number)
        pages.append({"pageNumber": record.page_number, **to_dict(result)})

    _write_json(
        {"pages": pages, "qualityIssues": to_dict(detect_quality_issues(records))},
        output_path,
    )


@cli.command()
@click.argument("input_path", type=click.Path(exists=False))
@_output_option
@_patterns_option
@click.option("--model", default=None, help="OpenAI model used when OPENAI_API_KEY is set.")
@click.option("--max-workers", default=4, type=int, show_default=True, help="Pages classified in parallel.")
@click.option("--chunk-size", default=50, type=int, show_default=True, help="Number of PDF pages per processing chunk.")
@click.option("--include-form-fields", is_flag=True, default=False, help="Map form-field values into section fields.")
@_verbose_option
def process(
    input_path: str,
    output_path: str | None,
    patterns_path: str | None,
    model: str | None,
    max_workers: int,
    chunk_size: int,
    include_form_fields: bool,
    verbose: bool,
) -> None:
    """Classify, lay out and sequence-check every page of a document.

    INPUT_PATH is a native-text PDF, or a JSON list of pages of the form
    {"pageNumber", "text", "extraction"?}.
    """
    _configure_logging(verbose)

    from batch_record_qa.layout_analyzer import LayoutAnalyzer
    from batch_record_qa.page_classifier import create_page_classifier
    from batch_record_qa.patterns import load_pattern_tables
    from batch_record_qa.pipeline import BatchRecordProcessor
    from batch_record_qa.serialization import format_validation_error, parse_page_inputs, to_dict

    config = ProcessingConfig(
        chunk_size=chunk_size,
        max_workers=max_workers,
        include_form_fields=include_form_fields,
        verbose=verbose,
    )
    classifier_config = ClassifierConfig.from_env()
    if model:
        classifier_config.model = model

    try:
        tables = load_pattern_tables(patterns_path)
        processor = BatchRecordProcessor(
            classifier=create_page_classifier(classifier_config, tables),
            analyzer=LayoutAnalyzer(tables),
        )
        if input_path.lower().endswith(".pdf"):
            document, summary = processor.process_pdf(input_path, config)
        else:
            pages = parse_page_inputs(_pages_payload(_read_json(input_path)))
            document, summary = processor.process_pages(pages, config)
    except _INPUT_ERRORS as exc:
        _fail(format_validation_error(exc))

    _write_json(to_dict(document), output_path)

    click.echo(
        f"\nProcessing summary:\n"
        f"  Total pages:     {summary.total_pages}\n"
        f"  Pages processed: {summary.pages_processed}\n"
        f"  Pages skipped:   {summary.pages_skipped}\n"
        f"  Processing time: {summary.processing_time_seconds:.2f}s\n"
        f"  Warnings:        {len(summary.warnings)}",
        err=True,
    )
    for w in summary.warnings:
        click.echo(f"  - {w}", err=True)


@cli.command()
@click.argument("input_path", type=click.Path(exists=False))
@_output_option
@_verbose_option
def checklist(input_path: str, output_path: str | None, verbose: bool) -> None:
    """Evaluate the twelve QA checkpoints for a document.

    INPUT_PATH is a JSON file with the document's alert pool and
    sub-verification signals.
    """
    _configure_logging(verbose)

    from batch_record_qa.qa_checklist import evaluate_qa_checklist
    from batch_record_qa.serialization import (
        format_validation_error,
        parse_qa_checklist_input,
        to_dict,
    )

    try:
        data = parse_qa_checklist_input(_read_json(input_path))
    except ValueError as exc:
        _fail(f"Invalid checklist input: {format_validation_error(exc)}")

    result = evaluate_qa_checklist(data)
    _write_json(to_dict(result), output_path)
    click.echo(
        f"Passed: {result.passed_checks}, Failed: {result.failed_checks}, "
        f"N/A: {result.na_checks}",
        err=True,
    )


@cli.command()
@click.argument("checklist_path", type=click.Path(exists=False))
@click.option("--reviews", "reviews_path", default=None, type=click.Path(), help="JSON list of alert reviews.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit the report view as JSON.")
@_verbose_option
def report(checklist_path: str, reviews_path: str | None, as_json: bool, verbose: bool) -> None:
    """Show a stored checklist with reviewer approvals applied.

    CHECKLIST_PATH is a checklist JSON file written by the `checklist` command.
    """
    _configure_logging(verbose)

    from batch_record_qa.compliance_report import build_compliance_report
    from batch_record_qa.serialization import (
        format_validation_error,
        parse_alert_reviews,
        parse_checklist,
        to_dict,
    )

    try:
        stored = parse_checklist(_read_json(checklist_path))
        reviews = parse_alert_reviews(_read_json(reviews_path)) if reviews_path else []
    except ValueError as exc:
        _fail(format_validation_error(exc))

    view = build_compliance_report(stored, reviews)
    if as_json:
        _write_json(to_dict(view), None)
        return

    labels = {"pass": "Yes", "fail": "No", "na": "N/A"}
    click.echo("QA Checklist Report")
    click.echo(f"Document:  {view.document_id}")
    click.echo(f"Evaluated: {view.evaluated_at}")
    click.echo(f"{'=' * 60}")
    for report_item in view.items:
        item = report_item.item
        click.echo(
            f"{item.check_number:>2}. {item.title} [{item.category.value}]: "
            f"{labels[report_item.effective_status.value]}"
        )
        if item.details:
            click.echo(f"    {item.details}")
        if report_item.effective_status is not item.status:
            click.echo("    All issues reviewed and approved")
    click.echo(f"\n{'=' * 60}")
    click.echo(
        f"Passed: {view.passed_checks}, Failed: {view.failed_checks}, "
        f"N/A: {view.na_checks}  |  Pass Rate: {view.pass_rate}%"
    )
    click.echo(f"Overall: {view.overall_status}")
