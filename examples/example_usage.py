#!/usr/bin/env python3
"""Example usage of the batch record QA library."""

from batch_record_qa.compliance_report import build_compliance_report
from batch_record_qa.models import (
    AlertCategory,
    AlertReview,
    AlertSeverity,
    ProcessingConfig,
    QAChecklistInput,
    ReviewDecision,
    ValidationAlert,
)
from batch_record_qa.page_classifier import create_page_classifier
from batch_record_qa.pipeline import BatchRecordProcessor
from batch_record_qa.qa_checklist import evaluate_qa_checklist


def analyze_batch_record(pdf_path: str) -> None:
    """Classify and lay out every page of a native-text batch record PDF."""
    config = ProcessingConfig(chunk_size=50, max_workers=4, verbose=True)

    # Uses the OpenAI classifier when OPENAI_API_KEY is set
    processor = BatchRecordProcessor(classifier=create_page_classifier())
    document, summary = processor.process_pdf(pdf_path, config)

    for page in document.pages:
        sections = ", ".join(s.section_type.value for s in page.layout.sections)
        print(
            f"Page {page.page_number}: {page.classification.classification.value} "
            f"({page.classification.confidence:.0f}) sections=[{sections}]"
        )
    for issue in document.quality_issues:
        print(f"  {issue.severity.value.upper()}: {issue.description} {issue.page_numbers}")

    print(f"\nProcessing Summary:")
    print(f"  Total pages: {summary.total_pages}")
    print(f"  Processed: {summary.pages_processed}")
    print(f"  Skipped: {summary.pages_skipped}")
    print(f"  Time: {summary.processing_time_seconds:.2f}s")


def review_checklist() -> None:
    """Evaluate the QA checklist for a document and apply a reviewer approval."""
    alert = ValidationAlert(
        id="alert-17",
        category=AlertCategory.DATA_INTEGRITY,
        severity=AlertSeverity.HIGH,
        title="Overwrite detected in filling log",
        message="Fill weight on page 6 overwritten without initials",
    )
    checklist = evaluate_qa_checklist(
        QAChecklistInput(document_id="BR-2024-0042", all_alerts=(alert,), total_pages=14)
    )
    print(f"Before review: {checklist.passed_checks} passed, {checklist.failed_checks} failed")

    approval = AlertReview(
        alert_id="alert-17",
        reviewer_id="qa.lead",
        decision=ReviewDecision.APPROVED,
        created_at="2024-06-03T09:15:00Z",
        comment="Correction documented in deviation DV-311",
    )
    report = build_compliance_report(checklist, [approval])
    print(f"After review:  {report.passed_checks} passed, {report.failed_checks} failed")
    print(f"Pass rate: {report.pass_rate}%  Overall: {report.overall_status}")


def main():
    """Example usage."""
    # Example 1: Analyze a batch record PDF
    print("Example 1: Analyzing a batch record PDF...")
    # analyze_batch_record("batch_record.pdf")

    # Example 2: QA checklist with reviewer approval
    print("\nExample 2: Evaluating the QA checklist...")
    review_checklist()

    print("\nUncomment the function call above and provide a PDF path to run Example 1.")


if __name__ == "__main__":
    main()
