"""Pipeline running layout analysis and classification over a whole document."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor

from batch_record_qa.layout_analyzer import LayoutAnalyzer
from batch_record_qa.models import (
    DocumentAnalysis,
    ExtractedPageData,
    PageAnalysis,
    PageRecord,
    ProcessingConfig,
    ProcessingSummary,
)
from batch_record_qa.page_classifier import (
    PageClassifier,
    RuleBasedPageClassifier,
    detect_quality_issues,
)
from batch_record_qa.pdf_source import iter_pdf_pages

logger = logging.getLogger(__name__)

# (page_number, page_text, extracted_data)
PageInput = tuple[int, str, ExtractedPageData]


class BatchRecordProcessor:
    """Wires the layout analyzer, page classifier and sequence check together.

    Pages are independent, so they are analyzed concurrently; the sequence
    check runs once every page is done.
    """

    def __init__(
        self,
        classifier: PageClassifier | None = None,
        analyzer: LayoutAnalyzer | None = None,
    ) -> None:
        self.classifier = classifier or RuleBasedPageClassifier()
        self.analyzer = analyzer or LayoutAnalyzer()

    def process_pages(
        self, pages: Iterable[PageInput], config: ProcessingConfig
    ) -> tuple[DocumentAnalysis, ProcessingSummary]:
        """Analyze and classify *pages*, then check the page sequence.

        *pages* is consumed lazily; at most ``2 * max_workers`` pages are in
        flight at once.
        """
        return self._process(pages, config, warnings=[], unreadable=[])

    def process_pdf(
        self, pdf_path: str, config: ProcessingConfig
    ) -> tuple[DocumentAnalysis, ProcessingSummary]:
        """Process a native-text PDF.

        A page whose text layer cannot be read is skipped with a warning.

        Raises:
            FileNotFoundError: If the file does not exist.
            RuntimeError: If the file is not a valid PDF.
        """
        warnings: list[str] = []
        unreadable: list[int] = []

        def skip_page(page_number: int, exc: Exception) -> None:
            unreadable.append(page_number)
            warn_msg = f"Unreadable page {page_number}: {exc}"
            warnings.append(warn_msg)
            logger.warning(warn_msg)

        pages = iter_pdf_pages(pdf_path, config.chunk_size, on_error=skip_page)
        return self._process(pages, config, warnings=warnings, unreadable=unreadable)

    def _process(
        self,
        pages: Iterable[PageInput],
        config: ProcessingConfig,
        warnings: list[str],
        unreadable: list[int],
    ) -> tuple[DocumentAnalysis, ProcessingSummary]:
        start_time = time.monotonic()
        analyzer = self._analyzer_for(config)
        max_workers = max(1, config.max_workers)

        def analyze(page: PageInput) -> PageAnalysis:
            page_number, text, extracted = page
            classification = self.classifier.classify_page(text, page_number)
            layout = analyzer.analyze(extracted)
            if config.verbose:
                logger.info(
                    "Page %d: classification=%s (%.0f), sections=%d",
                    page_number,
                    classification.classification.value,
                    classification.confidence,
                    len(layout.sections),
                )
            return PageAnalysis(
                page_number=page_number,
                classification=classification,
                layout=layout,
            )

        analyses: list[PageAnalysis] = []
        records: list[PageRecord] = []
        submitted = 0

        def collect(page_number: int, text: str, future: Future) -> None:
            try:
                analysis = future.result()
            except Exception as exc:
                warn_msg = f"Unreadable page {page_number}: {exc}"
                warnings.append(warn_msg)
                logger.warning(warn_msg)
                return
            analyses.append(analysis)
            records.append(
                PageRecord(
                    page_number=page_number,
                    text=text,
                    classification=analysis.classification.classification,
                )
            )

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            pending: deque[tuple[int, str, Future]] = deque()
            for page in pages:
                pending.append((page[0], page[1], executor.submit(analyze, page)))
                submitted += 1
                if len(pending) > 2 * max_workers:
                    collect(*pending.popleft())
            while pending:
                collect(*pending.popleft())

        issues = detect_quality_issues(records)
        for issue in issues:
            warnings.append(
                f"{issue.description} (pages: {', '.join(map(str, issue.page_numbers))})"
            )

        total_pages = submitted + len(unreadable)
        elapsed = time.monotonic() - start_time
        summary = ProcessingSummary(
            total_pages=total_pages,
            pages_processed=len(analyses),
            pages_skipped=total_pages - len(analyses),
            warnings=warnings,
            processing_time_seconds=elapsed,
        )

        if warnings:
            logger.warning("Processing completed with %d warning(s):", len(warnings))
            for w in warnings:
                logger.warning("  %s", w)

        return DocumentAnalysis(pages=analyses, quality_issues=issues), summary

    def _analyzer_for(self, config: ProcessingConfig) -> LayoutAnalyzer:
        if config.include_form_fields == self.analyzer.include_form_fields:
            return self.analyzer
        return LayoutAnalyzer(self.analyzer.tables, include_form_fields=config.include_form_fields)
