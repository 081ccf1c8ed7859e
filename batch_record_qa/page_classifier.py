"""Page classifier assigning batch-record page types, plus page-sequence checks."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable
from typing import Any

from batch_record_qa.models import (
    ClassificationResult,
    ClassifierConfig,
    IssueSeverity,
    IssueType,
    PageRecord,
    PageType,
    QualityIssue,
)
from batch_record_qa.patterns import DEFAULT_PATTERN_TABLES, PatternTables

logger = logging.getLogger(__name__)

_UNKNOWN_CONFIDENCE = 30.0
_DEFAULT_AI_CONFIDENCE = 50.0

# Pages with less stripped text than this are reported as corrupted.
_MIN_PAGE_TEXT_LENGTH = 50

_SYSTEM_PROMPT = (
    "You are an expert pharmaceutical batch record analyst. "
    "Respond only with valid JSON."
)


class PageClassifier(ABC):
    """Assigns a :class:`PageType` to the text of a single page."""

    @abstractmethod
    def classify_page(self, text: str, page_number: int) -> ClassificationResult:
        """Classify one page. Implementations must not raise."""


class RuleBasedPageClassifier(PageClassifier):
    """Deterministic keyword classifier. First matching keyword group wins."""

    def __init__(self, tables: PatternTables = DEFAULT_PATTERN_TABLES) -> None:
        self.tables = tables

    def classify_page(self, text: str, page_number: int) -> ClassificationResult:
        lower_text = (text or "").lower()
        for group in self.tables.keyword_groups:
            if any(keyword in lower_text for keyword in group.keywords):
                return ClassificationResult(
                    classification=group.page_type,
                    confidence=group.confidence,
                    reasoning=group.reasoning,
                )
        return ClassificationResult(
            classification=PageType.UNKNOWN,
            confidence=_UNKNOWN_CONFIDENCE,
            reasoning="No clear matching keywords found",
        )


class OpenAIPageClassifier(PageClassifier):
    """Classifies pages with an OpenAI chat model.

    Every failure (transport, provider error, malformed or unexpected
    response) is logged and answered by the fallback classifier instead.
    """

    def __init__(
        self,
        client: Any,
        config: ClassifierConfig | None = None,
        fallback: PageClassifier | None = None,
        tables: PatternTables = DEFAULT_PATTERN_TABLES,
    ) -> None:
        self._client = client
        self.config = config or ClassifierConfig()
        self.tables = tables
        self.fallback = fallback or RuleBasedPageClassifier(tables)

    def classify_page(self, text: str, page_number: int) -> ClassificationResult:
        try:
            response = self._client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_prompt(text, page_number)},
                ],
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
                timeout=self.config.timeout,
            )
            return parse_ai_response(response.choices[0].message.content)
        except Exception as exc:
            logger.warning(
                "AI classification failed for page %d, using rule-based fallback: %s",
                page_number,
                exc,
            )
            return self.fallback.classify_page(text, page_number)

    def _build_prompt(self, text: str, page_number: int) -> str:
        categories = "\n".join(
            f"- {page_type.value}: {description}"
            for page_type, description in self.tables.page_type_descriptions.items()
        )
        excerpt = (text or "")[: self.config.max_text_chars]
        return (
            "You are an expert at analyzing pharmaceutical batch record documents. "
            "Classify the following page text into one of these categories:\n\n"
            f"{categories}\n\n"
            f"Page {page_number} text:\n{excerpt}\n\n"
            "Analyze the content and respond in JSON format with:\n"
            "{\n"
            '  "classification": "<one of the page types>",\n'
            '  "confidence": <0-100>,\n'
            '  "reasoning": "<brief explanation>"\n'
            "}"
        )


def parse_ai_response(content: str | None) -> ClassificationResult:
    """Parse the model's JSON answer into a :class:`ClassificationResult`.

    Raises:
        ValueError: If the content is not a JSON object or names an unknown
            page type or a non-numeric confidence.
    """
    result = json.loads(content or "{}")
    if not isinstance(result, dict):
        raise ValueError(f"Expected a JSON object, got {type(result).__name__}")

    classification = PageType(result.get("classification") or PageType.UNKNOWN.value)
    confidence = float(result.get("confidence") or _DEFAULT_AI_CONFIDENCE)
    return ClassificationResult(
        classification=classification,
        confidence=min(100.0, max(0.0, confidence)),
        reasoning=result.get("reasoning") or "AI classification",
    )


def create_page_classifier(
    config: ClassifierConfig | None = None,
    tables: PatternTables = DEFAULT_PATTERN_TABLES,
) -> PageClassifier:
    """Select the classification strategy for this process.

    An API key (from *config* or ``OPENAI_API_KEY``) selects the AI classifier
    with rule-based fallback; otherwise the rule-based classifier is used.
    """
    config = config or ClassifierConfig.from_env()
    rule_based = RuleBasedPageClassifier(tables)
    if not config.api_key:
        logger.warning("OpenAI API key not configured - using rule-based classification")
        return rule_based

    from openai import OpenAI

    client = OpenAI(api_key=config.api_key, max_retries=0)
    return OpenAIPageClassifier(client, config=config, fallback=rule_based, tables=tables)


def detect_quality_issues(pages: Iterable[PageRecord]) -> list[QualityIssue]:
    """Detect missing, duplicate, out-of-order and corrupted pages.

    Each check runs independently, so several issue types can be reported
    for the same document. An empty page list yields no issues.
    """
    pages = list(pages)
    issues: list[QualityIssue] = []
    page_numbers = sorted(p.page_number for p in pages)

    missing: list[int] = []
    for previous, current in zip(page_numbers, page_numbers[1:]):
        if current - previous > 1:
            missing.extend(range(previous + 1, current))
    if missing:
        issues.append(
            QualityIssue(
                type=IssueType.MISSING,
                severity=IssueSeverity.HIGH,
                description=f"Missing {len(missing)} page(s) in sequence",
                page_numbers=missing,
            )
        )

    counts = Counter(page_numbers)
    duplicated = sorted(n for n, count in counts.items() if count > 1)
    if duplicated:
        repeats = sum(counts[n] - 1 for n in duplicated)
        issues.append(
            QualityIssue(
                type=IssueType.DUPLICATE,
                severity=IssueSeverity.MEDIUM,
                description=f"Found {repeats} duplicate page(s)",
                page_numbers=duplicated,
            )
        )

    # TODO: compare against page arrival order once the product owner confirms
    # the intended semantics; against the sorted list this never fires.
    out_of_order = [
        n for i, n in enumerate(page_numbers) if i > 0 and n < page_numbers[i - 1]
    ]
    if out_of_order:
        issues.append(
            QualityIssue(
                type=IssueType.OUT_OF_ORDER,
                severity=IssueSeverity.MEDIUM,
                description="Pages appear out of chronological order",
                page_numbers=out_of_order,
            )
        )

    corrupted = [
        p.page_number
        for p in pages
        if not p.text or len(p.text.strip()) < _MIN_PAGE_TEXT_LENGTH
    ]
    if corrupted:
        issues.append(
            QualityIssue(
                type=IssueType.CORRUPTED,
                severity=IssueSeverity.HIGH,
                description=f"{len(corrupted)} page(s) may be corrupted or unreadable",
                page_numbers=corrupted,
            )
        )

    return issues
