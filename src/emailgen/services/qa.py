import re
from typing import List, Optional

import structlog

from emailgen.errors import StoreError
from emailgen.markup import lint_email
from emailgen.models import QAReport, QAResult, QARule, RuleType, Severity, utc_now
from emailgen.store import Store

logger = structlog.get_logger(__name__)

RULES_TABLE = "qa_rules"
RESULTS_TABLE = "qa_validation_results"

DEFAULT_RULES = [
    QARule(
        id="default-doctype",
        name="DOCTYPE declaration",
        description="Email should start with a DOCTYPE declaration",
        rule_type=RuleType.REGEX.value,
        rule_pattern=r"<!DOCTYPE\s+html",
        severity=Severity.WARNING,
    ),
    QARule(
        id="default-table-layout",
        name="Table layout",
        description="Email layout should be built with tables",
        rule_type=RuleType.TAG.value,
        rule_pattern="table",
        severity=Severity.ERROR,
    ),
    QARule(
        id="default-viewport",
        name="Viewport meta tag",
        description="Responsive emails need a viewport meta tag",
        rule_type=RuleType.ATTRIBUTE.value,
        rule_pattern=r'name=["\']viewport["\']',
        severity=Severity.WARNING,
    ),
    QARule(
        id="default-img-alt",
        name="Image alt text",
        description="Images should carry alt text",
        rule_type=RuleType.ATTRIBUTE.value,
        rule_pattern=r"alt=",
        severity=Severity.INFO,
    ),
]


def _rule_regex(rule: QARule) -> Optional[str]:
    if rule.rule_type == RuleType.REGEX.value:
        return rule.rule_pattern
    if rule.rule_type == RuleType.ATTRIBUTE.value:
        return f"<[^>]*{rule.rule_pattern}[^>]*>"
    if rule.rule_type == RuleType.TAG.value:
        return f"<{rule.rule_pattern}[^>]*>"
    return None


def evaluate_rule(html: str, rule: QARule) -> QAResult:
    """Runs one rule against the markup. Never raises for a bad rule."""
    def result(passing: bool, message: str) -> QAResult:
        return QAResult(
            rule_id=rule.id,
            rule_name=rule.name,
            description=rule.description,
            severity=rule.severity,
            is_passing=passing,
            message=message,
        )

    pattern = _rule_regex(rule)
    if pattern is None:
        return result(False, "Unknown rule type")

    try:
        found = re.search(pattern, html, re.IGNORECASE) is not None
    except re.error as exc:
        logger.warning(f"Invalid pattern in rule {rule.id}", error=str(exc))
        return result(False, "Error validating rule")

    if found:
        return result(True, "Passed")
    return result(False, f"Failed: {rule.description or rule.name}")


class QAService:
    def __init__(self, store: Store):
        self.store = store

    def load_rules(self, rule_ids: Optional[List[str]] = None, active_only: bool = True) -> List[QARule]:
        filters = {}
        if active_only:
            filters["is_active"] = True
        if rule_ids:
            filters["id"] = list(rule_ids)

        rows = self.store.select(RULES_TABLE, filters)
        if not rows:
            logger.info("No QA rules stored; using defaults")
            rules = DEFAULT_RULES
            if rule_ids:
                rules = [r for r in rules if r.id in rule_ids]
            return list(rules)

        return [QARule.model_validate(row) for row in rows]

    def validate(
        self,
        html: str,
        rule_ids: Optional[List[str]] = None,
        email_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> QAReport:
        rules = self.load_rules(rule_ids)
        results = [evaluate_rule(html, rule) for rule in rules]

        # Only failing error-severity rules block the email
        passed = not any(
            not r.is_passing and r.severity == Severity.ERROR for r in results
        )
        report = QAReport(passed=passed, results=results, lint=lint_email(html))

        logger.info(
            f"QA validation finished: {sum(r.is_passing for r in results)}/{len(results)} rules passed",
            passed=passed,
        )
        self._record(report, email_id, user_id)
        return report

    def _record(self, report: QAReport, email_id: Optional[str], user_id: Optional[str]):
        try:
            self.store.insert(
                RESULTS_TABLE,
                {
                    "email_id": email_id,
                    "user_id": user_id,
                    "passed": report.passed,
                    "results": [r.model_dump(by_alias=True, mode="json") for r in report.results],
                    "created_at": utc_now(),
                },
            )
        except StoreError as exc:
            logger.error("Failed to store QA results", error=str(exc))
