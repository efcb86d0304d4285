"""
Semantic equivalence checks between the human and the machine representation
"""

import re
import hmac
import html
import logging
from typing import Any, Iterable, Mapping, Optional

from .conformance import ConformanceChecker
from .. import schemas
from ..misc import timestamps
from ..misc.events import EventSink, NullEventSink


logger = logging.getLogger(__name__)

DEFAULT_EQUIVALENCE_SCOPE = ("title", "content", "status", "modified")
DEFAULT_REQUIRED_LEVEL = 2

_FLAGS = re.IGNORECASE | re.DOTALL
_TITLE_PATTERNS = [re.compile(r"<title[^>]*>(.*?)</title>", _FLAGS), re.compile(r"<h1[^>]*>(.*?)</h1>", _FLAGS)]
_BODY_PATTERN = re.compile(r"<body[^>]*>(.*?)</body>", _FLAGS)
_DATE_PATTERNS = [
    re.compile(r"<meta[^>]+property=[\"']article:modified_time[\"'][^>]+content=[\"']([^\"']+)[\"']", re.I),
    re.compile(r"<meta[^>]+name=[\"']last-modified[\"'][^>]+content=[\"']([^\"']+)[\"']", re.I),
    re.compile(r"<time[^>]+datetime=[\"']([^\"']+)[\"']", re.I)
]
_TAG_PATTERN = re.compile(r"<(script|style)[^>]*>.*?</\1>|<[^>]+>", _FLAGS)
_WHITESPACE = re.compile(r"\s+")


def is_html(content: str) -> bool:
    lowered = content.lower()
    return any(tag in lowered for tag in ("<html", "<body", "<head")) or ("<" in content and ">" in content)


def strip_tags(markup: str) -> str:
    return html.unescape(_TAG_PATTERN.sub(" ", markup))


def extract_from_html(markup: str, field: str) -> Optional[str]:
    """
    Extract the value of a field from an HTML document, returning None if it's missing
    """

    if field == "title":
        for pattern in _TITLE_PATTERNS:
            match = pattern.search(markup)
            if match:
                return strip_tags(match.group(1)).strip()
    elif field == "content":
        match = _BODY_PATTERN.search(markup)
        if match:
            return strip_tags(match.group(1)).strip()
    elif field in ("modified", "status"):
        for pattern in _DATE_PATTERNS:
            match = pattern.search(markup)
            if match:
                return match.group(1)
    return None


def extract_field(content: Any, field: str) -> Any:
    if isinstance(content, Mapping):
        return content.get(field)
    if isinstance(content, str) and is_html(content):
        return extract_from_html(content, field)
    return content


def normalize_value(value: Any) -> Any:
    if isinstance(value, str):
        return _WHITESPACE.sub(" ", value).strip()
    return value


class EquivalenceValidator:
    """
    Validate that both representations of a resource carry the same information
    """

    def __init__(self, events: Optional[EventSink] = None, conformance: Optional[ConformanceChecker] = None):
        self.events = events or NullEventSink()
        self.conformance = conformance or ConformanceChecker(self.events)

    def validate(self, hr: Any, mr: Any, scope: Optional[Iterable[str]] = None) -> schemas.EquivalenceResult:
        """
        Compare the fields of the scope in both representations after whitespace normalization

        The human representation may be a mapping or an HTML document,
        in which case the fields are extracted from the markup.

        :param hr: human representation
        :param mr: machine representation
        :param scope: names of the fields to compare (title, content, status and modified by default)
        :return: equivalence result listing the differing fields
        """

        scope = list(DEFAULT_EQUIVALENCE_SCOPE if scope is None else scope)
        differences, matched = [], {}
        details = {"differences": {}, "matched": matched}
        for field in scope:
            hr_value = normalize_value(extract_field(hr, field))
            mr_value = normalize_value(extract_field(mr, field))
            if hr_value == mr_value:
                matched[field] = hr_value
            else:
                differences.append(field)
                details["differences"][field] = {"hrValue": hr_value, "mrValue": mr_value}

        result = schemas.EquivalenceResult(
            is_valid=not differences,
            fields_checked=scope,
            differences=differences,
            details=details
        )
        return self.events.filter(schemas.FilterHook.SEMANTIC_EQUIVALENCE, result, hr, mr, scope)

    @staticmethod
    def cid_parity(catalog_cid: str, live_cid: str) -> bool:
        return hmac.compare_digest(catalog_cid.encode("utf-8"), live_cid.encode("utf-8"))

    def comprehensive(self, data: Mapping[str, Any]) -> schemas.ValidationReport:
        """
        Run the semantic equivalence and conformance tests on the supplied validation data

        Known keys of ``data`` are ``hr_content`` and ``mr_content`` (both
        required for the equivalence test), ``equivalence_scope``, ``system_info``
        (the capability flags) and ``required_level`` (defaults to 2). Tests
        lacking their input are skipped, the overall status fails when
        at least one of the tests that were run failed.
        """

        tests = []
        summary = schemas.ValidationSummary()

        if data.get("hr_content") is not None and data.get("mr_content") is not None:
            equivalence = self.validate(data["hr_content"], data["mr_content"], data.get("equivalence_scope"))
            status = "pass" if equivalence.is_valid else "fail"
            tests.append(schemas.ValidationTest(
                name="semantic_equivalence",
                status=status,
                result=equivalence.model_dump(by_alias=True)
            ))
        else:
            tests.append(schemas.ValidationTest(
                name="semantic_equivalence",
                status="skipped",
                reason="HR or MR content not provided"
            ))

        if data.get("system_info") is not None:
            conformance = self.conformance.check(data["system_info"])
            required = data.get("required_level", DEFAULT_REQUIRED_LEVEL)
            tests.append(schemas.ValidationTest(
                name="conformance",
                status="pass" if conformance.level >= required else "fail",
                result=conformance.model_dump(by_alias=True)
            ))
        else:
            tests.append(schemas.ValidationTest(
                name="conformance",
                status="skipped",
                reason="System info not provided"
            ))

        for test in tests:
            if test.status == "pass":
                summary.passed += 1
            elif test.status == "fail":
                summary.failed += 1
            else:
                summary.skipped += 1

        report = schemas.ValidationReport(
            overall_status="fail" if summary.failed else "pass",
            timestamp=timestamps.utc_now_iso(),
            tests=tests,
            summary=summary
        )
        logger.debug(f"Comprehensive validation finished: {report.summary}")
        return self.events.filter(schemas.FilterHook.COMPREHENSIVE_VALIDATION, report, data)
