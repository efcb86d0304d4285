"""
Dual-Native unit tests for conformance levels and semantic equivalence
"""

import unittest as _unittest
from typing import Type

from dualnative_core import schemas
from dualnative_core.core import conformance, equivalence


conformance_suite = _unittest.TestSuite()


def _tested(cls: Type):
    global conformance_suite
    for fixture in filter(lambda f: f.startswith("test_"), dir(cls)):
        conformance_suite.addTest(cls(fixture))
    return cls


LEVEL_ONE = {"has_hr": True, "has_mr": True, "hr_links_to_mr": True, "mr_links_to_hr": False}

HTML_DOCUMENT = """<!DOCTYPE html>
<html>
<head>
    <title>Hello &amp; welcome</title>
    <meta property="article:modified_time" content="2024-01-01T00:00:00+00:00">
    <link rel="alternate" type="application/json" href="https://example.org/api/r1">
</head>
<body>
    <h1>Hello &amp; welcome</h1>
    <p>Some   <b>dual-native</b>
    text</p>
    <script>var ignored = "<p>nope</p>";</script>
</body>
</html>
"""


@_tested
class ConformanceTests(_unittest.TestCase):
    def setUp(self) -> None:
        self.checker = conformance.ConformanceChecker()

    def test_levels(self):
        result = self.checker.check({})
        self.assertEqual(0, result.level)
        self.assertEqual([], result.passed_requirements)
        self.assertEqual([r for r, _ in conformance.REQUIREMENTS], result.failed_requirements)

        result = self.checker.check(LEVEL_ONE)
        self.assertEqual(1, result.level)
        self.assertEqual(["hr_mr_with_link"], result.passed_requirements)
        self.assertIn("bidirectional_linking", result.failed_requirements)

        self.assertEqual(2, self.checker.check(dict(LEVEL_ONE, mr_links_to_hr=True)).level)
        self.assertEqual(3, self.checker.check(dict(LEVEL_ONE, mr_links_to_hr=True, has_cid=True, supports_304=True)).level)
        self.assertEqual(4, self.checker.check(conformance.system_capabilities()).level)
        self.assertEqual(0, self.checker.check(dict(LEVEL_ONE, has_hr=False)).level)

    def test_levels_cant_be_skipped(self):
        flags = dict(LEVEL_ONE, has_cid=True, supports_304=True, has_catalog=True, supports_safe_writes=True)
        result = self.checker.check(flags)
        self.assertEqual(1, result.level)
        self.assertEqual(["hr_mr_with_link"], result.passed_requirements)
        self.assertEqual(
            ["bidirectional_linking", "cid_and_zero_fetch", "catalog_and_safe_writes"],
            result.failed_requirements
        )
        self.assertEqual({"has_cid": True, "supports_304": True}, result.details["cid_and_zero_fetch"])

    def test_flag_aliases(self):
        flags = {
            "has_human_representation": True,
            "mr_endpoint": 1,
            "hr_has_mr_link": "yes",
            "mr_has_hr_link": True,
            "supports_etag": True,
            "supports_if_none_match": True,
            "catalog_endpoint": True,
            "supports_if_match": False
        }
        self.assertEqual(3, self.checker.check(flags).level)
        self.assertTrue(conformance.resolve_flag({"supports_if_match": True}, "supports_safe_writes"))
        self.assertFalse(conformance.resolve_flag({"supports_if_match": None}, "supports_safe_writes"))
        self.assertTrue(conformance.resolve_flag({"custom": True}, "custom"))

    def test_result_serialization(self):
        data = self.checker.check(LEVEL_ONE).model_dump(by_alias=True)
        self.assertEqual(1, data["level"])
        self.assertEqual(["hr_mr_with_link"], data["passedRequirements"])
        self.assertEqual(3, len(data["failedRequirements"]))

    def test_feature_checks(self):
        checks = conformance.feature_checks()
        self.assertTrue(checks["conditional_get"])
        self.assertTrue(checks["safe_writes"])
        self.assertNotIn("has_blocks", checks)

        checks = conformance.feature_checks({"blocks": [], "links": {"human_url": "x"}})
        self.assertTrue(checks["has_blocks"])
        self.assertTrue(checks["has_links"])
        self.assertFalse(checks["has_modified"])
        self.assertFalse(conformance.feature_checks({"blocks": "text"})["has_blocks"])


@_tested
class EquivalenceTests(_unittest.TestCase):
    def setUp(self) -> None:
        self.validator = equivalence.EquivalenceValidator()

    def test_html_extraction(self):
        self.assertTrue(equivalence.is_html(HTML_DOCUMENT))
        self.assertFalse(equivalence.is_html("plain text"))
        self.assertEqual("Hello & welcome", equivalence.extract_from_html(HTML_DOCUMENT, "title"))
        self.assertEqual(
            "2024-01-01T00:00:00+00:00",
            equivalence.extract_from_html(HTML_DOCUMENT, "modified")
        )
        content = equivalence.normalize_value(equivalence.extract_from_html(HTML_DOCUMENT, "content"))
        self.assertEqual("Hello & welcome Some dual-native text", content)
        self.assertIsNone(equivalence.extract_from_html("<p>foo</p>", "title"))
        self.assertEqual("foo", equivalence.extract_from_html("<h1>foo</h1>", "title"))

    def test_equivalent_representations(self):
        mr = {
            "title": "Hello & welcome",
            "content": "Hello &  welcome\nSome dual-native text",
            "modified": "2024-01-01T00:00:00+00:00",
            "status": "publish"
        }
        result = self.validator.validate(HTML_DOCUMENT, mr, ["title", "content", "modified"])
        self.assertTrue(result.is_valid, result.details)
        self.assertEqual([], result.differences)
        self.assertEqual(["title", "content", "modified"], result.fields_checked)

        hr = {"title": " Hello  & welcome ", "content": mr["content"], "modified": mr["modified"], "status": "publish"}
        self.assertTrue(self.validator.validate(hr, mr).is_valid)

    def test_differences(self):
        hr = {"title": "foo", "content": "bar", "status": "publish", "modified": "2024"}
        mr = {"title": "foo", "content": "baz", "status": "draft", "modified": "2024"}
        result = self.validator.validate(hr, mr)
        self.assertFalse(result.is_valid)
        self.assertEqual(["content", "status"], result.differences)
        self.assertEqual({"hrValue": "bar", "mrValue": "baz"}, result.details["differences"]["content"])
        self.assertEqual({"title": "foo", "modified": "2024"}, result.details["matched"])
        self.assertTrue(self.validator.validate(hr, mr, ["title"]).is_valid)
        self.assertFalse(self.validator.validate(hr, {}, ["title"]).is_valid)
        self.assertTrue(self.validator.validate(hr, mr, []).is_valid)

    def test_cid_parity(self):
        self.assertTrue(equivalence.EquivalenceValidator.cid_parity("sha256-a", "sha256-a"))
        self.assertFalse(equivalence.EquivalenceValidator.cid_parity("sha256-a", "sha256-b"))

    def test_comprehensive_validation(self):
        content = {"title": "foo", "content": "bar", "status": "publish", "modified": "2024"}
        report = self.validator.comprehensive({
            "hr_content": content,
            "mr_content": dict(content),
            "system_info": conformance.system_capabilities()
        })
        self.assertEqual("pass", report.overall_status)
        self.assertEqual(schemas.ValidationSummary(passed=2, failed=0, skipped=0), report.summary)
        self.assertEqual(["semantic_equivalence", "conformance"], [t.name for t in report.tests])
        self.assertTrue(report.tests[0].result["isValid"])
        self.assertEqual(4, report.tests[1].result["level"])

        report = self.validator.comprehensive({})
        self.assertEqual("pass", report.overall_status)
        self.assertEqual(2, report.summary.skipped)
        self.assertTrue(all(t.reason for t in report.tests))

        report = self.validator.comprehensive({"system_info": LEVEL_ONE})
        self.assertEqual("fail", report.overall_status)
        self.assertEqual(schemas.ValidationSummary(passed=0, failed=1, skipped=1), report.summary)
        self.assertEqual("pass", self.validator.comprehensive({"system_info": LEVEL_ONE, "required_level": 1}).overall_status)

        report = self.validator.comprehensive({"hr_content": content, "mr_content": dict(content, title="x")})
        self.assertEqual("fail", report.overall_status)
        self.assertEqual(["title"], report.tests[0].result["differences"])
        self.assertIn("overallStatus", report.model_dump(by_alias=True))


if __name__ == '__main__':
    _unittest.main()
