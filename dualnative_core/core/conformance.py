"""
Conformance levels of dual-native implementations

The level is derived from a record of boolean capability flags by four
ordered requirements. Each requirement is only evaluated when all previous
ones were passed, so a level can never be skipped:

 1. ``hr_mr_with_link``: human and machine representation, HR links to MR
 2. ``bidirectional_linking``: the MR links back to the HR, too
 3. ``cid_and_zero_fetch``: content identities and conditional reads (``304``)
 4. ``catalog_and_safe_writes``: catalog and safe writes (``If-Match``)
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .. import schemas
from ..misc.events import EventSink, NullEventSink


logger = logging.getLogger(__name__)

FLAG_ALIASES: Dict[str, Tuple[str, ...]] = {
    "has_hr": ("has_hr", "has_human_representation", "hr_endpoint"),
    "has_mr": ("has_mr", "has_machine_representation", "mr_endpoint"),
    "hr_links_to_mr": ("hr_links_to_mr", "hr_has_mr_link"),
    "mr_links_to_hr": ("mr_links_to_hr", "mr_has_hr_link"),
    "has_cid": ("has_cid", "supports_etag"),
    "supports_304": ("supports_304", "supports_if_none_match"),
    "has_catalog": ("has_catalog", "catalog_endpoint"),
    "supports_safe_writes": ("supports_safe_writes", "supports_if_match")
}

REQUIREMENTS: List[Tuple[str, Tuple[str, ...]]] = [
    ("hr_mr_with_link", ("has_hr", "has_mr", "hr_links_to_mr")),
    ("bidirectional_linking", ("mr_links_to_hr",)),
    ("cid_and_zero_fetch", ("has_cid", "supports_304")),
    ("catalog_and_safe_writes", ("has_catalog", "supports_safe_writes"))
]


def resolve_flag(flags: Mapping[str, Any], name: str) -> bool:
    """
    Return whether any alias of the capability flag is set to a truthy value
    """

    return any(bool(flags.get(alias)) for alias in FLAG_ALIASES.get(name, (name,)))


class ConformanceChecker:
    """
    Pure evaluation of capability flags to a conformance level
    """

    def __init__(self, events: Optional[EventSink] = None):
        self.events = events or NullEventSink()

    def check(self, flags: Mapping[str, Any]) -> schemas.ConformanceResult:
        """
        Evaluate the capability flags to the reached conformance level (0 to 4)

        :param flags: mapping of capability flag names (or their aliases) to booleans
        :return: conformance result with the passed and failed requirement names
        """

        level = 0
        passed, failed = [], []
        details: Dict[str, Any] = {}
        for number, (requirement, names) in enumerate(REQUIREMENTS, start=1):
            resolved = {name: resolve_flag(flags, name) for name in names}
            details[requirement] = resolved
            if level == number - 1 and all(resolved.values()):
                level = number
                passed.append(requirement)
            else:
                failed.append(requirement)

        result = schemas.ConformanceResult(
            level=level,
            passed_requirements=passed,
            failed_requirements=failed,
            details=details
        )
        logger.debug(f"Conformance level {level} reached (passed: {passed})")
        return self.events.filter(schemas.FilterHook.CONFORMANCE_VALIDATION, result, flags)


def system_capabilities() -> Dict[str, bool]:
    """
    Capability flags of this engine together with its REST API
    """

    return {name: True for name in FLAG_ALIASES}


def feature_checks(resource: Optional[Mapping[str, Any]] = None) -> Dict[str, bool]:
    """
    Describe the features available to the machine representation of a resource

    Without a resource, only the server-wide features are reported.
    """

    checks = {
        "cid_computation": True,
        "conditional_get": True,
        "safe_writes": True,
        "catalog": True,
        "public_catalog": True,
        "content_digest": True,
        "block_insertion": True
    }
    if resource is not None:
        checks["has_blocks"] = isinstance(resource.get("blocks"), list)
        checks["has_links"] = isinstance(resource.get("links"), Mapping)
        checks["has_modified"] = bool(resource.get("modified"))
    return checks
