"""
Tag Evaluator Module
====================

Pure functions that check a resource's tags against tag criteria.

The evaluator has no side effects and no shared state, so it is safe to
call from any number of scanner worker threads. Issue strings are emitted
in a fixed order:

1. invalid criteria (no rules at all) - returned alone
2. resource has no tags - returned alone
3. missing required tags (input order)
4. fewer than N tags present
5. forbidden tags (input order)
6. specific tag mismatches (keys sorted)
7. disallowed values (resource tag keys sorted)
8. pattern mismatches (resource tag keys sorted)

Functions
---------
evaluate_tags
    Return the ordered list of issues for a tag map.
is_compliant
    Return True when ``evaluate_tags`` yields no issues.

Example
-------
>>> from tag_inspector.core.evaluator import evaluate_tags
>>> from tag_inspector.core.policy import TagCriteria
>>>
>>> evaluate_tags(
...     {"Environment": "prod"},
...     TagCriteria(required_tags=("Environment", "Owner")),
... )
['Missing required tag: Owner']
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from tag_inspector.core.policy import ComplianceLevel, TagCriteria, TagValidation

# Module logger
logger = logging.getLogger(__name__)

INVALID_CRITERIA = "Invalid criteria: no validation rules specified"
NO_TAGS = "Resource has no tags"


def _unique(tags: Iterable[str]) -> List[str]:
    """Drop empty and repeated entries, keeping first-seen order."""
    seen = set()
    ordered = []
    for tag in tags:
        if tag and tag not in seen:
            seen.add(tag)
            ordered.append(tag)
    return ordered


def evaluate_tags(
    tags: Mapping[str, str],
    criteria: TagCriteria,
    compliance_levels: Optional[Mapping[str, ComplianceLevel]] = None,
    validation: Optional[TagValidation] = None,
) -> List[str]:
    """
    Evaluate a tag map against criteria.

    Parameters
    ----------
    tags : mapping
        Tags present on the resource.
    criteria : TagCriteria
        Effective criteria for the resource.
    compliance_levels : mapping, optional
        Named compliance levels from the policy.
    validation : TagValidation, optional
        Allowed value and pattern rules from the policy.

    Returns
    -------
    list of str
        Human-readable issues; empty when the resource is compliant.
    """
    compliance_levels = compliance_levels or {}
    validation = validation or TagValidation()

    if not criteria.has_rules() and not validation.has_rules():
        return [INVALID_CRITERIA]

    if not tags:
        return [NO_TAGS]

    required = list(criteria.required_tags)
    specific: Dict[str, str] = dict(criteria.specific_tags)

    level = compliance_levels.get(criteria.compliance_level or "")
    if level is not None:
        required.extend(level.required_tags)
        for key, value in level.specific_tags.items():
            specific.setdefault(key, value)
    elif criteria.compliance_level:
        logger.debug(f"Unknown compliance level '{criteria.compliance_level}' ignored")

    issues: List[str] = []

    for tag in _unique(required):
        if tag not in tags:
            issues.append(f"Missing required tag: {tag}")

    minimum = criteria.minimum_required_tags
    if minimum > 0 and len(tags) < minimum:
        issues.append(f"Fewer than {minimum} tags present")

    for tag in _unique(criteria.forbidden_tags):
        if tag in tags:
            issues.append(f"Contains forbidden tag: {tag}")

    for key in sorted(specific):
        if not key:
            continue
        expected = specific[key]
        if tags.get(key) != expected:
            issues.append(f"Tag mismatch: {key} should be {expected}")

    for key in sorted(tags):
        allowed = validation.allowed_values.get(key)
        if allowed is not None and tags[key] not in allowed:
            issues.append(f"Tag {key} has disallowed value {tags[key]}")

    for key in sorted(tags):
        rule = validation.rule_for(key)
        if rule is not None and rule.search(tags[key]) is None:
            issues.append(f"Tag {key} value {tags[key]} does not match required pattern")

    return issues


def is_compliant(
    tags: Mapping[str, str],
    criteria: TagCriteria,
    compliance_levels: Optional[Mapping[str, ComplianceLevel]] = None,
    validation: Optional[TagValidation] = None,
) -> bool:
    """Return True if the tags satisfy the criteria."""
    return not evaluate_tags(tags, criteria, compliance_levels, validation)
