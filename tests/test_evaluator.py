"""
Tests for tag evaluation.
"""

import re

import pytest

from tag_inspector.core.evaluator import evaluate_tags, is_compliant
from tag_inspector.core.policy import ComplianceLevel, TagCriteria, TagValidation


LEVELS = {
    "high": ComplianceLevel(
        required_tags=("CostCenter", "SecurityContact"),
        specific_tags={"Backup": "daily"},
    ),
}


def _validation(allowed=None, patterns=None):
    patterns = patterns or {}
    return TagValidation(
        allowed_values=allowed or {},
        pattern_rules=patterns,
        compiled_rules={k: re.compile(v) for k, v in patterns.items()},
    )


class TestEvaluateTags:
    """Tests for evaluate_tags."""

    def test_compliant_resource(self):
        """Test that a resource satisfying every rule has no issues."""
        criteria = TagCriteria(
            required_tags=("Environment", "Owner"),
            forbidden_tags=("Temporary",),
            specific_tags={"ManagedBy": "terraform"},
        )
        tags = {"Environment": "prod", "Owner": "team-a", "ManagedBy": "terraform"}

        assert evaluate_tags(tags, criteria) == []
        assert is_compliant(tags, criteria)

    def test_no_rules_is_invalid_criteria(self):
        """Test that empty criteria are reported as invalid."""
        issues = evaluate_tags({"Environment": "prod"}, TagCriteria())

        assert issues == ["Invalid criteria: no validation rules specified"]

    def test_invalid_criteria_checked_before_tags(self):
        """Test that invalid criteria win over an empty tag map."""
        assert evaluate_tags({}, TagCriteria()) == [
            "Invalid criteria: no validation rules specified"
        ]

    def test_validation_rules_alone_are_valid_criteria(self):
        """Test that tag validation rules count as rules."""
        validation = _validation(allowed={"Environment": ("dev", "prod")})

        issues = evaluate_tags({"Environment": "qa"}, TagCriteria(), validation=validation)

        assert issues == ["Tag Environment has disallowed value qa"]

    def test_untagged_resource(self):
        """Test that an empty tag map yields a single issue."""
        criteria = TagCriteria(required_tags=("Environment", "Owner"))

        assert evaluate_tags({}, criteria) == ["Resource has no tags"]

    def test_missing_required_in_input_order(self):
        """Test missing tags are reported in criteria order."""
        criteria = TagCriteria(required_tags=("Owner", "Environment", "Owner"))

        issues = evaluate_tags({"Name": "x"}, criteria)

        assert issues == [
            "Missing required tag: Owner",
            "Missing required tag: Environment",
        ]

    def test_minimum_tag_count(self):
        """Test the minimum number of tags check."""
        criteria = TagCriteria(minimum_required_tags=3)

        assert evaluate_tags({"A": "1", "B": "2"}, criteria) == ["Fewer than 3 tags present"]
        assert evaluate_tags({"A": "1", "B": "2", "C": "3"}, criteria) == []

    def test_forbidden_tags(self):
        """Test forbidden tags are reported."""
        criteria = TagCriteria(forbidden_tags=("Temporary", "Debug"))

        issues = evaluate_tags({"Debug": "on", "Temporary": "yes"}, criteria)

        assert issues == [
            "Contains forbidden tag: Temporary",
            "Contains forbidden tag: Debug",
        ]

    def test_specific_tag_mismatch_sorted(self):
        """Test mismatched or missing specific tags, sorted by key."""
        criteria = TagCriteria(specific_tags={"Project": "acme", "ManagedBy": "terraform"})

        issues = evaluate_tags({"ManagedBy": "manual"}, criteria)

        assert issues == [
            "Tag mismatch: ManagedBy should be terraform",
            "Tag mismatch: Project should be acme",
        ]

    def test_issue_categories_in_fixed_order(self):
        """Test that issue categories come out in a stable order."""
        criteria = TagCriteria(
            minimum_required_tags=5,
            required_tags=("Owner",),
            forbidden_tags=("Temporary",),
            specific_tags={"Environment": "prod"},
        )
        validation = _validation(
            allowed={"Environment": ("dev", "prod")},
            patterns={"CostCenter": r"^\d{4}$"},
        )
        tags = {"Environment": "qa", "Temporary": "1", "CostCenter": "abc"}

        issues = evaluate_tags(tags, criteria, validation=validation)

        assert issues == [
            "Missing required tag: Owner",
            "Fewer than 5 tags present",
            "Contains forbidden tag: Temporary",
            "Tag mismatch: Environment should be prod",
            "Tag Environment has disallowed value qa",
            "Tag CostCenter value abc does not match required pattern",
        ]

    def test_pattern_uses_search_semantics(self):
        """Test that unanchored patterns may match anywhere in the value."""
        criteria = TagCriteria(required_tags=("Owner",))
        validation = _validation(patterns={"Owner": "team"})

        assert evaluate_tags({"Owner": "the-team-a"}, criteria, validation=validation) == []
        assert evaluate_tags({"Owner": "alice"}, criteria, validation=validation) == [
            "Tag Owner value alice does not match required pattern"
        ]

    def test_rules_for_absent_tags_are_ignored(self):
        """Test that value rules only apply to tags that are present."""
        criteria = TagCriteria(required_tags=("Owner",))
        validation = _validation(
            allowed={"Environment": ("prod",)},
            patterns={"CostCenter": r"^\d+$"},
        )

        assert evaluate_tags({"Owner": "x"}, criteria, validation=validation) == []


class TestComplianceLevels:
    """Tests for compliance level expansion."""

    def test_level_adds_required_and_specific_tags(self):
        """Test that a level contributes its tags."""
        criteria = TagCriteria(required_tags=("Owner",), compliance_level="high")

        issues = evaluate_tags({"Owner": "x", "CostCenter": "1"}, criteria, LEVELS)

        assert issues == [
            "Missing required tag: SecurityContact",
            "Tag mismatch: Backup should be daily",
        ]

    def test_criteria_specific_tag_wins_over_level(self):
        """Test that criteria values take precedence over level values."""
        criteria = TagCriteria(specific_tags={"Backup": "weekly"}, compliance_level="high")
        tags = {"CostCenter": "1", "SecurityContact": "sec", "Backup": "weekly"}

        assert evaluate_tags(tags, criteria, LEVELS) == []

    def test_level_name_alone_is_a_rule(self):
        """Test that criteria with only a level are valid."""
        criteria = TagCriteria(compliance_level="high")

        issues = evaluate_tags({"Name": "x"}, criteria, LEVELS)

        assert "Missing required tag: CostCenter" in issues

    def test_unknown_level_is_ignored(self):
        """Test that an undefined level adds nothing."""
        criteria = TagCriteria(required_tags=("Owner",), compliance_level="platinum")

        assert evaluate_tags({"Owner": "x"}, criteria, LEVELS) == []


class TestDeterminism:
    """Tests that evaluation is stable."""

    @pytest.mark.parametrize("attempt", range(3))
    def test_same_input_same_output(self, attempt):
        """Test that repeated evaluation returns identical issue lists."""
        criteria = TagCriteria(
            required_tags=("B", "A"),
            specific_tags={"Z": "1", "Y": "2", "X": "3"},
        )
        tags = {"C": "c", "D": "d"}

        first = evaluate_tags(tags, criteria)
        second = evaluate_tags(dict(reversed(list(tags.items()))), criteria)

        assert first == second
        assert first[:2] == ["Missing required tag: B", "Missing required tag: A"]
