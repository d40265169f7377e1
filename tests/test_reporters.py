"""
Tests for the Reporter modules.
"""

import json
import os
from datetime import datetime, timezone
from io import StringIO

import pytest
from rich.console import Console

from tag_inspector.core.base_scanner import ScanResult
from tag_inspector.core.orchestrator import Report, ResourceError, ServiceFailure
from tag_inspector.core.policy_loader import load_policy
from tag_inspector.reporters.cli_reporter import CLIReporter
from tag_inspector.reporters.json_reporter import JSONReporter


@pytest.fixture
def sample_report():
    """Create a sample Report for testing."""
    return Report(
        results=[
            ScanResult(
                resource_type="s3:bucket",
                resource_id="acme-assets",
                arn="arn:aws:s3:::acme-assets",
                region="us-east-1",
                tags={"Environment": "prod"},
                issues=["Missing required tag: Owner"],
                metadata={"creation_date": "2024-01-01T00:00:00+00:00"},
            ),
            ScanResult(
                resource_type="s3:bucket",
                resource_id="acme-logs",
                arn="arn:aws:s3:::acme-logs",
                region="eu-west-1",
                tags={"Environment": "prod", "Owner": "ops"},
            ),
        ],
        errors=[
            ResourceError(
                resource_type="s3:bucket",
                resource_id="acme-locked",
                region="us-east-1",
                cause="Access Denied",
                error_type="TagFetchError",
            ),
        ],
        discovered={"s3:bucket": 4},
        excluded={"s3:bucket": 1},
        policy_version="1.0",
        scan_time=datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc),
        duration_seconds=1.23456,
    )


def _recording_console():
    return Console(file=StringIO(), width=200, color_system=None)


class TestJSONReporter:
    """Tests for JSONReporter class."""

    def test_to_dict_structure(self, sample_report):
        """Test the top-level JSON document shape."""
        data = JSONReporter().to_dict(sample_report)

        assert set(data) == {"metadata", "summary_by_type", "results", "errors", "fatal_errors"}
        assert data["metadata"]["policy_version"] == "1.0"
        assert data["metadata"]["scan_time"] == "2024-01-15T10:30:00+00:00"
        assert data["metadata"]["duration_seconds"] == 1.235
        assert data["metadata"]["total_resources"] == 2
        assert data["metadata"]["non_compliant"] == 1
        assert data["summary_by_type"]["s3:bucket"] == {
            "discovered": 4,
            "excluded": 1,
            "scanned": 2,
            "compliant": 1,
            "non_compliant": 1,
            "errors": 1,
        }
        assert data["errors"][0]["resource_id"] == "acme-locked"

    def test_result_record(self, sample_report):
        """Test result records and the empty-metadata omission."""
        with_meta, without_meta = JSONReporter().to_dict(sample_report)["results"]

        assert with_meta["compliance_tag"] == "non-compliant"
        assert with_meta["metadata"]["creation_date"].startswith("2024-01-01")
        assert list(with_meta)[-1] == "compliance_tag"
        assert "metadata" not in without_meta
        assert without_meta["issues"] == []

    def test_non_compliant_only(self, sample_report):
        """Test filtering out compliant results."""
        data = JSONReporter(non_compliant_only=True).to_dict(sample_report)

        assert [r["resource_id"] for r in data["results"]] == ["acme-assets"]
        assert data["metadata"]["total_resources"] == 2

    def test_report_writes_file(self, sample_report, tmp_path):
        """Test exporting the report to a JSON file."""
        output_path = tmp_path / "out" / "report.json"

        result_path = JSONReporter(output_path=str(output_path)).report(sample_report)

        assert result_path == str(output_path)
        with open(output_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert len(data["results"]) == 2

    def test_auto_generated_filename(self, sample_report, tmp_path, monkeypatch):
        """Test that the filename is generated when not specified."""
        monkeypatch.chdir(tmp_path)

        result_path = JSONReporter().report(sample_report)

        assert result_path.startswith("tag_compliance_")
        assert result_path.endswith(".json")
        assert os.path.exists(tmp_path / result_path)

    def test_to_string(self, sample_report):
        """Test converting the report to a JSON string."""
        data = json.loads(JSONReporter(indent=None).to_string(sample_report))

        assert data["fatal_errors"] == []


class TestCLIReporter:
    """Tests for CLIReporter class."""

    def test_reporter_initialization(self):
        """Test CLI reporter initialization."""
        reporter = CLIReporter()

        assert reporter.console is not None
        assert reporter.show_compliant is False

    def test_truncate_function(self):
        """Test text truncation."""
        assert CLIReporter._truncate("short", 10) == "short"

        truncated = CLIReporter._truncate("x" * 50, 20)
        assert len(truncated) == 20
        assert truncated.endswith("...")

    def test_report_lists_non_compliant(self, sample_report):
        """Test that non-compliant resources and errors are shown."""
        console = _recording_console()

        CLIReporter(console).report(sample_report)

        output = console.file.getvalue()
        assert "Tag Compliance Report" in output
        assert "acme-assets" in output
        assert "Missing required tag: Owner" in output
        assert "acme-locked" in output
        assert "acme-logs" not in output

    def test_report_show_compliant(self, sample_report):
        """Test listing compliant resources too."""
        console = _recording_console()

        CLIReporter(console, show_compliant=True).report(sample_report)

        assert "acme-logs" in console.file.getvalue()

    def test_all_compliant(self):
        """Test the message when nothing is non-compliant."""
        report = Report(
            results=[
                ScanResult("s3:bucket", "ok", "arn:aws:s3:::ok", "us-east-1", {"Owner": "a"})
            ],
            policy_version="1.0",
        )
        console = _recording_console()

        CLIReporter(console).report(report)

        assert "All scanned resources are compliant." in console.file.getvalue()

    def test_dry_run_and_failures(self):
        """Test the dry run notice, failed services and cancellation warning."""
        report = Report(
            fatal_errors=[
                ServiceFailure("ec2", "ec2:instance", "eu-west-1", "UnauthorizedOperation")
            ],
            dry_run=True,
            cancelled=True,
            policy_version="1.0",
        )
        console = _recording_console()

        CLIReporter(console).report(report)

        output = console.file.getvalue()
        assert "Dry run" in output
        assert "ec2 (eu-west-1): UnauthorizedOperation" in output
        assert "results are partial" in output

    def test_print_policy_summary(self):
        """Test the policy overview."""
        policy = load_policy(
            'version: "3.0"\n'
            "global:\n  tag_criteria:\n    required_tags: [Owner]\n"
            "resources:\n  s3:\n    batch_size: 5\n"
            "    tag_criteria:\n      required_tags: [DataClass]\n"
        )
        console = _recording_console()

        CLIReporter(console).print_policy_summary(policy)

        output = console.file.getvalue()
        assert "Policy version 3.0" in output
        assert "Owner, DataClass" in output
