"""
JSON Reporter Module
====================

Exports a scan :class:`~tag_inspector.core.orchestrator.Report` as a single
JSON document for pipelines, dashboards and CI gates.

Classes
-------
JSONReporter
    Main reporter class for JSON export.

Example
-------
>>> from tag_inspector.reporters import JSONReporter
>>>
>>> reporter = JSONReporter(output_path="compliance.json")
>>> filepath = reporter.report(report)
>>>
>>> # Or get as string for stdout
>>> json_str = reporter.to_string(report)

Output Structure
----------------
::

    {
      "metadata": {
        "policy_version": "1.0",
        "scan_time": "2024-01-15T10:30:00+00:00",
        "duration_seconds": 2.481,
        "dry_run": false,
        "cancelled": false,
        "total_resources": 3,
        "compliant": 2,
        "non_compliant": 1
      },
      "summary_by_type": {
        "s3:bucket": {"discovered": 4, "excluded": 1, "scanned": 3, ...}
      },
      "results": [
        {
          "resource_type": "s3:bucket",
          "resource_id": "acme-assets",
          "arn": "arn:aws:s3:::acme-assets",
          "region": "us-east-1",
          "tags": {"Environment": "prod"},
          "issues": ["Missing required tag: Owner"],
          "compliance_tag": "non-compliant"
        }
      ],
      "errors": [],
      "fatal_errors": []
    }

``metadata`` inside a result record is omitted when empty.

See Also
--------
CLIReporter : For terminal display.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from tag_inspector.core.orchestrator import Report

# Module logger
logger = logging.getLogger(__name__)


class JSONReporter:
    """
    Reporter for exporting scan reports to JSON.

    Parameters
    ----------
    output_path : str, optional
        Path for the output file. If not provided, generates a
        timestamped filename in the current directory.
    indent : int, default=2
        JSON indentation level; None for compact output.
    non_compliant_only : bool, default=False
        If True, only non-compliant results are written.

    Examples
    --------
    >>> reporter = JSONReporter(output_path="results.json")
    >>> filepath = reporter.report(report)

    >>> JSONReporter(indent=None).to_string(report)
    '{"metadata": {...}, ...}'
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        indent: Optional[int] = 2,
        non_compliant_only: bool = False,
    ) -> None:
        self.output_path = output_path
        self.indent = indent
        self.non_compliant_only = non_compliant_only
        logger.debug(f"Initialized JSONReporter (output_path={output_path})")

    def _get_output_path(self) -> Path:
        if self.output_path:
            return Path(self.output_path)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return Path(f"tag_compliance_{timestamp}.json")

    def report(self, report: Report) -> str:
        """
        Write the report to a JSON file.

        Returns
        -------
        str
            Path to the created JSON file.
        """
        output_path = self._get_output_path()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Exporting {report.total_count} results to {output_path}")

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(report), f, indent=self.indent, default=str)
            f.write("\n")

        logger.info(f"JSON export complete: {output_path}")
        return str(output_path)

    def to_string(self, report: Report) -> str:
        """Convert the report to a JSON string without writing a file."""
        return json.dumps(self.to_dict(report), indent=self.indent, default=str)

    def to_dict(self, report: Report) -> Dict[str, Any]:
        """
        Convert the report to the JSON document structure.

        Example
        -------
        >>> data = JSONReporter().to_dict(report)
        >>> data["metadata"]["non_compliant"]
        1
        """
        data = report.to_dict()
        if self.non_compliant_only:
            data["results"] = [
                r for r in data["results"] if r["compliance_tag"] != "compliant"
            ]
        return data

    def __repr__(self) -> str:
        """Return string representation."""
        return f"JSONReporter(output_path={self.output_path!r}, indent={self.indent})"
