"""
Report Generators
=================

Output formatters for tag compliance reports.

Available Reporters
-------------------
CLIReporter
    Rich terminal output with summary and issue tables.
JSONReporter
    Single JSON document for pipelines and CI gates.

Example
-------
>>> from tag_inspector.reporters import CLIReporter, JSONReporter
>>>
>>> CLIReporter().report(report)
>>> JSONReporter(output_path="compliance.json").report(report)

See Also
--------
tag_inspector.core.orchestrator.Report : Input data structure.
"""

from tag_inspector.reporters.cli_reporter import CLIReporter
from tag_inspector.reporters.json_reporter import JSONReporter

__all__ = [
    "CLIReporter",
    "JSONReporter",
]
