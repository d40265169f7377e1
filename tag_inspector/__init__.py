"""
Tag Inspector: AWS Tag Compliance Scanner
=========================================

Scans AWS resources and checks their tags against a declarative YAML
policy: required, forbidden and exact-value tags, compliance levels,
allowed values and value patterns.

Modules
-------
core
    Policy model and loader, evaluator, AWS client, registry, orchestrator
scanners
    Service scanners (S3 buckets, EC2 instances)
reporters
    Output formatters (CLI, JSON)

Example
-------
>>> from tag_inspector import AWSClient, ScanOrchestrator, load_policy_file
>>>
>>> policy = load_policy_file("policy.yaml")
>>> report = ScanOrchestrator(policy, AWSClient(region="us-east-1")).scan()
>>> print(f"{report.non_compliant_count} non-compliant resources")

Notes
-----
Requires AWS credentials configured via:
- Explicit access keys
- A named profile (~/.aws/credentials)
- Environment variables or an IAM role (default credential chain)

See Also
--------
boto3 : AWS SDK for Python
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Public API
from tag_inspector.core.aws_client import AWSClient
from tag_inspector.core.base_scanner import BaseScanner, Resource, ScanResult
from tag_inspector.core.exceptions import TagInspectorError
from tag_inspector.core.orchestrator import CancellationToken, Report, ScanOrchestrator
from tag_inspector.core.policy_loader import load_policy, load_policy_file

# Registers the built-in scanners
from tag_inspector.scanners import EC2InstanceScanner, S3Scanner

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Core classes
    "AWSClient",
    "BaseScanner",
    "CancellationToken",
    "EC2InstanceScanner",
    "Report",
    "Resource",
    "S3Scanner",
    "ScanOrchestrator",
    "ScanResult",
    "TagInspectorError",
    "load_policy",
    "load_policy_file",
]
