"""
Core Infrastructure Components
==============================

Foundational components of the tag inspector:

- :class:`Policy` and its loader - the YAML tag compliance policy
- :func:`evaluate_tags` - pure tag evaluation
- :class:`AWSClient` and :class:`ServiceRegistry` - typed AWS clients per service
- :class:`BaseScanner` - abstract base class for service scanners
- :class:`ScanOrchestrator` - bounded concurrent scanning
- Exception hierarchy for error handling

Example
-------
>>> from tag_inspector.core import AWSClient, ScanOrchestrator, load_policy_file
>>>
>>> policy = load_policy_file("policy.yaml")
>>> with AWSClient(region="us-east-1", profile="production") as client:
...     report = ScanOrchestrator(policy, client).scan()

See Also
--------
tag_inspector.scanners : Service scanner implementations.
tag_inspector.reporters : Output formatters.
"""

from tag_inspector.core.aws_client import AWSClient
from tag_inspector.core.base_scanner import BaseScanner, Resource, ScanResult
from tag_inspector.core.evaluator import evaluate_tags, is_compliant
from tag_inspector.core.exceptions import (
    AWSClientError,
    CredentialsError,
    PolicyError,
    PolicyLoadError,
    PolicyValidationError,
    RegionError,
    ResourceFetchError,
    ScanCancelledError,
    ScannerError,
    ServiceError,
    TagFetchError,
    TagInspectorError,
    UnknownServiceError,
)
from tag_inspector.core.orchestrator import (
    CancellationToken,
    Report,
    ResourceError,
    ScanOrchestrator,
    ServiceFailure,
)
from tag_inspector.core.policy import Policy, TagCriteria
from tag_inspector.core.policy_loader import (
    PolicyLoader,
    dump_policy,
    load_policy,
    load_policy_file,
)
from tag_inspector.core.registry import (
    DEFAULT_REGISTRY,
    ServiceDescriptor,
    ServiceKind,
    ServiceRegistry,
    register_service,
)

__all__ = [
    # Client
    "AWSClient",
    # Registry
    "DEFAULT_REGISTRY",
    "ServiceDescriptor",
    "ServiceKind",
    "ServiceRegistry",
    "register_service",
    # Policy
    "Policy",
    "PolicyLoader",
    "TagCriteria",
    "dump_policy",
    "load_policy",
    "load_policy_file",
    # Evaluation
    "evaluate_tags",
    "is_compliant",
    # Scanner base
    "BaseScanner",
    "Resource",
    "ScanResult",
    # Orchestration
    "CancellationToken",
    "Report",
    "ResourceError",
    "ScanOrchestrator",
    "ServiceFailure",
    # Exceptions - Base
    "TagInspectorError",
    # Exceptions - AWS Client
    "AWSClientError",
    "CredentialsError",
    "RegionError",
    "ServiceError",
    "UnknownServiceError",
    # Exceptions - Policy
    "PolicyError",
    "PolicyLoadError",
    "PolicyValidationError",
    # Exceptions - Scanner
    "ScannerError",
    "ResourceFetchError",
    "TagFetchError",
    "ScanCancelledError",
]
