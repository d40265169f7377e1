"""
Base Scanner Module
===================

Provides the resource value type, the scan result type and the abstract
base class for all service scanners.

A service scanner only knows how to list resources and fetch their tags.
Evaluation is delegated to :mod:`tag_inspector.core.evaluator`, and the
criteria and exclusions come from the shared read-only
:class:`~tag_inspector.core.policy.Policy`.

Classes
-------
Resource
    Identity, tags and metadata of one cloud resource.
ScanResult
    Immutable outcome of evaluating one resource.
BaseScanner
    Abstract base class for service scanners.

Example
-------
>>> from tag_inspector.core.base_scanner import BaseScanner, Resource
>>>
>>> class MyScanner(BaseScanner):
...     def get_resource_type(self) -> str:
...         return "my:thing"
...
...     def get_service_key(self) -> str:
...         return "s3"
...
...     def list_resources(self) -> list:
...         return [Resource("my:thing", "thing-1", "arn:thing-1", "us-east-1")]
...
...     def fetch_tags(self, resource) -> dict:
...         return {"Owner": "ops"}

Notes
-----
Scanners raise :class:`~tag_inspector.core.exceptions.ResourceFetchError`
when listing fails and :class:`~tag_inspector.core.exceptions.TagFetchError`
when a single resource cannot be read. The benign "no tag set" error
codes in :data:`NO_TAG_SET_CODES` mean an empty tag map, not a failure.

See Also
--------
S3Scanner : Bucket scanner.
EC2InstanceScanner : Instance scanner.
ScanOrchestrator : Runs scanners concurrently.
"""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tag_inspector.core.evaluator import evaluate_tags
from tag_inspector.core.policy import DEFAULT_BATCH_SIZE, Policy, TagCriteria, freeze_maps

# Module logger
logger = logging.getLogger(__name__)

COMPLIANT = "compliant"
NON_COMPLIANT = "non-compliant"

# Tag a resource may carry to pick its own compliance level.
COMPLIANCE_LEVEL_TAG = "ComplianceLevel"

# Error codes the cloud returns when a resource simply has no tags.
NO_TAG_SET_CODES = frozenset({"NoSuchTagSet", "NoSuchTagSetError"})


def client_error_code(error: Exception) -> str:
    """Return the AWS error code of a botocore ``ClientError`` ('Unknown' otherwise)."""
    response = getattr(error, "response", None) or {}
    return response.get("Error", {}).get("Code", "Unknown")


@dataclass(frozen=True)
class Resource:
    """
    A cloud resource as discovered by a scanner.

    Parameters
    ----------
    resource_type : str
        Resource type, e.g. ``"s3:bucket"``.
    resource_id : str
        Identifier matched against exclusion patterns.
    arn : str
        Amazon Resource Name.
    region : str
        Region the resource lives in.
    tags : dict
        Tags, filled by :meth:`BaseScanner.fetch_tags`.
    metadata : dict
        Service-specific details (creation date, state, ...).
    """

    resource_type: str
    resource_id: str
    arn: str
    region: str
    tags: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        freeze_maps(self, "tags", "metadata")

    def __hash__(self) -> int:
        return hash(
            (
                self.resource_type,
                self.resource_id,
                self.arn,
                self.region,
                frozenset(self.tags.items()),
            )
        )

    def get_tags(self) -> Dict[str, str]:
        return dict(self.tags)

    def has_tags(self) -> bool:
        return bool(self.tags)

    def has_tag(self, key: str) -> bool:
        return key in self.tags

    def get_tag_value(self, key: str) -> Tuple[Optional[str], bool]:
        """Return ``(value, present)`` for a tag key."""
        if key in self.tags:
            return self.tags[key], True
        return None, False

    def with_tags(
        self,
        tags: Mapping[str, str],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Resource:
        """Return a copy carrying the given tags (and metadata, if given)."""
        return dataclasses.replace(
            self,
            tags=dict(tags),
            metadata=dict(metadata) if metadata is not None else dict(self.metadata),
        )


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of evaluating one resource against the policy.

    ``compliance_tag`` is derived from ``issues`` and cannot be set by the
    caller: it is ``"compliant"`` exactly when there are no issues.

    Examples
    --------
    >>> result = ScanResult(
    ...     resource_type="s3:bucket",
    ...     resource_id="acme-logs",
    ...     arn="arn:aws:s3:::acme-logs",
    ...     region="us-east-1",
    ...     tags={"Owner": "ops"},
    ...     issues=["Missing required tag: Environment"],
    ... )
    >>> result.compliance_tag
    'non-compliant'
    """

    resource_type: str
    resource_id: str
    arn: str
    region: str
    tags: Mapping[str, str] = field(default_factory=dict)
    issues: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    compliance_tag: str = field(init=False)

    def __post_init__(self) -> None:
        freeze_maps(self, "tags", "metadata")
        object.__setattr__(self, "issues", tuple(self.issues))
        object.__setattr__(
            self, "compliance_tag", NON_COMPLIANT if self.issues else COMPLIANT
        )

    def __hash__(self) -> int:
        # Metadata is left out; its values can be unhashable.
        return hash(
            (
                self.resource_type,
                self.resource_id,
                self.arn,
                self.region,
                frozenset(self.tags.items()),
                self.issues,
            )
        )

    @classmethod
    def from_resource(cls, resource: Resource, issues: List[str]) -> ScanResult:
        return cls(
            resource_type=resource.resource_type,
            resource_id=resource.resource_id,
            arn=resource.arn,
            region=resource.region,
            tags=dict(resource.tags),
            issues=tuple(issues),
            metadata=dict(resource.metadata),
        )

    @property
    def is_compliant(self) -> bool:
        return self.compliance_tag == COMPLIANT

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the result to its report record.

        Returns
        -------
        dict
            Record with ``metadata`` omitted when empty.
        """
        data: Dict[str, Any] = {
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "arn": self.arn,
            "region": self.region,
            "tags": dict(self.tags),
            "issues": list(self.issues),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        data["compliance_tag"] = self.compliance_tag
        return data

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"ScanResult(resource_type='{self.resource_type}', "
            f"resource_id='{self.resource_id}', "
            f"region='{self.region}', "
            f"compliance_tag='{self.compliance_tag}', "
            f"issues={len(self.issues)})"
        )


class BaseScanner(ABC):
    """
    Abstract base class for all service scanners.

    Parameters
    ----------
    aws_client : AWSClient
        Capability provider used to obtain service clients.
    policy : Policy
        The shared, read-only policy.
    batch_size : int, optional
        Overrides the policy batch size for this scanner.
    collect_metadata : bool, default=False
        If True, scanners gather the optional (slower) metadata as well.

    Attributes
    ----------
    region : str
        Region of the provider this scanner was built with.

    Methods
    -------
    list_resources()
        Discover resources of this type (abstract).
    fetch_tags(resource)
        Read the tags of one resource (abstract).
    fetch_metadata(resource)
        Read optional service-specific details.
    scan_resource(resource, criteria)
        Fetch and evaluate one resource.
    scan(criteria)
        Sequentially scan every non-excluded resource.

    Examples
    --------
    >>> scanner = S3Scanner(aws_client, policy)
    >>> criteria = policy.effective_criteria(scanner.get_service_key())
    >>> for result in scanner.scan(criteria):
    ...     print(result.resource_id, result.compliance_tag)

    See Also
    --------
    ScanOrchestrator : Concurrent, bounded execution of ``scan_resource``.
    """

    default_batch_size: int = DEFAULT_BATCH_SIZE

    def __init__(
        self,
        aws_client,
        policy: Policy,
        batch_size: Optional[int] = None,
        collect_metadata: bool = False,
    ) -> None:
        if batch_size is not None and batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self.aws_client = aws_client
        self.policy = policy
        self.region = aws_client.region
        self.collect_metadata = collect_metadata
        self._batch_size = batch_size
        logger.debug(
            f"Initialized {self.__class__.__name__} for region {self.region}"
        )

    @property
    def client(self) -> Any:
        """The cached service client for this scanner's service key."""
        return self.aws_client.get_client(self.get_service_key())

    @property
    def batch_size(self) -> int:
        """Scanner override, else the policy batch size, else the default."""
        if self._batch_size is not None:
            return self._batch_size
        return self.policy.batch_size_for(
            self.get_service_key(), self.default_batch_size
        )

    @abstractmethod
    def get_resource_type(self) -> str:
        """
        Get the type of resource this scanner handles.

        Returns
        -------
        str
            Resource type identifier, ``<service>:<kind>``.

        Example
        -------
        >>> scanner.get_resource_type()
        's3:bucket'
        """

    @abstractmethod
    def get_service_key(self) -> str:
        """Return the policy ``resources`` key for this scanner, e.g. ``"s3"``."""

    @abstractmethod
    def list_resources(self) -> List[Resource]:
        """
        Discover all resources of this type.

        Returns
        -------
        list of Resource
            Resources with identity filled in; tags may still be empty.

        Raises
        ------
        ResourceFetchError
            If the listing call fails. No partial listing is returned.
        """

    @abstractmethod
    def fetch_tags(self, resource: Resource) -> Dict[str, str]:
        """
        Read the current tags of a resource.

        Returns
        -------
        dict
            Tag key to value; empty when the service reports no tag set.

        Raises
        ------
        TagFetchError
            If the tags cannot be read.
        """

    def locate(self, resource: Resource) -> Resource:
        """
        Resolve details the listing call does not return (e.g. bucket region).

        The default returns the resource unchanged.
        """
        return resource

    def fetch_metadata(self, resource: Resource) -> Dict[str, Any]:
        """Return service-specific metadata; defaults to what listing found."""
        return dict(resource.metadata)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def resolve_criteria(self, resource: Resource, criteria: TagCriteria) -> TagCriteria:
        """
        Apply the resource's own ``ComplianceLevel`` tag, if it has one.

        Returns
        -------
        TagCriteria
            ``criteria`` unchanged, or a copy naming the resource's level.
        """
        level, present = resource.get_tag_value(COMPLIANCE_LEVEL_TAG)
        if present and level:
            return criteria.with_compliance_level(level)
        return criteria

    def evaluate(self, resource: Resource, criteria: TagCriteria) -> ScanResult:
        """Evaluate an already-fetched resource and build its result."""
        issues = evaluate_tags(
            resource.tags,
            self.resolve_criteria(resource, criteria),
            self.policy.compliance_levels,
            self.policy.tag_validation,
        )
        return ScanResult.from_resource(resource, issues)

    def validate_compliance(self, resource: Resource, criteria: TagCriteria) -> bool:
        return self.evaluate(resource, criteria).is_compliant

    def is_excluded(self, resource: Resource) -> Tuple[bool, str]:
        return self.policy.is_excluded(self.get_service_key(), resource.resource_id)

    def scan_resource(self, resource: Resource, criteria: TagCriteria) -> ScanResult:
        """
        Fetch tags (and metadata) for one resource and evaluate it.

        Raises
        ------
        TagFetchError
            If the tag fetch fails with anything but a benign code.
        """
        located = self.locate(resource)
        fetched = located.with_tags(self.fetch_tags(located))
        fetched = dataclasses.replace(fetched, metadata=self.fetch_metadata(fetched))
        result = self.evaluate(fetched, criteria)
        logger.debug(
            f"{resource.resource_type} {resource.resource_id}: {result.compliance_tag}",
            extra={"issues": list(result.issues)},
        )
        return result

    def scan(self, criteria: Optional[TagCriteria] = None) -> List[ScanResult]:
        """
        Scan every non-excluded resource sequentially.

        Per-resource errors propagate; use the orchestrator to collect
        them instead.

        Parameters
        ----------
        criteria : TagCriteria, optional
            Defaults to the policy's effective criteria for this service.

        Returns
        -------
        list of ScanResult
            One result per scanned resource, in listing order.
        """
        if criteria is None:
            criteria = self.policy.effective_criteria(self.get_service_key())

        logger.info(f"Starting {self.get_resource_type()} scan in {self.region}")
        results: List[ScanResult] = []
        for resource in self.list_resources():
            excluded, reason = self.is_excluded(resource)
            if excluded:
                logger.debug(f"Skipping excluded {resource.resource_id}: {reason}")
                continue
            results.append(self.scan_resource(resource, criteria))

        logger.info(
            f"Scan complete: {len(results)} {self.get_resource_type()} "
            f"resources evaluated in {self.region}"
        )
        return results

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"{self.__class__.__name__}("
            f"region='{self.region}', "
            f"resource_type='{self.get_resource_type()}')"
        )
