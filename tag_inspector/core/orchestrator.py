"""
Scan Orchestrator Module
========================

Runs every enabled service scanner against the policy and aggregates the
results into a single :class:`Report`.

This module handles:
- Resolving enabled services through the service registry
- Fanning out regional services across the requested regions
- Bounded per-resource concurrency (one semaphore slot per cloud call)
- Collecting per-resource errors without aborting the run
- Cooperative cancellation

Classes
-------
CancellationToken
    Thread-safe flag checked by workers before each cloud call.
ResourceError
    A per-resource failure recorded in the report.
ServiceFailure
    A listing failure that aborted one service's scan.
Report
    Aggregated results of a scan.
ScanOrchestrator
    Drives the scan.

Example
-------
>>> from tag_inspector.core import AWSClient, ScanOrchestrator, load_policy_file
>>>
>>> policy = load_policy_file("policy.yaml")
>>> orchestrator = ScanOrchestrator(policy, AWSClient(region="us-east-1"))
>>> report = orchestrator.scan()
>>> print(f"{report.non_compliant_count} non-compliant resources")

Notes
-----
Per-service work runs on a ``ThreadPoolExecutor`` sized ``max_service_workers``.
Inside a service, tag fetches run on a pool sized by the effective batch
size, and every fetch holds a ``BoundedSemaphore`` slot of the same size,
so at most ``batch_size`` calls are in flight per service.

Calls already sent to AWS cannot be interrupted; cancellation stops new
slot acquisitions and new calls, and the report carries what has been
aggregated so far.

See Also
--------
BaseScanner : Scanner interface.
ServiceRegistry : Maps service keys to scanners.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from tag_inspector.core.aws_client import AWSClient
from tag_inspector.core.base_scanner import BaseScanner, Resource, ScanResult
from tag_inspector.core.exceptions import (
    CredentialsError,
    ResourceFetchError,
    ScanCancelledError,
    ScannerError,
)
from tag_inspector.core.policy import Policy, TagCriteria
from tag_inspector.core.registry import DEFAULT_REGISTRY, ServiceDescriptor, ServiceRegistry

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_SERVICE_WORKERS = 4


class CancellationToken:
    """
    Cooperative cancellation flag shared by the orchestrator and its workers.

    Example
    -------
    >>> token = CancellationToken()
    >>> orchestrator = ScanOrchestrator(policy, client, cancel_token=token)
    >>> # from a signal handler or another thread
    >>> token.cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ScanCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise ScanCancelledError("Scan cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def _describe(exc: BaseException) -> Tuple[str, str]:
    return type(exc).__name__, getattr(exc, "message", None) or str(exc)


@dataclass(frozen=True)
class ResourceError:
    """A resource whose tags could not be fetched or evaluated."""

    resource_type: str
    resource_id: str
    region: str
    cause: str
    error_type: str = "Exception"

    @classmethod
    def from_exception(cls, resource: Resource, exc: BaseException) -> ResourceError:
        error_type, cause = _describe(exc)
        # Scanner errors carry the located region, which may differ from the listing's.
        return cls(
            resource_type=resource.resource_type,
            resource_id=resource.resource_id,
            region=getattr(exc, "region", None) or resource.region,
            cause=cause,
            error_type=error_type,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "region": self.region,
            "error_type": self.error_type,
            "cause": self.cause,
        }

    def __str__(self) -> str:
        return f"{self.resource_type} {self.resource_id} ({self.region}): {self.cause}"


@dataclass(frozen=True)
class ServiceFailure:
    """A service whose listing failed; none of its resources were scanned."""

    service: str
    resource_type: str
    region: str
    cause: str
    error_type: str = "Exception"

    def to_dict(self) -> Dict[str, str]:
        return {
            "service": self.service,
            "resource_type": self.resource_type,
            "region": self.region,
            "error_type": self.error_type,
            "cause": self.cause,
        }

    def __str__(self) -> str:
        return f"{self.service} ({self.region}): {self.cause}"


@dataclass
class Report:
    """
    Aggregated results from a scan.

    Parameters
    ----------
    results : list of ScanResult
        One result per scanned resource, sorted by type, region and id.
    errors : list of ResourceError
        Per-resource failures.
    fatal_errors : list of ServiceFailure
        Services whose listing failed.
    discovered : dict
        Resource type to number of resources listed.
    excluded : dict
        Resource type to number of resources skipped by exclusions.
    dry_run : bool
        True if tag fetches were skipped.
    cancelled : bool
        True if the scan was cancelled before it finished.
    policy_version : str
        Version of the policy used.
    scan_time : datetime
        When the scan started (UTC).
    duration_seconds : float
        Wall-clock duration of the scan.

    Examples
    --------
    >>> report = orchestrator.scan()
    >>> for resource_type, results in report.results_by_type().items():
    ...     print(resource_type, len(results))
    >>> if report.is_fatal:
    ...     print("Some services could not be listed")
    """

    results: List[ScanResult] = field(default_factory=list)
    errors: List[ResourceError] = field(default_factory=list)
    fatal_errors: List[ServiceFailure] = field(default_factory=list)
    discovered: Dict[str, int] = field(default_factory=dict)
    excluded: Dict[str, int] = field(default_factory=dict)
    dry_run: bool = False
    cancelled: bool = False
    policy_version: str = ""
    scan_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def compliant_count(self) -> int:
        return sum(1 for r in self.results if r.is_compliant)

    @property
    def non_compliant_count(self) -> int:
        return sum(1 for r in self.results if not r.is_compliant)

    @property
    def has_errors(self) -> bool:
        """True if any resource or service failed."""
        return bool(self.errors or self.fatal_errors)

    @property
    def is_fatal(self) -> bool:
        """True if at least one service listing failed."""
        return bool(self.fatal_errors)

    @property
    def non_compliant_results(self) -> List[ScanResult]:
        return [r for r in self.results if not r.is_compliant]

    def results_by_type(self) -> Dict[str, List[ScanResult]]:
        """Group results by resource type, keeping the report order."""
        grouped: Dict[str, List[ScanResult]] = {}
        for result in self.results:
            grouped.setdefault(result.resource_type, []).append(result)
        return grouped

    def summary_by_type(self) -> Dict[str, Dict[str, int]]:
        """
        Per resource type counts.

        Returns
        -------
        dict
            Resource type to ``discovered``, ``excluded``, ``scanned``,
            ``compliant``, ``non_compliant`` and ``errors`` counts.
        """
        types = set(self.discovered) | {r.resource_type for r in self.results}
        types |= {e.resource_type for e in self.errors}
        summary: Dict[str, Dict[str, int]] = {}
        for resource_type in sorted(types):
            scanned = [r for r in self.results if r.resource_type == resource_type]
            compliant = sum(1 for r in scanned if r.is_compliant)
            summary[resource_type] = {
                "discovered": self.discovered.get(resource_type, 0),
                "excluded": self.excluded.get(resource_type, 0),
                "scanned": len(scanned),
                "compliant": compliant,
                "non_compliant": len(scanned) - compliant,
                "errors": sum(1 for e in self.errors if e.resource_type == resource_type),
            }
        return summary

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for serialization.

        Returns
        -------
        dict
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "metadata": {
                "policy_version": self.policy_version,
                "scan_time": self.scan_time.isoformat(),
                "duration_seconds": round(self.duration_seconds, 3),
                "dry_run": self.dry_run,
                "cancelled": self.cancelled,
                "total_resources": self.total_count,
                "compliant": self.compliant_count,
                "non_compliant": self.non_compliant_count,
            },
            "summary_by_type": self.summary_by_type(),
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
            "fatal_errors": [f.to_dict() for f in self.fatal_errors],
        }

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"Report(results={self.total_count}, "
            f"non_compliant={self.non_compliant_count}, "
            f"errors={len(self.errors)}, "
            f"fatal_errors={len(self.fatal_errors)}, "
            f"cancelled={self.cancelled})"
        )


@dataclass
class _WorkUnit:
    descriptor: ServiceDescriptor
    aws_client: AWSClient
    region: str

    @property
    def service(self) -> str:
        return self.descriptor.kind.value


@dataclass
class _UnitOutcome:
    unit: _WorkUnit
    resource_type: str = ""
    results: List[ScanResult] = field(default_factory=list)
    errors: List[ResourceError] = field(default_factory=list)
    discovered: int = 0
    excluded: int = 0
    failure: Optional[BaseException] = None


class ScanOrchestrator:
    """
    Runs the enabled service scanners and aggregates a :class:`Report`.

    Parameters
    ----------
    policy : Policy
        Validated, read-only policy.
    aws_client : AWSClient
        Capability provider; regional services use ``with_region`` copies.
    registry : ServiceRegistry, optional
        Service registry; defaults to the provider's registry.
    dry_run : bool, default=False
        List and filter resources but skip tag fetches.
    cancel_token : CancellationToken, optional
        Token checked by workers before every cloud call.
    regions : sequence of str, optional
        Regions for regional services; defaults to the provider's region.
    max_service_workers : int, default=4
        Number of services (or service/region pairs) scanned in parallel.
    collect_metadata : bool, default=False
        Ask scanners for the optional metadata as well.
    continue_on_service_failure : bool, default=True
        If False, the first listing failure is raised instead of recorded.

    Examples
    --------
    Scan two regions and stop from another thread:

    >>> token = CancellationToken()
    >>> orchestrator = ScanOrchestrator(
    ...     policy,
    ...     AWSClient(region="us-east-1"),
    ...     regions=["us-east-1", "eu-west-1"],
    ...     cancel_token=token,
    ... )
    >>> report = orchestrator.scan()

    Raises
    ------
    ScannerError
        If the policy is globally disabled.
    UnknownServiceError
        If the policy enables a service with no registered scanner.
    CredentialsError
        If credentials fail at any point.
    """

    def __init__(
        self,
        policy: Policy,
        aws_client: AWSClient,
        registry: Optional[ServiceRegistry] = None,
        dry_run: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        regions: Optional[Sequence[str]] = None,
        max_service_workers: int = DEFAULT_SERVICE_WORKERS,
        collect_metadata: bool = False,
        continue_on_service_failure: bool = True,
    ) -> None:
        if max_service_workers <= 0:
            raise ValueError(
                f"max_service_workers must be positive, got {max_service_workers}"
            )

        self.policy = policy
        self.aws_client = aws_client
        self.registry = registry or getattr(aws_client, "registry", None) or DEFAULT_REGISTRY
        self.dry_run = dry_run
        self.cancel_token = cancel_token or CancellationToken()
        self.regions = list(regions) if regions else [aws_client.region]
        self.max_service_workers = max_service_workers
        self.collect_metadata = collect_metadata
        self.continue_on_service_failure = continue_on_service_failure

        logger.debug(
            f"Initialized ScanOrchestrator (dry_run={dry_run}, "
            f"regions={self.regions}, max_service_workers={max_service_workers})"
        )

    # =========================================================================
    # Planning
    # =========================================================================

    def _clients_by_region(self) -> Dict[str, AWSClient]:
        clients = {}
        for region in self.regions:
            if region == self.aws_client.region:
                clients[region] = self.aws_client
            else:
                clients[region] = self.aws_client.with_region(region)
        return clients

    def plan(self) -> List[_WorkUnit]:
        """
        Build the list of work units without touching AWS.

        Raises
        ------
        ScannerError
            If the policy is globally disabled.
        UnknownServiceError
            If an enabled service has no registered scanner.
        """
        if not self.policy.global_settings.enabled:
            raise ScannerError(
                "Policy is globally disabled",
                details={"source": self.policy.source},
            )

        descriptors = [
            self.registry.get(key) for key in self.policy.enabled_resource_types()
        ]
        clients = self._clients_by_region()

        units: List[_WorkUnit] = []
        for descriptor in descriptors:
            if descriptor.regional:
                units.extend(
                    _WorkUnit(descriptor, clients[region], region)
                    for region in self.regions
                )
            else:
                units.append(
                    _WorkUnit(descriptor, self.aws_client, self.aws_client.region)
                )
        return units

    # =========================================================================
    # Execution
    # =========================================================================

    def scan(self) -> Report:
        """
        Run the scan.

        Returns
        -------
        Report
            Sorted results, per-resource errors and listing failures.

        Raises
        ------
        ScannerError
            If the policy is disabled, or a listing fails while
            ``continue_on_service_failure`` is False.
        UnknownServiceError
            If an enabled service has no registered scanner.
        CredentialsError
            If credentials fail.
        """
        units = self.plan()
        report = Report(dry_run=self.dry_run, policy_version=self.policy.version)
        started = time.monotonic()

        logger.info(
            f"Starting scan of {len(units)} service unit(s)"
            + (" (dry run)" if self.dry_run else ""),
            extra={"policy_version": self.policy.version},
        )

        if units:
            workers = min(self.max_service_workers, len(units))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="tag-inspector-service"
            ) as executor:
                futures = {executor.submit(self._run_unit, unit): unit for unit in units}
                try:
                    for future in as_completed(futures):
                        self._merge(report, future.result())
                except BaseException:
                    # Queued fetches check the token before taking a slot.
                    self.cancel_token.cancel()
                    self._cancel_pending(futures)
                    raise

        report.results.sort(key=lambda r: (r.resource_type, r.region, r.resource_id))
        report.errors.sort(key=lambda e: (e.resource_type, e.region, e.resource_id))
        report.fatal_errors.sort(key=lambda f: (f.service, f.region))
        report.cancelled = self.cancel_token.cancelled
        report.duration_seconds = time.monotonic() - started

        logger.info(
            f"Scan complete: {report.compliant_count} compliant, "
            f"{report.non_compliant_count} non-compliant, "
            f"{len(report.errors)} errors, {len(report.fatal_errors)} failed services"
            + (" (cancelled)" if report.cancelled else "")
        )
        return report

    def _merge(self, report: Report, outcome: _UnitOutcome) -> None:
        unit = outcome.unit
        if outcome.failure is not None:
            error_type, cause = _describe(outcome.failure)
            failure = ServiceFailure(
                service=unit.service,
                resource_type=outcome.resource_type,
                region=unit.region,
                cause=cause,
                error_type=error_type,
            )
            logger.error(f"Listing failed for {failure}")
            if not self.continue_on_service_failure:
                if isinstance(outcome.failure, ScannerError):
                    raise outcome.failure
                raise ResourceFetchError(
                    f"Failed to list {unit.service} resources: {cause}",
                    resource_type=outcome.resource_type,
                    region=unit.region,
                ) from outcome.failure
            report.fatal_errors.append(failure)
            return

        resource_type = outcome.resource_type
        report.discovered[resource_type] = (
            report.discovered.get(resource_type, 0) + outcome.discovered
        )
        report.excluded[resource_type] = (
            report.excluded.get(resource_type, 0) + outcome.excluded
        )
        report.results.extend(outcome.results)
        report.errors.extend(outcome.errors)

    def _create_scanner(self, unit: _WorkUnit) -> BaseScanner:
        return unit.descriptor.scanner_class(
            unit.aws_client,
            self.policy,
            collect_metadata=self.collect_metadata,
        )

    def _run_unit(self, unit: _WorkUnit) -> _UnitOutcome:
        scanner = self._create_scanner(unit)
        outcome = _UnitOutcome(unit=unit, resource_type=scanner.get_resource_type())
        criteria = self.policy.effective_criteria(unit.service)

        if self.cancel_token.cancelled:
            return outcome

        try:
            resources = scanner.list_resources()
        except CredentialsError:
            raise
        except Exception as e:
            outcome.failure = e
            return outcome

        outcome.discovered = len(resources)
        candidates = list(self._filter_excluded(scanner, resources, outcome))

        logger.debug(
            f"{unit.service} ({unit.region}): {outcome.discovered} discovered, "
            f"{outcome.excluded} excluded"
        )

        if self.dry_run or not candidates:
            return outcome

        self._scan_resources(scanner, candidates, criteria, outcome)
        return outcome

    def _filter_excluded(
        self,
        scanner: BaseScanner,
        resources: Iterable[Resource],
        outcome: _UnitOutcome,
    ) -> Iterable[Resource]:
        for resource in resources:
            excluded, reason = scanner.is_excluded(resource)
            if excluded:
                outcome.excluded += 1
                logger.debug(
                    f"Excluding {resource.resource_type} {resource.resource_id}: {reason}",
                    extra={"resource_id": resource.resource_id, "reason": reason},
                )
                continue
            yield resource

    def _scan_resources(
        self,
        scanner: BaseScanner,
        resources: List[Resource],
        criteria: TagCriteria,
        outcome: _UnitOutcome,
    ) -> None:
        batch_size = scanner.batch_size
        slots = threading.BoundedSemaphore(batch_size)

        with ThreadPoolExecutor(
            max_workers=batch_size, thread_name_prefix="tag-inspector-fetch"
        ) as executor:
            futures = {
                executor.submit(self._scan_one, scanner, resource, criteria, slots): resource
                for resource in resources
            }
            collected = set()
            try:
                for future in as_completed(futures):
                    collected.add(future)
                    self._collect(future, futures[future], outcome)
            except ScanCancelledError:
                self._cancel_pending(futures)
                # Keep whatever was already in flight when the token fired.
                for future, resource in futures.items():
                    if future in collected or future.cancelled():
                        continue
                    try:
                        self._collect(future, resource, outcome)
                    except ScanCancelledError:
                        continue
            except BaseException:
                self.cancel_token.cancel()
                self._cancel_pending(futures)
                raise

    def _scan_one(
        self,
        scanner: BaseScanner,
        resource: Resource,
        criteria: TagCriteria,
        slots: threading.BoundedSemaphore,
    ) -> ScanResult:
        self.cancel_token.raise_if_cancelled()
        with slots:
            self.cancel_token.raise_if_cancelled()
            return scanner.scan_resource(resource, criteria)

    @staticmethod
    def _collect(future: Future, resource: Resource, outcome: _UnitOutcome) -> None:
        try:
            outcome.results.append(future.result())
        except (CredentialsError, ScanCancelledError):
            raise
        except Exception as e:
            error = ResourceError.from_exception(resource, e)
            logger.warning(f"Failed to scan {error}")
            outcome.errors.append(error)

    @staticmethod
    def _cancel_pending(futures: Dict[Future, Any]) -> None:
        for future in futures:
            future.cancel()

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"ScanOrchestrator(policy_version='{self.policy.version}', "
            f"regions={self.regions}, dry_run={self.dry_run})"
        )
