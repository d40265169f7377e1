"""
Custom Exceptions for Tag Inspector
===================================

This module defines a hierarchy of custom exceptions used throughout
the application for consistent error handling and reporting.

Exception Hierarchy
-------------------
::

    TagInspectorError (base)
    ├── AWSClientError
    │   ├── CredentialsError
    │   ├── RegionError
    │   ├── ServiceError
    │   └── UnknownServiceError
    ├── PolicyError
    │   ├── PolicyLoadError
    │   └── PolicyValidationError
    └── ScannerError
        ├── ResourceFetchError
        ├── TagFetchError
        └── ScanCancelledError

Example
-------
>>> from tag_inspector.core.exceptions import PolicyError, CredentialsError
>>>
>>> try:
...     policy = load_policy_file("policy.yaml")
... except PolicyError as e:
...     print(f"Invalid policy: {e}")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TagInspectorError(Exception):
    """
    Base exception for all Tag Inspector errors.

    All custom exceptions in the application inherit from this class,
    allowing for broad exception catching when needed.

    Parameters
    ----------
    message : str
        Human-readable error message.
    details : dict, optional
        Additional context about the error.

    Attributes
    ----------
    message : str
        The error message.
    details : dict
        Additional error details.

    Example
    -------
    >>> raise TagInspectorError("Something went wrong", details={"code": 500})
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns
        -------
        dict
            Dictionary representation of the error.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# AWS Client Exceptions
# =============================================================================


class AWSClientError(TagInspectorError):
    """
    Base exception for AWS client-related errors.

    Raised when there's an issue with AWS connectivity, authentication,
    or service access.

    Parameters
    ----------
    message : str
        Human-readable error message.
    service : str, optional
        The AWS service that caused the error.
    region : str, optional
        The AWS region where the error occurred.
    details : dict, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        region: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.service = service
        self.region = region
        full_details = details or {}
        if service:
            full_details["service"] = service
        if region:
            full_details["region"] = region
        super().__init__(message, full_details)


class CredentialsError(AWSClientError):
    """
    Raised when AWS credentials are invalid, missing, or expired.

    Example
    -------
    >>> raise CredentialsError(
    ...     "AWS credentials not found",
    ...     details={"hint": "Run 'aws configure' to set up credentials"}
    ... )
    """

    pass


class RegionError(AWSClientError):
    """
    Raised when there's an issue with the specified AWS region.

    Example
    -------
    >>> raise RegionError("Invalid region specified", region="us-invalid")
    """

    pass


class ServiceError(AWSClientError):
    """
    Raised when a client for a specific AWS service cannot be built.

    Example
    -------
    >>> raise ServiceError(
    ...     "Failed to create s3 client",
    ...     service="s3",
    ...     region="us-east-1"
    ... )
    """

    pass


class UnknownServiceError(AWSClientError):
    """
    Raised when a service key has no registered descriptor.

    Example
    -------
    >>> raise UnknownServiceError("Unsupported service: dynamodb", service="dynamodb")
    """

    pass


# =============================================================================
# Policy Exceptions
# =============================================================================


class PolicyError(TagInspectorError):
    """
    Base exception for policy file errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    source : str, optional
        Identifier of the policy document (usually the file path).
    details : dict, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.source = source
        full_details = details or {}
        if source:
            full_details["source"] = source
        super().__init__(message, full_details)


class PolicyLoadError(PolicyError):
    """Raised when the policy document cannot be read or parsed."""

    pass


class PolicyValidationError(PolicyError):
    """
    Raised when a parsed policy breaks a validation rule.

    Example
    -------
    >>> raise PolicyValidationError(
    ...     "invalid batch size for resource type s3",
    ...     source="policy.yaml",
    ... )
    """

    pass


# =============================================================================
# Scanner Exceptions
# =============================================================================


class ScannerError(TagInspectorError):
    """
    Base exception for scanner-related errors.

    Raised when there's an issue during resource scanning.

    Parameters
    ----------
    message : str
        Human-readable error message.
    resource_type : str, optional
        The type of resource being scanned.
    region : str, optional
        The AWS region being scanned.
    details : dict, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        region: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.resource_type = resource_type
        self.region = region
        full_details = details or {}
        if resource_type:
            full_details["resource_type"] = resource_type
        if region:
            full_details["region"] = region
        super().__init__(message, full_details)


class ResourceFetchError(ScannerError):
    """
    Raised when unable to list resources from AWS.

    Listing failures are fatal for the affected service.

    Example
    -------
    >>> raise ResourceFetchError(
    ...     "Failed to list buckets",
    ...     resource_type="s3:bucket",
    ... )
    """

    pass


class TagFetchError(ScannerError):
    """
    Raised when the tags of a single resource cannot be fetched.

    Parameters
    ----------
    message : str
        Human-readable error message.
    resource_id : str, optional
        The resource whose tags could not be read.
    resource_type : str, optional
        The type of the resource.
    region : str, optional
        The AWS region of the resource.
    details : dict, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        region: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.resource_id = resource_id
        full_details = details or {}
        if resource_id:
            full_details["resource_id"] = resource_id
        super().__init__(message, resource_type, region, full_details)


class ScanCancelledError(ScannerError):
    """Raised inside a worker when the scan was cancelled before its cloud call."""

    pass
