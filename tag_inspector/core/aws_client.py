"""
AWS Client Module
=================

Provides a thread-safe wrapper around boto3 that hands out typed service
clients by :class:`~tag_inspector.core.registry.ServiceKind`.

Clients are built lazily on first request and cached for the lifetime of
the :class:`AWSClient`. Service factories come from a
:class:`~tag_inspector.core.registry.ServiceRegistry`, so adding a service
does not touch this module.

Classes
-------
AWSClient
    Main client class for AWS operations.

Example
-------
>>> from tag_inspector.core.aws_client import AWSClient
>>> from tag_inspector.core.registry import ServiceKind
>>>
>>> client = AWSClient(region="us-east-1", profile="production")
>>> client.validate_credentials()
>>> s3 = client.get_client(ServiceKind.S3)

Credential Resolution
---------------------
1. Explicit static credentials (access key id + secret, optional token)
2. Named profile from ~/.aws/credentials
3. The default boto3 credential chain (environment, config files, IAM role)

Notes
-----
An endpoint override (e.g. LocalStack) is applied to every client built
from the same ``AWSClient``. ``max_retries`` and ``timeout`` are forwarded
to botocore's transport configuration.

See Also
--------
boto3 : AWS SDK for Python
botocore : Low-level AWS client library
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Dict, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    NoCredentialsError,
    NoRegionError,
    ProfileNotFound,
)

from tag_inspector.core.exceptions import (
    AWSClientError,
    CredentialsError,
    RegionError,
    ServiceError,
)
from tag_inspector.core.registry import DEFAULT_REGISTRY, ServiceKind, ServiceRegistry

# Module logger
logger = logging.getLogger(__name__)

REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")


class AWSClient:
    """
    Thread-safe AWS client wrapper with retry logic and credential management.

    Parameters
    ----------
    region : str, default="us-east-1"
        AWS region to connect to.
    profile : str, optional
        AWS profile name from ~/.aws/credentials.
    access_key_id : str, optional
        Static access key id; requires ``secret_access_key``.
    secret_access_key : str, optional
        Static secret access key; requires ``access_key_id``.
    session_token : str, optional
        Session token for temporary static credentials.
    endpoint_url : str, optional
        Endpoint override applied to every service client.
    max_retries : int, default=3
        Maximum number of attempts for failed API calls.
    timeout : int, default=30
        Connect and read timeout in seconds.
    registry : ServiceRegistry, optional
        Service registry; defaults to the process-wide registry.

    Examples
    --------
    Default credentials:

    >>> client = AWSClient(region="us-east-1")
    >>> client.validate_credentials()
    True

    Static credentials against a local endpoint:

    >>> client = AWSClient(
    ...     region="us-east-1",
    ...     access_key_id="test",
    ...     secret_access_key="test",
    ...     endpoint_url="http://localhost:4566",
    ... )

    Raises
    ------
    RegionError
        If the region is missing or malformed.
    CredentialsError
        If credentials are incomplete, missing or invalid.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        profile: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_retries: int = 3,
        timeout: int = 30,
        registry: Optional[ServiceRegistry] = None,
    ) -> None:
        """Initialize AWS client with the specified configuration."""
        if not region or not REGION_PATTERN.match(region):
            raise RegionError(
                f"Invalid or missing region: {region!r}",
                region=region or None,
                details={"hint": "Specify a valid AWS region like 'us-east-1'"},
            )
        if bool(access_key_id) != bool(secret_access_key):
            raise CredentialsError(
                "Static credentials need both an access key id and a secret access key"
            )

        self.region = region
        self.profile = profile
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.endpoint_url = endpoint_url
        self.max_retries = max_retries
        self.timeout = timeout
        self.registry = registry or DEFAULT_REGISTRY

        # Lazy-loaded components
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}
        self._lock = threading.RLock()

        # Pre-create config (lightweight operation)
        self._config = self._create_config()

        logger.debug(
            "Initialized AWSClient",
            extra={
                "region": region,
                "profile": profile,
                "credential_source": self.credential_source,
            },
        )

    @property
    def credential_source(self) -> str:
        """Which credential source will be used: 'static', 'profile' or 'default'."""
        if self.access_key_id:
            return "static"
        if self.profile:
            return "profile"
        return "default"

    def _create_config(self) -> Config:
        """
        Create botocore configuration with retry and timeout settings.

        Notes
        -----
        Uses adaptive retry mode which dynamically adjusts retry behavior
        based on the error type and retry count.
        """
        return Config(
            region_name=self.region,
            retries={
                "max_attempts": self.max_retries,
                "mode": "adaptive",
            },
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
        )

    @property
    def session(self) -> boto3.Session:
        """
        Get or create the boto3 session (lazy initialization).

        Raises
        ------
        CredentialsError
            If the named profile is not found.
        RegionError
            If the region is invalid.
        """
        with self._lock:
            if self._session is None:
                self._session = self._create_session()
            return self._session

    def _create_session(self) -> boto3.Session:
        """Create a boto3 session following the credential resolution order."""
        session_kwargs: Dict[str, Any] = {"region_name": self.region}
        if self.access_key_id:
            session_kwargs["aws_access_key_id"] = self.access_key_id
            session_kwargs["aws_secret_access_key"] = self.secret_access_key
            if self.session_token:
                session_kwargs["aws_session_token"] = self.session_token
        elif self.profile:
            session_kwargs["profile_name"] = self.profile

        try:
            session = boto3.Session(**session_kwargs)
            logger.debug(
                f"Created boto3 session for region {self.region} "
                f"({self.credential_source} credentials)"
            )
            return session

        except ProfileNotFound:
            raise CredentialsError(
                f"AWS profile '{self.profile}' not found",
                details={
                    "profile": self.profile,
                    "hint": "Check ~/.aws/credentials for available profiles",
                },
            )
        except NoRegionError:
            raise RegionError(
                f"Invalid or missing region: {self.region}",
                region=self.region,
            )
        except Exception as e:
            logger.exception("Failed to create AWS session")
            raise AWSClientError(
                f"Failed to create AWS session: {e}",
                region=self.region,
            )

    def _build_client(self, cache_key: str, factory) -> Any:
        with self._lock:
            if cache_key in self._clients:
                return self._clients[cache_key]

            try:
                client = factory(self.session)
            except NoCredentialsError:
                raise CredentialsError(
                    "AWS credentials not found",
                    details={
                        "hint": (
                            "Configure credentials using 'aws configure' or set "
                            "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables"
                        ),
                    },
                )
            except AWSClientError:
                raise
            except Exception as e:
                logger.exception(f"Failed to create {cache_key} client")
                raise ServiceError(
                    f"Failed to create {cache_key} client: {e}",
                    service=cache_key,
                    region=self.region,
                )

            self._clients[cache_key] = client
            logger.debug(f"Created {cache_key} client for {self.region}")
            return client

    # =========================================================================
    # Service Client Accessors
    # =========================================================================

    def get_client(self, service: Union[str, ServiceKind]) -> Any:
        """
        Get or create the client for a registered service.

        The first request for a kind builds the client; later requests,
        from any thread, get the same cached instance.

        Parameters
        ----------
        service : str or ServiceKind
            Service key, e.g. ``"s3"`` or ``ServiceKind.EC2``.

        Returns
        -------
        botocore.client.BaseClient
            The boto3 client for the service.

        Raises
        ------
        UnknownServiceError
            If no descriptor is registered for the key.
        CredentialsError
            If credentials are not found.
        ServiceError
            If the client cannot be created.
        """
        descriptor = self.registry.get(service)
        return self._build_client(
            descriptor.kind.value,
            lambda session: descriptor.create_client(
                session, self._config, self.endpoint_url
            ),
        )

    def _get_sts_client(self) -> Any:
        def factory(session):
            kwargs: Dict[str, Any] = {"config": self._config}
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
            return session.client("sts", **kwargs)

        return self._build_client("sts", factory)

    # =========================================================================
    # Credential and Account Operations
    # =========================================================================

    def validate_credentials(self) -> bool:
        """
        Validate AWS credentials by calling STS GetCallerIdentity.

        Returns
        -------
        bool
            True if credentials are valid.

        Raises
        ------
        CredentialsError
            If credentials are invalid, expired, or missing.
        """
        try:
            identity = self._get_sts_client().get_caller_identity()
            logger.info(
                "Credentials validated",
                extra={
                    "account": identity["Account"],
                    "arn": identity["Arn"],
                },
            )
            return True

        except CredentialsError:
            raise
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("InvalidClientTokenId", "SignatureDoesNotMatch"):
                raise CredentialsError(
                    "Invalid AWS credentials",
                    details={
                        "error_code": error_code,
                        "hint": "Check your access key and secret key",
                    },
                )
            raise CredentialsError(f"Failed to validate credentials: {e}")
        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found")
        except Exception as e:
            logger.exception("Credential validation failed")
            raise CredentialsError(f"Failed to validate credentials: {e}")

    def get_account_id(self) -> str:
        """
        Get the AWS account ID for the current credentials.

        Returns
        -------
        str
            The 12-digit AWS account ID.
        """
        return self.get_caller_identity()["Account"]

    def get_caller_identity(self) -> Dict[str, str]:
        """Get full caller identity information ('Account', 'Arn', 'UserId')."""
        try:
            return self._get_sts_client().get_caller_identity()
        except AWSClientError:
            raise
        except Exception as e:
            logger.exception("Failed to get caller identity")
            raise AWSClientError(f"Failed to get caller identity: {e}")

    # =========================================================================
    # Factory Methods
    # =========================================================================

    def with_region(self, region: str) -> AWSClient:
        """
        Create a new AWSClient instance for a different region.

        The new client inherits credentials, endpoint, retry and timeout
        settings and the registry, but has its own client cache.

        Example
        -------
        >>> eu_client = AWSClient(region="us-east-1").with_region("eu-west-1")
        >>> eu_client.region
        'eu-west-1'
        """
        return AWSClient(
            region=region,
            profile=self.profile,
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            session_token=self.session_token,
            endpoint_url=self.endpoint_url,
            max_retries=self.max_retries,
            timeout=self.timeout,
            registry=self.registry,
        )

    # =========================================================================
    # Context Manager Support
    # =========================================================================

    def __enter__(self) -> AWSClient:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager and cleanup resources."""
        with self._lock:
            self._clients.clear()
            self._session = None

    def __repr__(self) -> str:
        """Return string representation of the client."""
        return (
            f"AWSClient(region='{self.region}', "
            f"profile={self.profile!r}, "
            f"credentials='{self.credential_source}', "
            f"max_retries={self.max_retries})"
        )
