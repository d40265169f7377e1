"""
Service Registry Module
=======================

Maps each supported AWS service kind to the descriptor needed to scan it:
the boto3 service name, how to build its client, and the scanner class.

Adding a service is one registry entry: decorate the scanner class with
:func:`register_service` and add the kind to :class:`ServiceKind`.

Classes
-------
ServiceKind
    Closed enumeration of the services the inspector understands.
ServiceDescriptor
    Client factory and scanner class for one service kind.
ServiceRegistry
    Thread-safe mapping of kinds to descriptors.

Example
-------
>>> from tag_inspector.core.registry import DEFAULT_REGISTRY, ServiceKind
>>>
>>> descriptor = DEFAULT_REGISTRY.get(ServiceKind.S3)
>>> descriptor.scanner_class.__name__
'S3Scanner'
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, Union

from botocore.config import Config

from tag_inspector.core.exceptions import UnknownServiceError

# Module logger
logger = logging.getLogger(__name__)


class ServiceKind(str, Enum):
    """Services that can be scanned, keyed as in the policy ``resources`` map."""

    S3 = "s3"
    EC2 = "ec2"

    @classmethod
    def from_key(cls, key: Union[str, ServiceKind]) -> ServiceKind:
        """
        Resolve a policy key to a service kind.

        Raises
        ------
        UnknownServiceError
            If the key names no known service.
        """
        if isinstance(key, ServiceKind):
            return key
        try:
            return cls(str(key).strip().lower())
        except ValueError:
            raise UnknownServiceError(
                f"Unsupported service: {key}",
                service=str(key),
                details={"supported": [k.value for k in cls]},
            )


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Everything needed to scan one service kind.

    Parameters
    ----------
    kind : ServiceKind
        The service kind.
    service_name : str
        boto3 service name used to build the client.
    scanner_class : type
        :class:`~tag_inspector.core.base_scanner.BaseScanner` subclass.
    regional : bool, default=True
        If True the orchestrator runs one scan per region; otherwise a
        single scan covers the whole account (e.g. S3).
    client_config : dict, optional
        Extra botocore ``Config`` arguments merged into the base config.
    """

    kind: ServiceKind
    service_name: str
    scanner_class: Type[Any]
    regional: bool = True
    client_config: Dict[str, Any] = field(default_factory=dict)

    def create_client(
        self,
        session: Any,
        config: Config,
        endpoint_url: Optional[str] = None,
    ) -> Any:
        """
        Build the boto3 client for this service.

        Parameters
        ----------
        session : boto3.Session
            Session carrying credentials and region.
        config : botocore.config.Config
            Base transport config (retries, timeouts).
        endpoint_url : str, optional
            Endpoint override applied to the client.

        Returns
        -------
        botocore.client.BaseClient
            The service client.
        """
        if self.client_config:
            config = config.merge(Config(**self.client_config))
        kwargs: Dict[str, Any] = {"config": config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        return session.client(self.service_name, **kwargs)


class ServiceRegistry:
    """
    Registry of service descriptors keyed by :class:`ServiceKind`.

    Examples
    --------
    >>> registry = ServiceRegistry()
    >>> registry.register(ServiceDescriptor(ServiceKind.S3, "s3", S3Scanner, regional=False))
    >>> registry.get("s3").service_name
    's3'
    """

    def __init__(self) -> None:
        self._descriptors: Dict[ServiceKind, ServiceDescriptor] = {}
        self._lock = threading.Lock()

    def register(self, descriptor: ServiceDescriptor) -> ServiceDescriptor:
        with self._lock:
            if descriptor.kind in self._descriptors:
                logger.debug(f"Replacing descriptor for {descriptor.kind.value}")
            self._descriptors[descriptor.kind] = descriptor
        return descriptor

    def resolve(self, key: Union[str, ServiceKind]) -> ServiceKind:
        """Resolve a key to a registered kind, or raise UnknownServiceError."""
        return self.get(key).kind

    def get(self, key: Union[str, ServiceKind]) -> ServiceDescriptor:
        """
        Look up the descriptor for a service key.

        Raises
        ------
        UnknownServiceError
            If the key is unknown or nothing is registered for it.
        """
        kind = ServiceKind.from_key(key)
        with self._lock:
            descriptor = self._descriptors.get(kind)
        if descriptor is None:
            raise UnknownServiceError(
                f"No scanner registered for service: {kind.value}",
                service=kind.value,
            )
        return descriptor

    def kinds(self) -> List[ServiceKind]:
        with self._lock:
            return sorted(self._descriptors, key=lambda k: k.value)

    def descriptors(self) -> List[ServiceDescriptor]:
        with self._lock:
            return [self._descriptors[k] for k in sorted(self._descriptors, key=lambda k: k.value)]

    def __contains__(self, key: object) -> bool:
        try:
            kind = ServiceKind.from_key(key)  # type: ignore[arg-type]
        except UnknownServiceError:
            return False
        with self._lock:
            return kind in self._descriptors

    def __repr__(self) -> str:
        return f"ServiceRegistry(kinds={[k.value for k in self.kinds()]})"


# Filled at import time by the scanner modules.
DEFAULT_REGISTRY = ServiceRegistry()


def register_service(
    kind: ServiceKind,
    service_name: str,
    regional: bool = True,
    client_config: Optional[Dict[str, Any]] = None,
    registry: Optional[ServiceRegistry] = None,
) -> Callable[[Type[Any]], Type[Any]]:
    """
    Class decorator that registers a scanner for a service kind.

    Example
    -------
    >>> @register_service(ServiceKind.S3, "s3", regional=False)
    ... class S3Scanner(BaseScanner):
    ...     ...
    """

    def decorator(scanner_class: Type[Any]) -> Type[Any]:
        (registry or DEFAULT_REGISTRY).register(
            ServiceDescriptor(
                kind=kind,
                service_name=service_name,
                scanner_class=scanner_class,
                regional=regional,
                client_config=dict(client_config or {}),
            )
        )
        return scanner_class

    return decorator
