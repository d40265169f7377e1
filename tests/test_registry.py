"""
Tests for the service registry.
"""

import pytest
from botocore.config import Config

from tag_inspector.core.exceptions import UnknownServiceError
from tag_inspector.core.registry import (
    DEFAULT_REGISTRY,
    ServiceDescriptor,
    ServiceKind,
    ServiceRegistry,
    register_service,
)
from tag_inspector.scanners import EC2InstanceScanner, S3Scanner


class _RecordingSession:
    """Stands in for a boto3 session and records client() calls."""

    def __init__(self):
        self.calls = []

    def client(self, service_name, **kwargs):
        self.calls.append((service_name, kwargs))
        return object()


class TestServiceKind:
    """Tests for ServiceKind."""

    @pytest.mark.parametrize(
        "key, expected",
        [("s3", ServiceKind.S3), ("EC2", ServiceKind.EC2), (" s3 ", ServiceKind.S3)],
    )
    def test_from_key(self, key, expected):
        """Test resolving policy keys."""
        assert ServiceKind.from_key(key) is expected

    def test_from_key_passes_kinds_through(self):
        """Test that a kind resolves to itself."""
        assert ServiceKind.from_key(ServiceKind.EC2) is ServiceKind.EC2

    def test_unknown_key(self):
        """Test that unknown keys raise UnknownServiceError."""
        with pytest.raises(UnknownServiceError) as exc_info:
            ServiceKind.from_key("rds")

        assert exc_info.value.service == "rds"
        assert exc_info.value.details["supported"] == ["s3", "ec2"]


class TestServiceRegistry:
    """Tests for ServiceRegistry."""

    def test_default_registry_has_builtin_scanners(self):
        """Test that importing the scanners registers them."""
        assert DEFAULT_REGISTRY.get("s3").scanner_class is S3Scanner
        assert DEFAULT_REGISTRY.get("ec2").scanner_class is EC2InstanceScanner
        assert DEFAULT_REGISTRY.get("s3").regional is False
        assert DEFAULT_REGISTRY.get("ec2").regional is True
        assert DEFAULT_REGISTRY.kinds() == [ServiceKind.EC2, ServiceKind.S3]

    def test_empty_registry_lookup(self):
        """Test that a known kind without a descriptor is unknown to the registry."""
        registry = ServiceRegistry()

        with pytest.raises(UnknownServiceError):
            registry.get("s3")
        assert "s3" not in registry
        assert "rds" not in registry

    def test_register_service_decorator_with_custom_registry(self):
        """Test that the decorator registers into the given registry only."""
        registry = ServiceRegistry()

        @register_service(ServiceKind.EC2, "ec2", registry=registry)
        class FakeScanner:
            pass

        assert registry.get(ServiceKind.EC2).scanner_class is FakeScanner
        assert registry.resolve("ec2") is ServiceKind.EC2
        assert "ec2" in registry
        assert DEFAULT_REGISTRY.get("ec2").scanner_class is EC2InstanceScanner

    def test_register_replaces_existing(self):
        """Test that registering a kind twice keeps the latest descriptor."""
        registry = ServiceRegistry()
        registry.register(ServiceDescriptor(ServiceKind.S3, "s3", object))
        registry.register(ServiceDescriptor(ServiceKind.S3, "s3", S3Scanner, regional=False))

        assert registry.get("s3").scanner_class is S3Scanner
        assert len(registry.descriptors()) == 1

    def test_resolve_unknown(self):
        """Test that resolve rejects unknown keys."""
        with pytest.raises(UnknownServiceError):
            ServiceRegistry().resolve("lambda")


class TestServiceDescriptor:
    """Tests for ServiceDescriptor.create_client."""

    def test_create_client_merges_config(self):
        """Test that service config is merged over the base config."""
        descriptor = ServiceDescriptor(
            ServiceKind.S3,
            "s3",
            S3Scanner,
            client_config={"s3": {"addressing_style": "path"}},
        )
        session = _RecordingSession()
        base = Config(region_name="eu-west-1", connect_timeout=5)

        descriptor.create_client(session, base, endpoint_url="http://localhost:4566")

        service_name, kwargs = session.calls[0]
        assert service_name == "s3"
        assert kwargs["endpoint_url"] == "http://localhost:4566"
        assert kwargs["config"].s3 == {"addressing_style": "path"}
        assert kwargs["config"].connect_timeout == 5
        assert kwargs["config"].region_name == "eu-west-1"

    def test_create_client_without_extras(self):
        """Test that the base config is passed through untouched."""
        descriptor = ServiceDescriptor(ServiceKind.EC2, "ec2", EC2InstanceScanner)
        session = _RecordingSession()
        base = Config(region_name="us-east-1")

        descriptor.create_client(session, base)

        service_name, kwargs = session.calls[0]
        assert service_name == "ec2"
        assert kwargs == {"config": base}
