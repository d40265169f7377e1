"""
Resource Scanners
=================

Service scanners that list resources and fetch their tags.

Importing this package registers every scanner with
:data:`tag_inspector.core.registry.DEFAULT_REGISTRY`.

Available Scanners
------------------
S3Scanner
    S3 buckets (``s3``, account-wide).
EC2InstanceScanner
    EC2 instances (``ec2``, per region).

Example
-------
>>> from tag_inspector.scanners import S3Scanner
>>> from tag_inspector.core import AWSClient, load_policy_file
>>>
>>> scanner = S3Scanner(AWSClient(region="us-east-1"), load_policy_file("policy.yaml"))
>>> results = scanner.scan()

Adding New Scanners
-------------------
1. Add the service to :class:`~tag_inspector.core.registry.ServiceKind`
2. Create a module in this directory (e.g., ``rds_scanner.py``)
3. Subclass ``BaseScanner`` and decorate it with ``@register_service``
4. Import the scanner in this ``__init__.py``

Example template::

    from tag_inspector.core.base_scanner import BaseScanner
    from tag_inspector.core.registry import ServiceKind, register_service

    @register_service(ServiceKind.RDS, "rds")
    class RDSInstanceScanner(BaseScanner):
        def get_resource_type(self) -> str:
            return "rds:db"

        def get_service_key(self) -> str:
            return ServiceKind.RDS.value

        def list_resources(self):
            ...

        def fetch_tags(self, resource):
            ...

See Also
--------
tag_inspector.core.base_scanner : Base class for all scanners.
"""

from tag_inspector.scanners.ec2_scanner import EC2InstanceScanner
from tag_inspector.scanners.s3_scanner import S3Scanner

__all__ = [
    "EC2InstanceScanner",
    "S3Scanner",
]
