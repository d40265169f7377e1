"""
S3 Scanner Module
=================

Checks S3 bucket tags against the compliance policy.

Buckets are listed once per account (S3 is not scanned per region); each
bucket's region is resolved from its location constraint before the tag
set is read.

Classes
-------
S3Scanner
    Scanner for S3 buckets.

Example
-------
>>> from tag_inspector.core import AWSClient, load_policy_file
>>> from tag_inspector.scanners import S3Scanner
>>>
>>> policy = load_policy_file("policy.yaml")
>>> scanner = S3Scanner(AWSClient(region="us-east-1"), policy)
>>> for result in scanner.scan():
...     print(f"{result.resource_id}: {result.compliance_tag}")

Error Handling
--------------
1. **Listing** - any failure raises ``ResourceFetchError``; the S3 scan is
   aborted because a partial bucket list cannot be trusted.
2. **NoSuchTagSet** - the bucket simply has no tags; scanned as ``{}``.
3. **Anything else** (AccessDenied, throttling, network) - raised as
   ``TagFetchError`` for that bucket only.

Notes
-----
The S3 client uses path-style addressing so that endpoint overrides
(LocalStack, MinIO) work without wildcard DNS.

See Also
--------
BaseScanner : Abstract base class.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from tag_inspector.core.base_scanner import (
    NO_TAG_SET_CODES,
    BaseScanner,
    Resource,
    client_error_code,
)
from tag_inspector.core.exceptions import (
    CredentialsError,
    ResourceFetchError,
    TagFetchError,
)
from tag_inspector.core.registry import ServiceKind, register_service

# Module logger
logger = logging.getLogger(__name__)

RESOURCE_TYPE = "s3:bucket"

# Location constraints that do not name a region directly.
LEGACY_LOCATIONS = {
    None: "us-east-1",
    "": "us-east-1",
    "EU": "eu-west-1",
}


def normalize_location(constraint: Any) -> str:
    """
    Map a bucket ``LocationConstraint`` to a region name.

    Example
    -------
    >>> normalize_location(None)
    'us-east-1'
    >>> normalize_location("EU")
    'eu-west-1'
    """
    if constraint in LEGACY_LOCATIONS:
        return LEGACY_LOCATIONS[constraint]
    return str(constraint)


@register_service(
    ServiceKind.S3,
    "s3",
    regional=False,
    client_config={"s3": {"addressing_style": "path"}},
)
class S3Scanner(BaseScanner):
    """
    Scanner for S3 bucket tag compliance.

    Parameters
    ----------
    aws_client : AWSClient
        Capability provider.
    policy : Policy
        The shared, read-only policy.
    batch_size : int, optional
        Overrides the policy batch size.
    collect_metadata : bool, default=False
        If True, also read versioning, encryption and public access block.

    Examples
    --------
    >>> scanner = S3Scanner(client, policy, collect_metadata=True)
    >>> bucket = scanner.list_resources()[0]
    >>> scanner.scan_resource(bucket, policy.effective_criteria("s3")).metadata
    {'creation_date': '...', 'versioning': 'Enabled', 'encryption': 'AES256', ...}

    See Also
    --------
    BaseScanner : Parent class defining the scanner interface.
    """

    def get_resource_type(self) -> str:
        return RESOURCE_TYPE

    def get_service_key(self) -> str:
        return ServiceKind.S3.value

    # =========================================================================
    # Listing
    # =========================================================================

    def list_resources(self) -> List[Resource]:
        """
        List every bucket visible to the credentials.

        Returns
        -------
        list of Resource
            One resource per bucket, carrying ``creation_date`` metadata.

        Raises
        ------
        CredentialsError
            If no credentials are available.
        ResourceFetchError
            If the ListBuckets call fails.
        """
        resources: List[Resource] = []
        kwargs: Dict[str, Any] = {}

        try:
            while True:
                response = self.client.list_buckets(**kwargs)
                for bucket in response.get("Buckets", []):
                    resources.append(self._to_resource(bucket))

                token = response.get("ContinuationToken")
                if not token:
                    break
                kwargs = {"ContinuationToken": token}

        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found", service="s3")
        except (ClientError, BotoCoreError) as e:
            raise ResourceFetchError(
                f"Failed to list S3 buckets: {e}",
                resource_type=RESOURCE_TYPE,
                region=self.region,
                details={"error_code": client_error_code(e)},
            )

        logger.debug(f"Found {len(resources)} S3 buckets")
        return resources

    def _to_resource(self, bucket: Dict[str, Any]) -> Resource:
        name = bucket["Name"]
        metadata: Dict[str, Any] = {}
        created = bucket.get("CreationDate")
        if created is not None:
            metadata["creation_date"] = (
                created.isoformat() if hasattr(created, "isoformat") else str(created)
            )
        return Resource(
            resource_type=RESOURCE_TYPE,
            resource_id=name,
            arn=f"arn:aws:s3:::{name}",
            region=bucket.get("BucketRegion") or self.region,
            metadata=metadata,
        )

    # =========================================================================
    # Per-bucket Fetches
    # =========================================================================

    def _fetch_error(self, resource: Resource, action: str, error: Exception) -> TagFetchError:
        return TagFetchError(
            f"Failed to {action} for bucket {resource.resource_id}: {error}",
            resource_id=resource.resource_id,
            resource_type=RESOURCE_TYPE,
            region=resource.region,
            details={"error_code": client_error_code(error)},
        )

    def locate(self, resource: Resource) -> Resource:
        """
        Resolve the bucket's region from its location constraint.

        Raises
        ------
        TagFetchError
            If GetBucketLocation fails.
        """
        try:
            response = self.client.get_bucket_location(Bucket=resource.resource_id)
        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found", service="s3")
        except (ClientError, BotoCoreError) as e:
            raise self._fetch_error(resource, "get location", e)

        region = normalize_location(response.get("LocationConstraint"))
        if region == resource.region:
            return resource
        return dataclasses.replace(resource, region=region)

    def fetch_tags(self, resource: Resource) -> Dict[str, str]:
        """
        Read the bucket's tag set.

        Returns
        -------
        dict
            Tag key to value; ``{}`` when the bucket has no tag set.

        Raises
        ------
        TagFetchError
            For any error other than ``NoSuchTagSet``.
        """
        try:
            response = self.client.get_bucket_tagging(Bucket=resource.resource_id)
        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found", service="s3")
        except ClientError as e:
            if client_error_code(e) in NO_TAG_SET_CODES:
                logger.debug(f"Bucket {resource.resource_id} has no tag set")
                return {}
            raise self._fetch_error(resource, "get tags", e)
        except BotoCoreError as e:
            raise self._fetch_error(resource, "get tags", e)

        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    def fetch_metadata(self, resource: Resource) -> Dict[str, Any]:
        """
        Collect bucket metadata.

        ``creation_date`` comes from the listing. With ``collect_metadata``
        set, versioning, encryption and public access block are read too;
        each is best-effort and skipped on error.
        """
        metadata = dict(resource.metadata)
        if not self.collect_metadata:
            return metadata

        bucket = resource.resource_id
        for key, reader in (
            ("versioning", self._versioning),
            ("encryption", self._encryption),
            ("public_access", self._public_access),
        ):
            try:
                metadata[key] = reader(bucket)
            except NoCredentialsError:
                raise CredentialsError("AWS credentials not found", service="s3")
            except ClientError as e:
                logger.debug(f"Skipping {key} for bucket {bucket}: {client_error_code(e)}")
            except BotoCoreError as e:
                logger.debug(f"Skipping {key} for bucket {bucket}: {e}")

        return metadata

    def _versioning(self, bucket: str) -> str:
        response = self.client.get_bucket_versioning(Bucket=bucket)
        return response.get("Status", "Disabled")

    def _encryption(self, bucket: str) -> str:
        try:
            response = self.client.get_bucket_encryption(Bucket=bucket)
        except ClientError as e:
            if client_error_code(e) == "ServerSideEncryptionConfigurationNotFoundError":
                return "none"
            raise
        rules = response.get("ServerSideEncryptionConfiguration", {}).get("Rules", [])
        algorithms = [
            rule.get("ApplyServerSideEncryptionByDefault", {}).get("SSEAlgorithm", "")
            for rule in rules
        ]
        return ",".join(a for a in algorithms if a) or "none"

    def _public_access(self, bucket: str) -> Dict[str, bool]:
        try:
            response = self.client.get_public_access_block(Bucket=bucket)
        except ClientError as e:
            if client_error_code(e) == "NoSuchPublicAccessBlockConfiguration":
                return {}
            raise
        return dict(response.get("PublicAccessBlockConfiguration", {}))
