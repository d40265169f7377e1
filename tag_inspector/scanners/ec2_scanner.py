"""
EC2 Instance Scanner Module
===========================

Checks EC2 instance tags against the compliance policy, one region at a
time. Terminated instances are skipped.

Example
-------
>>> from tag_inspector.core import AWSClient, load_policy_file
>>> from tag_inspector.scanners import EC2InstanceScanner
>>>
>>> policy = load_policy_file("policy.yaml")
>>> scanner = EC2InstanceScanner(AWSClient(region="eu-west-1"), policy)
>>> results = scanner.scan()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from tag_inspector.core.base_scanner import BaseScanner, Resource, client_error_code
from tag_inspector.core.exceptions import (
    CredentialsError,
    ResourceFetchError,
    TagFetchError,
)
from tag_inspector.core.registry import ServiceKind, register_service

# Module logger
logger = logging.getLogger(__name__)

RESOURCE_TYPE = "ec2:instance"

SKIPPED_STATES = frozenset({"terminated"})


@register_service(ServiceKind.EC2, "ec2")
class EC2InstanceScanner(BaseScanner):
    """
    Scanner for EC2 instance tag compliance.

    Metadata carries ``instance_type``, ``state`` and ``launch_time`` from
    the listing, so no extra calls are needed per instance.
    """

    def get_resource_type(self) -> str:
        return RESOURCE_TYPE

    def get_service_key(self) -> str:
        return ServiceKind.EC2.value

    def list_resources(self) -> List[Resource]:
        """
        List the region's instances, skipping terminated ones.

        Raises
        ------
        CredentialsError
            If no credentials are available.
        ResourceFetchError
            If DescribeInstances fails.
        """
        resources: List[Resource] = []
        paginator = self.client.get_paginator("describe_instances")

        try:
            for page in paginator.paginate():
                for reservation in page.get("Reservations", []):
                    owner = reservation.get("OwnerId", "")
                    for instance in reservation.get("Instances", []):
                        state = instance.get("State", {}).get("Name", "unknown")
                        if state in SKIPPED_STATES:
                            continue
                        resources.append(self._to_resource(instance, owner, state))

        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found", service="ec2")
        except (ClientError, BotoCoreError) as e:
            raise ResourceFetchError(
                f"Failed to list EC2 instances in {self.region}: {e}",
                resource_type=RESOURCE_TYPE,
                region=self.region,
                details={"error_code": client_error_code(e)},
            )

        logger.debug(f"Found {len(resources)} EC2 instances in {self.region}")
        return resources

    def _to_resource(self, instance: Dict[str, Any], owner: str, state: str) -> Resource:
        instance_id = instance["InstanceId"]
        launch_time = instance.get("LaunchTime")
        metadata: Dict[str, Any] = {
            "instance_type": instance.get("InstanceType", ""),
            "state": state,
        }
        if launch_time is not None:
            metadata["launch_time"] = (
                launch_time.isoformat() if hasattr(launch_time, "isoformat") else str(launch_time)
            )

        return Resource(
            resource_type=RESOURCE_TYPE,
            resource_id=instance_id,
            arn=f"arn:aws:ec2:{self.region}:{owner}:instance/{instance_id}",
            region=self.region,
            metadata=metadata,
        )

    def fetch_tags(self, resource: Resource) -> Dict[str, str]:
        """
        Read the instance's tags with DescribeTags.

        Raises
        ------
        TagFetchError
            If DescribeTags fails.
        """
        tags: Dict[str, str] = {}
        paginator = self.client.get_paginator("describe_tags")

        try:
            for page in paginator.paginate(
                Filters=[{"Name": "resource-id", "Values": [resource.resource_id]}]
            ):
                for tag in page.get("Tags", []):
                    tags[tag["Key"]] = tag.get("Value", "")

        except NoCredentialsError:
            raise CredentialsError("AWS credentials not found", service="ec2")
        except (ClientError, BotoCoreError) as e:
            raise TagFetchError(
                f"Failed to get tags for instance {resource.resource_id}: {e}",
                resource_id=resource.resource_id,
                resource_type=RESOURCE_TYPE,
                region=resource.region,
                details={"error_code": client_error_code(e)},
            )

        return tags
