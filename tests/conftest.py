"""
Pytest configuration and shared fixtures for testing.
"""

import os

import boto3
import pytest
from moto import mock_aws

from tag_inspector.core.aws_client import AWSClient
from tag_inspector.core.policy_loader import load_policy


# Policy used by the end-to-end bucket scenarios.
SCENARIO_POLICY = """
version: "1.0"
global:
  enabled: true
  batch_size: 4
  tag_criteria:
    required_tags: [Environment, Owner]
    forbidden_tags: [Temporary]
resources:
  s3:
    enabled: true
    excluded_resources:
      - pattern: "^sandbox-.*$"
        reason: ephemeral
  ec2:
    enabled: false
compliance_levels:
  high:
    required_tags: [CostCenter]
"""


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def mock_aws_environment(aws_credentials):
    """Create a mocked AWS environment."""
    with mock_aws():
        yield


@pytest.fixture
def aws_client(mock_aws_environment):
    """Create an AWSClient instance for testing."""
    return AWSClient(region="us-east-1")


@pytest.fixture
def s3_client(mock_aws_environment):
    """Create a boto3 S3 client for setting up test buckets."""
    return boto3.client("s3", region_name="us-east-1")


@pytest.fixture
def ec2_client(mock_aws_environment):
    """Create a boto3 EC2 client for setting up test resources."""
    return boto3.client("ec2", region_name="us-east-1")


@pytest.fixture
def make_bucket(s3_client):
    """Factory creating a bucket with optional tags."""

    def _make_bucket(name, tags=None):
        s3_client.create_bucket(Bucket=name)
        if tags:
            s3_client.put_bucket_tagging(
                Bucket=name,
                Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in tags.items()]},
            )
        return name

    return _make_bucket


@pytest.fixture
def make_instance(ec2_client):
    """Factory launching an EC2 instance with optional tags."""

    image_id = ec2_client.describe_images(Owners=["amazon"])["Images"][0]["ImageId"]

    def _make_instance(tags=None):
        kwargs = {"ImageId": image_id, "MinCount": 1, "MaxCount": 1}
        if tags:
            kwargs["TagSpecifications"] = [
                {
                    "ResourceType": "instance",
                    "Tags": [{"Key": k, "Value": v} for k, v in tags.items()],
                }
            ]
        response = ec2_client.run_instances(**kwargs)
        return response["Instances"][0]["InstanceId"]

    return _make_instance


@pytest.fixture
def scenario_policy():
    """The bucket scenario policy."""
    return load_policy(SCENARIO_POLICY, source="scenario.yaml")


@pytest.fixture
def policy_file(tmp_path):
    """Write the scenario policy to a temporary file."""
    path = tmp_path / "policy.yaml"
    path.write_text(SCENARIO_POLICY, encoding="utf-8")
    return str(path)
