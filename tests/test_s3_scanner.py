"""
Tests for the S3 scanner.
"""

from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from tag_inspector.core.exceptions import ResourceFetchError, TagFetchError
from tag_inspector.scanners.s3_scanner import RESOURCE_TYPE, S3Scanner, normalize_location


class TestNormalizeLocation:
    """Tests for location constraint mapping."""

    @pytest.mark.parametrize(
        "constraint, region",
        [
            (None, "us-east-1"),
            ("", "us-east-1"),
            ("EU", "eu-west-1"),
            ("eu-central-1", "eu-central-1"),
        ],
    )
    def test_normalize_location(self, constraint, region):
        """Test legacy and regular location constraints."""
        assert normalize_location(constraint) == region


class TestS3Scanner:
    """Tests for S3Scanner class."""

    def test_resource_type(self, aws_client, scenario_policy):
        """Test scanner resource type and service key."""
        scanner = S3Scanner(aws_client, scenario_policy)

        assert scanner.get_resource_type() == "s3:bucket"
        assert scanner.get_service_key() == "s3"
        assert scanner.batch_size == 4

    def test_batch_size_override(self, aws_client, scenario_policy):
        """Test that an explicit batch size wins and must be positive."""
        assert S3Scanner(aws_client, scenario_policy, batch_size=2).batch_size == 2

        with pytest.raises(ValueError):
            S3Scanner(aws_client, scenario_policy, batch_size=0)

    def test_list_resources(self, aws_client, scenario_policy, make_bucket):
        """Test bucket listing."""
        make_bucket("alpha")
        make_bucket("beta")

        resources = S3Scanner(aws_client, scenario_policy).list_resources()

        assert sorted(r.resource_id for r in resources) == ["alpha", "beta"]
        alpha = next(r for r in resources if r.resource_id == "alpha")
        assert alpha.resource_type == RESOURCE_TYPE
        assert alpha.arn == "arn:aws:s3:::alpha"
        assert "creation_date" in alpha.metadata

    def test_list_resources_empty(self, aws_client, scenario_policy):
        """Test listing with no buckets."""
        assert S3Scanner(aws_client, scenario_policy).list_resources() == []

    def test_list_failure_is_resource_fetch_error(self, aws_client, scenario_policy):
        """Test that a ListBuckets failure aborts the listing."""
        error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListBuckets"
        )
        scanner = S3Scanner(aws_client, scenario_policy)

        with patch.object(scanner.client, "list_buckets", side_effect=error):
            with pytest.raises(ResourceFetchError) as exc_info:
                scanner.list_resources()

        assert exc_info.value.details["error_code"] == "AccessDenied"

    def test_scan_resource_with_tags(self, aws_client, scenario_policy, make_bucket):
        """Test a tagged bucket is evaluated against the criteria."""
        make_bucket("tagged", {"Environment": "prod", "Owner": "team-a"})
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]

        result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))

        assert result.is_compliant
        assert result.tags == {"Environment": "prod", "Owner": "team-a"}
        assert result.region == "us-east-1"
        assert result.compliance_tag == "compliant"

    def test_bucket_without_tag_set(self, aws_client, scenario_policy, make_bucket):
        """Test that NoSuchTagSet means no tags rather than an error."""
        make_bucket("bare")
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]

        assert scanner.fetch_tags(resource) == {}
        result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))
        assert list(result.issues) == ["Resource has no tags"]

    def test_bucket_region_resolved(self, aws_client, scenario_policy, s3_client):
        """Test that a bucket's region comes from its location constraint."""
        s3_client.create_bucket(
            Bucket="eu-bucket",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
        )
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]

        assert scanner.locate(resource).region == "eu-west-1"

    def test_tag_fetch_access_denied(self, aws_client, scenario_policy, make_bucket):
        """Test that other tag errors raise TagFetchError for that bucket."""
        make_bucket("locked")
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]
        error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetBucketTagging"
        )

        with patch.object(scanner.client, "get_bucket_tagging", side_effect=error):
            with pytest.raises(TagFetchError) as exc_info:
                scanner.fetch_tags(resource)

        assert exc_info.value.resource_id == "locked"
        assert exc_info.value.details["error_code"] == "AccessDenied"

    def test_metadata_not_collected_by_default(self, aws_client, scenario_policy, make_bucket):
        """Test that only listing metadata is kept without collect_metadata."""
        make_bucket("plain", {"Environment": "dev", "Owner": "me"})
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]

        result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))

        assert set(result.metadata) == {"creation_date"}

    def test_collect_metadata(self, aws_client, scenario_policy, make_bucket, s3_client):
        """Test versioning, encryption and public access collection."""
        make_bucket("detailed", {"Environment": "dev", "Owner": "me"})
        s3_client.put_bucket_versioning(
            Bucket="detailed", VersioningConfiguration={"Status": "Enabled"}
        )
        s3_client.put_bucket_encryption(
            Bucket="detailed",
            ServerSideEncryptionConfiguration={
                "Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}]
            },
        )
        s3_client.put_public_access_block(
            Bucket="detailed",
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": True,
                "IgnorePublicAcls": True,
                "BlockPublicPolicy": True,
                "RestrictPublicBuckets": True,
            },
        )
        scanner = S3Scanner(aws_client, scenario_policy, collect_metadata=True)
        resource = scanner.list_resources()[0]

        result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))

        assert result.metadata["versioning"] == "Enabled"
        assert result.metadata["encryption"] == "AES256"
        assert result.metadata["public_access"]["BlockPublicAcls"] is True

    def test_metadata_skips_connection_errors(self, aws_client, scenario_policy, make_bucket):
        """Test that a transport error on optional metadata keeps the result."""
        make_bucket("flaky", {"Environment": "dev", "Owner": "me"})
        scanner = S3Scanner(aws_client, scenario_policy, collect_metadata=True)
        resource = scanner.list_resources()[0]
        error = EndpointConnectionError(endpoint_url="https://s3.amazonaws.com")

        with patch.object(scanner.client, "get_bucket_versioning", side_effect=error):
            result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))

        assert "versioning" not in result.metadata
        assert "public_access" in result.metadata
        assert result.tags == {"Environment": "dev", "Owner": "me"}

    def test_compliance_level_tag_applies_level(self, aws_client, scenario_policy, make_bucket):
        """Test that a ComplianceLevel tag pulls in that level's rules."""
        make_bucket(
            "critical",
            {"Environment": "prod", "Owner": "team-a", "ComplianceLevel": "high"},
        )
        scanner = S3Scanner(aws_client, scenario_policy)
        resource = scanner.list_resources()[0]

        result = scanner.scan_resource(resource, scenario_policy.effective_criteria("s3"))

        assert list(result.issues) == ["Missing required tag: CostCenter"]

    def test_sequential_scan_skips_excluded(self, aws_client, scenario_policy, make_bucket):
        """Test that scan() skips excluded buckets."""
        make_bucket("sandbox-1")
        make_bucket("prod-data", {"Environment": "prod", "Owner": "a"})

        results = S3Scanner(aws_client, scenario_policy).scan()

        assert [r.resource_id for r in results] == ["prod-data"]
