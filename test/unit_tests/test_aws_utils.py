# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"). You
# may not use this file except in compliance with the License. A copy of
# the License is located at
#
#     http://aws.amazon.com/apache2.0/
#
# or in the "license" file accompanying this file. This file is
# distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF
# ANY KIND, either express or implied. See the License for the specific
# language governing permissions and limitations under the License.
"""Unit tests for the AWS helpers using mocked boto3 clients."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from kms_module_test.aws_utils import (
    AwsCredentialsError,
    find_kms_aliases,
    get_aws_client,
    get_caller_identity,
    has_aws_credentials,
)

SLEEP = "kms_module_test.retry.time.sleep"

CALLER_IDENTITY = {
    "UserId": "AIDAEXAMPLE",
    "Account": "123456789012",
    "Arn": "arn:aws:iam::123456789012:user/ci",
}


def _client_error(code: str, operation: str = "TestOperation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} message"}}, operation)


class TestCallerIdentity:
    """Tests for get_caller_identity and has_aws_credentials."""

    @pytest.fixture
    def mock_sts_client(self):
        """Create a mock STS client."""
        return MagicMock()

    def test_success(self, mock_sts_client):
        mock_sts_client.get_caller_identity.return_value = CALLER_IDENTITY

        assert get_caller_identity(mock_sts_client) == CALLER_IDENTITY

    def test_no_credentials(self, mock_sts_client):
        mock_sts_client.get_caller_identity.side_effect = NoCredentialsError()

        with pytest.raises(AwsCredentialsError) as exc_info:
            get_caller_identity(mock_sts_client)

        assert "aws configure" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, NoCredentialsError)

    def test_rejected_credentials(self, mock_sts_client):
        mock_sts_client.get_caller_identity.side_effect = _client_error(
            "InvalidClientTokenId", "GetCallerIdentity"
        )

        with pytest.raises(AwsCredentialsError) as exc_info:
            get_caller_identity(mock_sts_client)

        assert "InvalidClientTokenId" in str(exc_info.value)
        mock_sts_client.get_caller_identity.assert_called_once()

    def test_throttling_is_retried(self, mock_sts_client):
        mock_sts_client.get_caller_identity.side_effect = [
            _client_error("Throttling"),
            CALLER_IDENTITY,
        ]

        with patch(SLEEP) as mock_sleep:
            assert get_caller_identity(mock_sts_client) == CALLER_IDENTITY

        assert mock_sts_client.get_caller_identity.call_count == 2
        mock_sleep.assert_called_once()

    def test_other_client_errors_propagate(self, mock_sts_client):
        mock_sts_client.get_caller_identity.side_effect = _client_error("RegionDisabledException")

        with pytest.raises(ClientError):
            get_caller_identity(mock_sts_client)

    def test_has_aws_credentials(self):
        mock_client = MagicMock()
        mock_client.get_caller_identity.return_value = CALLER_IDENTITY

        with patch(
            "kms_module_test.aws_utils.get_aws_client", return_value=mock_client
        ) as mock_factory:
            assert has_aws_credentials("us-west-2") is True

        mock_factory.assert_called_once_with("sts", "us-west-2")

    def test_has_aws_credentials_false(self):
        mock_client = MagicMock()
        mock_client.get_caller_identity.side_effect = NoCredentialsError()

        with patch("kms_module_test.aws_utils.get_aws_client", return_value=mock_client):
            assert has_aws_credentials() is False

    def test_client_region(self):
        with patch("kms_module_test.aws_utils.boto3.client") as mock_boto_client:
            get_aws_client("kms", "eu-central-1")
            get_aws_client("sts")

        assert mock_boto_client.call_args_list[0].kwargs == {"region_name": "eu-central-1"}
        assert mock_boto_client.call_args_list[1].args == ("sts",)


class TestFindKmsAliases:
    """Tests for find_kms_aliases."""

    def test_filters_by_prefix(self):
        mock_kms_client = MagicMock()
        mock_kms_client.list_aliases.return_value = {
            "Aliases": [
                {"AliasName": "alias/aws/s3"},
                {"AliasName": "alias/comp-abc1230000-kms"},
                {"AliasName": "alias/def-zzz9990000-kms"},
            ],
            "Truncated": False,
        }

        assert find_kms_aliases(mock_kms_client, "comp-abc1230000") == [
            "alias/comp-abc1230000-kms"
        ]

    def test_paginates(self):
        mock_kms_client = MagicMock()
        mock_kms_client.list_aliases.side_effect = [
            {
                "Aliases": [{"AliasName": "alias/def-abc1230000"}],
                "Truncated": True,
                "NextMarker": "page-2",
            },
            {
                "Aliases": [{"AliasName": "alias/def-abc1230000-alarms"}],
                "Truncated": False,
            },
        ]

        result = find_kms_aliases(mock_kms_client, "def-abc1230000")

        assert result == ["alias/def-abc1230000", "alias/def-abc1230000-alarms"]
        assert mock_kms_client.list_aliases.call_args_list[1].kwargs == {"Marker": "page-2"}

    def test_none_found(self):
        mock_kms_client = MagicMock()
        mock_kms_client.list_aliases.return_value = {"Aliases": []}

        assert find_kms_aliases(mock_kms_client, "comp-abc1230000") == []
