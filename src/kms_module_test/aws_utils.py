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
"""
AWS helpers for the KMS module tests.

Terraform picks up credentials and region from the environment on its own.
These helpers let the harness check for credentials up front, so scenarios
can be skipped instead of failing, and look for KMS aliases left behind by
a run after cleanup.
"""

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from kms_module_test.retry import RetriesExhausted, retry_with_backoff

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = {
    "ThrottlingException",
    "Throttling",
    "ServiceUnavailable",
    "InternalServerError",
    "KMSInternalException",
}

CREDENTIAL_ERROR_CODES = {
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "ExpiredTokenException",
    "AccessDenied",
}

# Error messages for user-friendly output
ERROR_MESSAGES = {
    "NoCredentialsError": (
        "AWS credentials not found or invalid. "
        "Run 'aws configure' or set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables."
    ),
    "InvalidCredentials": "AWS credentials were rejected: {code} - {message}",
    "RetriesExhausted": "AWS API still failing after retries: {reason}",
}


class AwsCredentialsError(Exception):
    """Exception raised when AWS credentials are missing or rejected."""

    pass


def _is_retryable_error(error: BaseException) -> Optional[str]:
    """
    Check if a ClientError is retryable.

    Args:
        error: The error to check.

    Returns:
        The error code if the error is retryable, None otherwise.
    """
    if not isinstance(error, ClientError):
        return None
    error_code = error.response.get("Error", {}).get("Code", "")
    return error_code if error_code in RETRYABLE_ERROR_CODES else None


def get_aws_client(service: str, region: Optional[str] = None) -> BaseClient:
    """
    Create a boto3 client with optional region override.

    Args:
        service: AWS service name, e.g. "sts" or "kms".
        region: AWS region. If None, uses default from environment/config.

    Returns:
        boto3 client.
    """
    if region:
        return boto3.client(service, region_name=region)
    return boto3.client(service)


def get_caller_identity(sts_client: BaseClient) -> Dict[str, Any]:
    """
    Return the STS caller identity for the configured credentials.

    Args:
        sts_client: Boto3 STS client.

    Returns:
        The GetCallerIdentity response.

    Raises:
        AwsCredentialsError: If credentials are missing or rejected.
        ClientError: If the API call fails for another reason.
    """

    def _get_identity():
        return sts_client.get_caller_identity()

    try:
        response = retry_with_backoff(_get_identity, _is_retryable_error)
    except NoCredentialsError as e:
        raise AwsCredentialsError(ERROR_MESSAGES["NoCredentialsError"]) from e
    except RetriesExhausted as e:
        raise AwsCredentialsError(
            ERROR_MESSAGES["RetriesExhausted"].format(reason=e.reason)
        ) from e.last_error
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "")
        error_message = e.response.get("Error", {}).get("Message", "")
        if error_code in CREDENTIAL_ERROR_CODES:
            raise AwsCredentialsError(
                ERROR_MESSAGES["InvalidCredentials"].format(
                    code=error_code, message=error_message
                )
            ) from e
        raise

    logger.debug(f"Running as {response.get('Arn', 'unknown')}")
    return response


def has_aws_credentials(region: Optional[str] = None) -> bool:
    """
    Check whether usable AWS credentials are configured.

    Args:
        region: AWS region used for the STS call.

    Returns:
        True if STS accepts the credentials, False otherwise.
    """
    try:
        get_caller_identity(get_aws_client("sts", region))
        return True
    except (AwsCredentialsError, ClientError, BotoCoreError) as e:
        logger.info(f"AWS credentials unavailable: {e}")
        return False


def find_kms_aliases(kms_client: BaseClient, name_prefix: str) -> List[str]:
    """
    Find KMS aliases whose name contains the given prefix.

    Args:
        kms_client: Boto3 KMS client.
        name_prefix: Name prefix generated for a test run.

    Returns:
        Matching alias names, e.g. ``["alias/comp-abc1230000"]``.

    Raises:
        ClientError: If the API call fails.
        RetriesExhausted: If throttling persists after all retries.
    """
    logger.debug(f"Looking for KMS aliases containing: {name_prefix}")

    def _list_page(marker: Optional[str]):
        params: Dict[str, Any] = {}
        if marker:
            params["Marker"] = marker
        return retry_with_backoff(
            lambda: kms_client.list_aliases(**params), _is_retryable_error
        )

    aliases: List[str] = []
    marker = None
    while True:
        response = _list_page(marker)
        for alias in response.get("Aliases", []):
            alias_name = alias.get("AliasName", "")
            if name_prefix in alias_name:
                aliases.append(alias_name)

        if not response.get("Truncated"):
            break
        marker = response.get("NextMarker")

    if aliases:
        logger.warning(f"Found KMS aliases for {name_prefix}: {aliases}")
    return aliases
