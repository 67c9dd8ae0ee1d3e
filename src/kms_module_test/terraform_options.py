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
Terraform invocation options for the KMS module tests.

This module defines the options model handed to every Terraform command,
the table of retryable Terraform errors, the base options builder used by
each scenario, and the generator for per-run resource name prefixes.
"""

import secrets
import string
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kms_module_test.settings import HarnessSettings

DEFAULT_MAX_RETRIES = 3

RANDOM_ID_LENGTH = 10
UNIQUE_ID_LENGTH = 6
UNIQUE_ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase

# Substring of a failed command's output -> reason reported when retrying
RETRYABLE_TERRAFORM_ERRORS: Mapping[str, str] = MappingProxyType(
    {
        "RequestError: send request failed": "Intermittent AWS API error",
        "NoCredentialProviders: no valid providers in chain": "AWS credentials issue",
        "dial tcp: lookup": "DNS resolution issue",
        "timeout while waiting for plugin to start": "Plugin timeout",
        "connection reset by peer": "Network connectivity issue",
        "TooManyRequestsException": "AWS throttling",
        "ThrottlingException": "AWS throttling",
        "RequestLimitExceeded": "AWS throttling",
        "ServiceUnavailableException": "AWS service temporarily unavailable",
        "InternalServerError": "AWS internal error",
        "InvalidParameterException": "AWS parameter validation error",
        "ValidationException": "AWS validation error",
        "UnauthorizedOperation": "AWS authorization error",
        "InvalidUserID.NotFound": "AWS user/role not found",
        "AccessDenied": "AWS access denied",
        "Throttling": "AWS throttling",
        "RequestTimeout": "AWS request timeout",
        "PendingVerification": "AWS account verification pending",
        "OptInRequired": "AWS service opt-in required",
        "InsufficientInstanceCapacity": "AWS capacity issue",
        "InvalidAvailabilityZone": "AWS AZ issue",
        "InvalidSubnetID.NotFound": "AWS subnet not found",
        "InvalidVpcID.NotFound": "AWS VPC not found",
        "InvalidGroupId.NotFound": "AWS security group not found",
        "DryRunOperation": "AWS dry run operation",
        "RequestExpired": "AWS request expired",
        "SignatureDoesNotMatch": "AWS signature mismatch",
        "NetworkInterfaceInUse": "AWS network interface in use",
        "InvalidNetworkInterfaceID.NotFound": "AWS network interface not found",
        "InvalidInstanceID.NotFound": "AWS instance not found",
        "IncorrectInstanceState": "AWS instance state issue",
        "InvalidSnapshot.NotFound": "AWS snapshot not found",
        "InvalidVolume.NotFound": "AWS volume not found",
        "VolumeInUse": "AWS volume in use",
        "IncorrectState": "AWS resource state issue",
        "InvalidKeyPair.NotFound": "AWS key pair not found",
        "InvalidAMIID.NotFound": "AWS AMI not found",
        "InvalidAMIID.Malformed": "AWS AMI ID malformed",
        "InvalidLaunchTemplateName.NotFound": "AWS launch template not found",
        "InvalidAutoScalingGroupName": "AWS ASG name invalid",
        "ValidationError": "AWS validation error",
        "AlreadyExistsException": "AWS resource already exists",
        "ResourceNotFoundException": "AWS resource not found",
        "ResourceInUseException": "AWS resource in use",
        "InvalidRequestException": "AWS invalid request",
        "MalformedPolicyDocumentException": "AWS policy document malformed",
        "EntityAlreadyExistsException": "AWS IAM entity already exists",
        "NoSuchEntityException": "AWS IAM entity not found",
        "DeleteConflictException": "AWS delete conflict",
        "LimitExceededException": "AWS limit exceeded",
        "PolicyVersionLimitExceededException": "AWS policy version limit exceeded",
        "UnmodifiableEntityException": "AWS entity unmodifiable",
        "ServiceFailureException": "AWS service failure",
        "ConcurrentModificationException": "AWS concurrent modification",
        "InvalidInputException": "AWS invalid input",
        "KeyUsageNotPermittedException": "AWS KMS key usage not permitted",
        "KMSInvalidStateException": "AWS KMS invalid state",
        "NotFoundException": "AWS KMS key not found",
        "UnsupportedOperationException": "AWS KMS unsupported operation",
        "DisabledException": "AWS KMS key disabled",
        "InvalidAliasNameException": "AWS KMS alias name invalid",
    }
)


class TerraformOptions(BaseModel):
    """
    Options for one Terraform invocation.

    Instances are immutable; use ``with_vars`` and ``with_env_vars`` to
    derive scenario specific options from a base.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    terraform_dir: str = Field(
        ...,
        min_length=1,
        description="Directory holding the Terraform configuration under test",
    )
    terraform_binary: str = Field(
        default="terraform",
        min_length=1,
        description="Terraform executable name or path",
    )
    vars: Dict[str, Any] = Field(
        default_factory=dict,
        description="Input variables passed with -var",
    )
    env_vars: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the Terraform process",
    )
    no_color: bool = Field(
        default=False,
        description="Pass -no-color to commands that accept it",
    )
    retryable_terraform_errors: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Output substrings that mark a failure as retryable",
    )
    max_retries: int = Field(
        default=0,
        ge=0,
        description="Number of retries for retryable failures",
    )
    time_between_retries: float = Field(
        default=5.0,
        ge=0,
        description="Base delay in seconds between retries",
    )

    @field_validator("vars")
    @classmethod
    def validate_var_names(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """Reject empty variable names, which Terraform cannot accept."""
        for name in v:
            if not name:
                raise ValueError("Terraform variable names must be non-empty")
        return v

    @field_validator("retryable_terraform_errors")
    @classmethod
    def freeze_retryable_errors(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Store the table as a read-only copy owned by these options."""
        return MappingProxyType(dict(v))

    def with_vars(self, vars: Dict[str, Any]) -> "TerraformOptions":
        """Return a copy of these options with ``vars`` overlaid."""
        return self.model_copy(update={"vars": {**self.vars, **vars}})

    def with_env_vars(self, env_vars: Dict[str, str]) -> "TerraformOptions":
        """Return a copy of these options with ``env_vars`` overlaid."""
        return self.model_copy(update={"env_vars": {**self.env_vars, **env_vars}})


def get_base_terraform_options(
    terraform_dir: str,
    settings: Optional[HarnessSettings] = None,
) -> TerraformOptions:
    """
    Build the options every scenario starts from.

    Color output is disabled, retries are fixed at three and the full
    retryable error table is attached. The directory is not checked here;
    a missing directory surfaces when a command is run.

    Args:
        terraform_dir: Directory holding the Terraform configuration.
        settings: Harness settings supplying the binary and retry delay.

    Returns:
        Options with no variables and no extra environment.
    """
    settings = settings or HarnessSettings()
    return TerraformOptions(
        terraform_dir=str(terraform_dir),
        terraform_binary=settings.terraform_binary,
        no_color=True,
        retryable_terraform_errors=RETRYABLE_TERRAFORM_ERRORS,
        max_retries=DEFAULT_MAX_RETRIES,
        time_between_retries=settings.time_between_retries,
    )


def unique_id() -> str:
    """Return a short random base-62 identifier."""
    return "".join(secrets.choice(UNIQUE_ID_ALPHABET) for _ in range(UNIQUE_ID_LENGTH))


def generate_test_name_prefix(prefix: str) -> str:
    """
    Generate a unique test name prefix with consistent length.

    Args:
        prefix: Scenario label placed before the random part.

    Returns:
        ``<prefix>-<id>`` where the id is exactly RANDOM_ID_LENGTH lowercase
        characters, truncated or padded with zeros.

    Raises:
        ValueError: If the prefix is empty.
    """
    if not prefix:
        raise ValueError("Name prefix label must be non-empty")

    random_id = unique_id().lower()
    if len(random_id) > RANDOM_ID_LENGTH:
        random_id = random_id[:RANDOM_ID_LENGTH]
    else:
        # Pad with zeros if too short
        random_id = random_id + "0" * (RANDOM_ID_LENGTH - len(random_id))
    return f"{prefix}-{random_id}"
