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
"""Test harness for the KMS key Terraform module."""

from kms_module_test.terraform_options import (
    RETRYABLE_TERRAFORM_ERRORS,
    TerraformOptions,
    generate_test_name_prefix,
    get_base_terraform_options,
)
from kms_module_test.terraform_utils import (
    ResourceCount,
    destroy,
    get_resource_count,
    init,
    init_and_plan,
    plan,
    terraform_destroy_on_exit,
)

__all__ = [
    "RETRYABLE_TERRAFORM_ERRORS",
    "ResourceCount",
    "TerraformOptions",
    "destroy",
    "generate_test_name_prefix",
    "get_base_terraform_options",
    "get_resource_count",
    "init",
    "init_and_plan",
    "plan",
    "terraform_destroy_on_exit",
]
