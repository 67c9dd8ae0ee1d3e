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
"""Shared fixtures for the KMS module test harness."""

import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from kms_module_test.aws_utils import get_aws_client, has_aws_credentials
from kms_module_test.settings import HarnessSettings, load_settings
from kms_module_test.utils import setup_logger


@pytest.fixture(scope="session")
def harness_settings() -> HarnessSettings:
    """Settings loaded from KMS_MODULE_TEST_CONFIG and the environment."""
    settings = load_settings()
    setup_logger("kms_module_test", settings.log_level)
    return settings


@pytest.fixture(scope="session")
def integration_environment(harness_settings):
    """Skip integration scenarios when Terraform or AWS is unavailable."""
    if shutil.which(harness_settings.terraform_binary) is None:
        pytest.skip(f"Terraform CLI '{harness_settings.terraform_binary}' is not installed")
    if not has_aws_credentials(harness_settings.aws_region):
        pytest.skip("AWS credentials are not configured")
    return harness_settings


@pytest.fixture(scope="session")
def example_dir(integration_environment) -> Callable[[str], Path]:
    """Return a resolver for module example directories."""

    def _resolve(name: str) -> Path:
        path = integration_environment.example_dir(name).resolve()
        if not any(path.glob("*.tf")):
            pytest.skip(f"Terraform example not found: {path}")
        return path

    return _resolve


@pytest.fixture(scope="session")
def kms_client(integration_environment):
    """KMS client used to check for leaked aliases."""
    return get_aws_client("kms", integration_environment.aws_region)


@pytest.fixture
def completed_process() -> Callable[..., subprocess.CompletedProcess]:
    """Factory for fake Terraform process results."""

    def _make(returncode: int = 0, stdout: str = "") -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)

    return _make
