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
Harness settings.

Settings are read from an optional YAML file and then overridden by
environment variables, so a CI job can point the harness at a different
Terraform binary or module checkout without editing files.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "KMS_MODULE_TEST_CONFIG"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "TERRAFORM_BINARY": "terraform_binary",
    "KMS_MODULE_ROOT": "module_root",
    "AWS_DEFAULT_REGION": "aws_region",
    "AWS_REGION": "aws_region",
    "KMS_MODULE_TEST_LOG_LEVEL": "log_level",
}

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class SettingsError(Exception):
    """Raised when the harness settings cannot be loaded."""

    pass


class HarnessSettings(BaseModel):
    """Settings shared by every scenario in a test run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    terraform_binary: str = Field(
        default="terraform",
        min_length=1,
        description="Terraform executable name or path",
    )
    module_root: Path = Field(
        default=Path("."),
        description="Checkout of the KMS module containing the examples directory",
    )
    aws_region: Optional[str] = Field(
        default=None,
        description="AWS region; falls back to the boto3 default chain when unset",
    )
    time_between_retries: float = Field(
        default=5.0,
        ge=0,
        description="Base delay in seconds between retries of a Terraform command",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the harness loggers",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: '{v}'. "
                f"Expected one of: {sorted(VALID_LOG_LEVELS)}"
            )
        return level

    def example_dir(self, name: str) -> Path:
        """Return the directory of the named module example."""
        return self.module_root / "examples" / name


def _load_config_file(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        raise SettingsError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in configuration file: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise SettingsError(
            f"Configuration file {config_path} must contain a mapping, "
            f"got {type(config).__name__}"
        )
    return config


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HarnessSettings:
    """
    Load harness settings from YAML and the environment.

    Args:
        config_path: Path to a YAML settings file. If None, the path in
            KMS_MODULE_TEST_CONFIG is used when set; otherwise only
            defaults and environment variables apply.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        The validated settings.

    Raises:
        SettingsError: If the file is missing or invalid, or a value fails
            validation.
    """
    if environ is None:
        environ = os.environ

    config_path = config_path or environ.get(CONFIG_PATH_ENV_VAR)
    values: Dict[str, Any] = {}
    if config_path:
        logger.debug(f"Loading harness settings from {config_path}")
        values.update(_load_config_file(config_path))

    # AWS_REGION is listed after AWS_DEFAULT_REGION so it wins
    for env_var, field_name in ENV_OVERRIDES.items():
        if environ.get(env_var):
            values[field_name] = environ[env_var]

    try:
        return HarnessSettings(**values)
    except ValidationError as e:
        raise SettingsError(f"Invalid harness settings: {e}") from e
