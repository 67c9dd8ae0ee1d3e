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
Wrappers around the Terraform CLI for the KMS module tests.

This module runs ``terraform init``, ``plan`` and ``destroy`` against a
configuration directory using TerraformOptions, retries failures whose
output matches the retryable error table, and parses the resource count
summary out of plan output.
"""

import json
import logging
import os
import re
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from kms_module_test.retry import RetriesExhausted, retry_with_backoff
from kms_module_test.terraform_options import TerraformOptions

logger = logging.getLogger(__name__)

# Plan exit codes with -detailed-exitcode
PLAN_EXIT_CODE_NO_CHANGES = 0
PLAN_EXIT_CODE_ERROR = 1
PLAN_EXIT_CODE_CHANGES = 2

# Subcommands that accept -no-color
NO_COLOR_COMMANDS = {"init", "plan", "apply", "destroy", "output", "show", "validate"}

PLAN_SUMMARY_PATTERN = re.compile(
    r"Plan: (\d+) to add, (\d+) to change, (\d+) to destroy\."
)
APPLY_SUMMARY_PATTERN = re.compile(
    r"Apply complete! Resources: (\d+) added, (\d+) changed, (\d+) destroyed\."
)
DESTROY_SUMMARY_PATTERN = re.compile(r"Destroy complete! Resources: (\d+) destroyed\.")
NO_CHANGES_MARKER = "No changes."


class TerraformError(Exception):
    """Base exception for Terraform operations."""

    pass


class TerraformSetupError(TerraformError):
    """Exception raised when a command cannot be started at all."""

    pass


class TerraformCommandError(TerraformError):
    """Exception raised when a Terraform command exits with an error."""

    def __init__(
        self,
        command: List[str],
        return_code: int,
        output: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message
            or f"Command '{' '.join(command)}' failed with exit code {return_code}:\n{output}"
        )
        self.command = command
        self.return_code = return_code
        self.output = output


class MaxRetriesExceededError(TerraformCommandError):
    """Exception raised when a retryable failure persists after all retries."""

    def __init__(self, reason: str, attempts: int, last_error: TerraformCommandError):
        super().__init__(
            last_error.command,
            last_error.return_code,
            last_error.output,
            message=(
                f"{reason}: '{' '.join(last_error.command)}' still failing after "
                f"{attempts} attempts:\n{last_error.output}"
            ),
        )
        self.reason = reason
        self.attempts = attempts


class ResourceCountParseError(TerraformError):
    """Exception raised when no resource summary can be found in output."""

    pass


@dataclass(frozen=True)
class ResourceCount:
    """Resource counts reported by a plan, apply or destroy."""

    add: int
    change: int
    destroy: int

    def summary(self) -> str:
        """Render the counts the way Terraform prints them in a plan."""
        return f"{self.add} to add, {self.change} to change, {self.destroy} to destroy"


def _is_retryable_error(output: str, retryable_errors: Mapping[str, str]) -> Optional[str]:
    """
    Check if a failed command's output matches a retryable error.

    Args:
        output: Combined stdout and stderr of the failed command.
        retryable_errors: Mapping of output substring to reason.

    Returns:
        The reason of the first matching entry, or None.
    """
    for error_substring, reason in retryable_errors.items():
        if error_substring in output:
            return reason
    return None


def _to_hcl_string(value: Any, nested: bool = False) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_to_hcl_string(item, nested=True) for item in value) + "]"
    if isinstance(value, dict):
        pairs = [
            f"{json.dumps(str(key))} = {_to_hcl_string(item, nested=True)}"
            for key, item in value.items()
        ]
        return "{" + ", ".join(pairs) + "}"
    # Top-level strings go through unquoted, Terraform reads them as-is
    if nested:
        return json.dumps(str(value))
    return str(value)


def format_terraform_var_args(vars: Dict[str, Any]) -> List[str]:
    """
    Format variables as Terraform ``-var`` arguments.

    Args:
        vars: Variable name to value mapping.

    Returns:
        A flat argument list such as ``["-var", "enabled=false"]``.
    """
    args: List[str] = []
    for name, value in vars.items():
        args.extend(["-var", f"{name}={_to_hcl_string(value)}"])
    return args


def format_terraform_args(options: TerraformOptions, *args: str) -> List[str]:
    """Append -no-color to the argument list when the options ask for it."""
    formatted = list(args)
    if options.no_color and formatted and formatted[0] in NO_COLOR_COMMANDS:
        formatted.append("-no-color")
    return formatted


def _build_env(options: TerraformOptions) -> Dict[str, str]:
    env = dict(os.environ)
    env.setdefault("TF_IN_AUTOMATION", "1")
    env.update(options.env_vars)
    return env


def _run_once(options: TerraformOptions, command: List[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            command,
            cwd=options.terraform_dir,
            env=_build_env(options),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise TerraformSetupError(
            f"Terraform binary '{options.terraform_binary}' not found: {e}"
        ) from e
    except OSError as e:
        raise TerraformSetupError(
            f"Terraform binary '{options.terraform_binary}' could not be started: {e}"
        ) from e


def run_terraform_command(
    options: TerraformOptions,
    *args: str,
    allowed_exit_codes: Optional[List[int]] = None,
) -> subprocess.CompletedProcess:
    """
    Run a Terraform command, retrying retryable failures.

    Args:
        options: Terraform options for the invocation.
        *args: Terraform arguments, starting with the subcommand.
        allowed_exit_codes: Exit codes that count as success (default: [0]).

    Returns:
        The completed process; ``stdout`` holds stdout and stderr combined.

    Raises:
        TerraformSetupError: If the directory is missing or the binary cannot be started.
        TerraformCommandError: If the command fails with an unclassified error.
        MaxRetriesExceededError: If a retryable failure persists.
    """
    if not Path(options.terraform_dir).is_dir():
        raise TerraformSetupError(
            f"Terraform directory not found: {options.terraform_dir}"
        )

    allowed = allowed_exit_codes or [0]
    command = [options.terraform_binary, *format_terraform_args(options, *args)]
    logger.info(f"Running terraform {args[0] if args else ''} in {options.terraform_dir}")
    logger.debug(f"Terraform command: {command}")

    def _run():
        result = _run_once(options, command)
        if result.returncode not in allowed:
            raise TerraformCommandError(command, result.returncode, result.stdout or "")
        return result

    def _classify(error: BaseException) -> Optional[str]:
        return _is_retryable_error(error.output, options.retryable_terraform_errors)

    try:
        return retry_with_backoff(
            _run,
            _classify,
            max_retries=options.max_retries,
            base_delay=options.time_between_retries,
            retry_on=(TerraformCommandError,),
        )
    except RetriesExhausted as e:
        logger.error(f"Terraform {args[0] if args else ''} failed: {e.reason}")
        raise MaxRetriesExceededError(e.reason, e.attempts, e.last_error) from e.last_error
    except TerraformCommandError as e:
        logger.error(
            f"Terraform {args[0] if args else ''} failed with exit code {e.return_code}"
        )
        raise


def init(options: TerraformOptions) -> str:
    """
    Run ``terraform init``.

    Returns:
        The command output.
    """
    return run_terraform_command(options, "init", "-upgrade=false", "-input=false").stdout


def plan(options: TerraformOptions) -> str:
    """
    Run ``terraform plan`` with the options' variables.

    Returns:
        The plan output text.
    """
    return run_terraform_command(
        options,
        "plan",
        "-input=false",
        "-lock=false",
        *format_terraform_var_args(options.vars),
    ).stdout


def init_and_plan(options: TerraformOptions) -> str:
    """Run ``terraform init`` then ``terraform plan`` and return the plan output."""
    init(options)
    return plan(options)


def get_plan_exit_code(options: TerraformOptions) -> int:
    """
    Run ``terraform plan -detailed-exitcode``.

    Returns:
        PLAN_EXIT_CODE_NO_CHANGES or PLAN_EXIT_CODE_CHANGES.

    Raises:
        TerraformCommandError: If the plan itself fails (exit code 1).
    """
    result = run_terraform_command(
        options,
        "plan",
        "-input=false",
        "-lock=false",
        "-detailed-exitcode",
        *format_terraform_var_args(options.vars),
        allowed_exit_codes=[PLAN_EXIT_CODE_NO_CHANGES, PLAN_EXIT_CODE_CHANGES],
    )
    return result.returncode


def destroy(options: TerraformOptions) -> str:
    """
    Run ``terraform destroy`` with the options' variables.

    Returns:
        The destroy output text.
    """
    return run_terraform_command(
        options,
        "destroy",
        "-auto-approve",
        "-input=false",
        *format_terraform_var_args(options.vars),
    ).stdout


@contextmanager
def terraform_destroy_on_exit(options: TerraformOptions) -> Iterator[TerraformOptions]:
    """
    Run ``terraform destroy`` when the block exits, however it exits.

    A destroy failure after a failed block is logged and the block's error
    propagates. After a successful block, a destroy failure propagates.
    """
    try:
        yield options
    except BaseException:
        try:
            destroy(options)
        except Exception:
            logger.exception(f"Cleanup destroy in {options.terraform_dir} failed")
        raise
    destroy(options)


def get_resource_count(output: str) -> ResourceCount:
    """
    Parse the resource counts out of plan, apply or destroy output.

    Args:
        output: Terraform command output.

    Returns:
        The reported counts; all zero when the output says "No changes.".

    Raises:
        ResourceCountParseError: If no summary line is present.
    """
    match = PLAN_SUMMARY_PATTERN.search(output)
    if match:
        return ResourceCount(*(int(group) for group in match.groups()))

    match = APPLY_SUMMARY_PATTERN.search(output)
    if match:
        return ResourceCount(*(int(group) for group in match.groups()))

    match = DESTROY_SUMMARY_PATTERN.search(output)
    if match:
        return ResourceCount(add=0, change=0, destroy=int(match.group(1)))

    if NO_CHANGES_MARKER in output:
        return ResourceCount(add=0, change=0, destroy=0)

    raise ResourceCountParseError("Could not find a resource count summary in output")
