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
Integration tests for the "defaults" example of the KMS module.

Only name_prefix is passed; every other input keeps its module default,
which leaves the alarms topic off.

Scenarios share no state: each builds its own options and name prefix, and
plan runs with -lock=false, so they are safe to run concurrently against one
AWS account. pytest runs them one after another. Any runner that spreads
them over workers must keep scenarios of the same example on one worker,
since terraform init writes that example's .terraform directory.
"""

import pytest

from kms_module_test.aws_utils import find_kms_aliases
from kms_module_test.terraform_options import (
    generate_test_name_prefix,
    get_base_terraform_options,
)
from kms_module_test.terraform_utils import (
    PLAN_EXIT_CODE_CHANGES,
    get_plan_exit_code,
    init,
    init_and_plan,
    plan,
    terraform_destroy_on_exit,
)

pytestmark = pytest.mark.integration


class TestTerraformDefaultsExample:
    """Plan the defaults example."""

    @pytest.fixture
    def expected_name(self):
        """Generate a unique name prefix for this run."""
        return generate_test_name_prefix("def")

    @pytest.fixture
    def terraform_options(self, example_dir, harness_settings, expected_name):
        """Base options for examples/defaults with only name_prefix set."""
        return get_base_terraform_options(
            str(example_dir("defaults")), harness_settings
        ).with_vars({"name_prefix": expected_name})

    def test_terraform_defaults_example(self, terraform_options):
        """The plan lists actions to perform."""
        with terraform_destroy_on_exit(terraform_options):
            plan_output = init_and_plan(terraform_options)

            assert plan_output
            assert "Terraform will perform the following actions:" in plan_output

    def test_terraform_defaults_resources(self, terraform_options, kms_client, expected_name):
        """Key and alias are planned, the alarms topic is not."""
        with terraform_destroy_on_exit(terraform_options):
            init(terraform_options)
            plan_output = plan(terraform_options)

            assert plan_output
            assert "module.main.aws_kms_key.main[0]" in plan_output
            assert "module.main.aws_kms_alias.main[0]" in plan_output
            assert "will be created" in plan_output

            # alarms_config.enabled defaults to false
            assert "module.main.aws_sns_topic.alarms[0]" not in plan_output

            assert "2 to add, 0 to change, 0 to destroy" in plan_output

        assert find_kms_aliases(kms_client, expected_name) == []

    def test_plan_exit_code_reports_changes(self, terraform_options):
        """A detailed-exitcode plan reports pending changes."""
        with terraform_destroy_on_exit(terraform_options):
            init(terraform_options)
            assert get_plan_exit_code(terraform_options) == PLAN_EXIT_CODE_CHANGES
