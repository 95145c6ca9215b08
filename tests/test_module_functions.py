"""
Unit tests for the function-based Pulumi modules
Checks that every module exposes its entry point and returns the expected shape
"""

import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import modules


class TestModuleFunctions(unittest.TestCase):
    """Test the function-based module approach"""

    def test_entry_points_exported(self):
        for name in modules.__all__:
            with self.subTest(function=name):
                self.assertTrue(callable(getattr(modules, name)))

    def test_internal_resources_are_prefixed(self):
        """Resource handles are kept under underscore keys, outputs are plain keys"""
        with patch('modules.security_groups.functions.aws') as mock_aws, \
                patch('modules.security_groups.functions.pulumi'):
            mock_aws.ec2.SecurityGroup.return_value = Mock(id="sg-12345")

            result = modules.create_security_group_resources("test-cluster", "vpc-12345", "10.0.0.0/16")

            shape = get_function_outputs_shape()["security_group_resources"]
            for key in shape["required_outputs"]:
                self.assertIn(key, result)
            for key in shape["internal_resources"]:
                self.assertIn(key, result)


def get_function_outputs_shape():
    """Return the expected shape of function outputs for documentation"""
    return {
        "vpc_resources": {
            "required_outputs": [
                "vpc_id", "vpc_cidr_block", "public_subnet_ids",
                "private_subnet_ids", "availability_zones"
            ],
            "internal_resources": [
                "_vpc", "_igw", "_public_subnets", "_private_subnets",
                "_route_table", "_nat_gateways", "_private_route_tables"
            ]
        },
        "security_group_resources": {
            "required_outputs": [
                "cluster_security_group_id", "node_group_security_group_id",
                "alb_security_group_id", "endpoint_access", "endpoint_config", "rule_specs"
            ],
            "internal_resources": ["_groups", "_rules"]
        },
        "iam_resources": {
            "required_outputs": [
                "cluster_role_arn", "cluster_role_name",
                "node_group_role_arn", "node_group_role_name", "fargate_role_arn",
                "auto_mode_node_role_arn"
            ],
            "internal_resources": [
                "_cluster_role", "_node_role", "_fargate_role", "_auto_mode_node_role",
                "_cluster_policy_attachment", "_auto_mode_policy_attachments",
                "_node_policy_attachments", "_fargate_policy_attachment"
            ]
        },
        "eks_resources": {
            "required_outputs": [
                "cluster_id", "cluster_arn", "cluster_endpoint",
                "cluster_version_output", "cluster_certificate_authority_data",
                "compute_strategy", "node_group_arn", "fargate_profile_arn", "auto_mode_command"
            ],
            "internal_resources": [
                "_log_group", "_cluster", "_node_group", "_fargate_profile", "_compute", "_addons"
            ]
        },
        "identity_resources": {
            "required_outputs": ["oidc_provider_arn", "oidc_issuer_url", "admin_role_names"],
            "internal_resources": ["_oidc_provider", "_access_entries", "_policy_associations"]
        },
        "workload_identities": {
            "required_outputs": ["role_arns"],
            "internal_resources": ["_roles", "_service_accounts", "_namespaces"]
        },
        "addons_resources": {
            "required_outputs": [
                "k8s_provider", "load_balancer_controller_status", "load_balancer_controller_role_arn"
            ],
            "internal_resources": ["_load_balancer_controller"]
        },
        "devtron_resources": {
            "required_outputs": [
                "namespace", "release_name", "access_method", "access_url",
                "values", "rendered_values", "bucket_name", "ci_role_arn"
            ],
            "internal_resources": ["_namespace", "_release", "_bucket"]
        }
    }


if __name__ == "__main__":
    # Run the tests
    unittest.main(verbosity=2)
