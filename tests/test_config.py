"""
Unit tests for configuration loading
"""

import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config as config_module
from modules.eks.functions import WorkerPoolSpec


def empty_stack_config():
    """Stack config with nothing set"""
    stack = Mock()
    stack.get.return_value = None
    stack.get_bool.return_value = None
    stack.get_int.return_value = None
    stack.get_object.return_value = None
    stack.get_secret.return_value = None
    return stack


class TestLoadEnvironment(unittest.TestCase):

    def test_missing_variables_exit(self):
        """Deployment refuses to run without a project and environment name"""
        with patch.dict(os.environ, {}, clear=True), patch('config.pulumi') as mock_pulumi:
            mock_pulumi.Config.return_value = empty_stack_config()
            with self.assertRaises(SystemExit):
                config_module.load_environment()
            mock_pulumi.log.error.assert_called_once()

    def test_prod_flag_follows_env_name(self):
        env = {"PROJECT_NAME": "shop", "ENV_NAME": "prod", "AWS_REGION": "eu-west-1", "AWS_ACCOUNT": "123456789012"}
        with patch.dict(os.environ, env, clear=True), patch('config.pulumi') as mock_pulumi:
            mock_pulumi.Config.return_value = empty_stack_config()
            result = config_module.load_environment()

        self.assertTrue(result["params"]["is_prod"])
        self.assertEqual(result["params"]["project_name"], "shop")
        self.assertEqual(result["env"]["region"], "eu-west-1")
        self.assertEqual(result["env"]["account"], "123456789012")

    def test_stack_config_fallback(self):
        stack = empty_stack_config()
        stack.get.side_effect = lambda key: {"project_name": "shop", "env_name": "dev"}.get(key)
        with patch.dict(os.environ, {}, clear=True), patch('config.pulumi') as mock_pulumi:
            mock_pulumi.Config.return_value = stack
            result = config_module.load_environment(stack)

        self.assertFalse(result["params"]["is_prod"])
        self.assertEqual(result["params"]["env_name"], "dev")


class TestConfig(unittest.TestCase):

    def build(self, env_name="dev", values=None):
        values = values or {}
        stack = empty_stack_config()
        stack.get.side_effect = lambda key: values.get(key)
        stack.get_bool.side_effect = lambda key: values.get(key)
        stack.get_int.side_effect = lambda key: values.get(key)
        stack.get_object.side_effect = lambda key: values.get(key)
        env = {"PROJECT_NAME": "shop", "ENV_NAME": env_name, "AWS_REGION": "us-west-2"}
        with patch.dict(os.environ, env, clear=True), patch('config.pulumi') as mock_pulumi:
            mock_pulumi.Config.return_value = stack
            return config_module.Config()

    def test_dev_defaults(self):
        cfg = self.build()
        self.assertEqual(cfg.cluster_name, "shop-dev-cluster")
        self.assertEqual(cfg.cluster_version, "1.31")
        self.assertEqual(cfg.node_instance_types, ["t3.large"])
        self.assertEqual((cfg.node_min_size, cfg.node_desired_size, cfg.node_max_size), (2, 2, 5))
        self.assertTrue(cfg.enable_logging)
        self.assertTrue(cfg.enable_devtron)
        self.assertTrue(cfg.devtron_use_load_balancer)
        self.assertEqual(cfg.devtron_storage_backend, "minio")

    def test_prod_sizing(self):
        cfg = self.build("prod")
        self.assertEqual(cfg.node_instance_types, ["t3.xlarge"])
        self.assertEqual((cfg.node_min_size, cfg.node_desired_size, cfg.node_max_size), (4, 4, 10))

    def test_explicit_false_is_kept(self):
        cfg = self.build(values={"enable_logging": False, "enable_devtron": False})
        self.assertFalse(cfg.enable_logging)
        self.assertFalse(cfg.enable_devtron)

    def test_common_tags(self):
        cfg = self.build(values={"tags": {"Team": "platform"}})
        tags = cfg.common_tags
        self.assertEqual(tags["Project"], "shop")
        self.assertEqual(tags["Environment"], "dev")
        self.assertEqual(tags["Team"], "platform")
        self.assertEqual(cfg.stack_label, "ShopDevStack")

    def test_explicit_zero_is_kept(self):
        cfg = self.build(values={"node_min_size": 0, "node_desired_size": 1, "node_max_size": 3})
        self.assertEqual((cfg.node_min_size, cfg.node_desired_size, cfg.node_max_size), (0, 1, 3))

        spec = WorkerPoolSpec(
            instance_types=cfg.node_instance_types,
            min_size=cfg.node_min_size,
            max_size=cfg.node_max_size,
            desired_size=cfg.node_desired_size,
            disk_size=cfg.node_disk_size
        )
        self.assertEqual(spec.min_size, 0)

    def test_zero_nat_gateways_reaches_network_validation(self):
        cfg = self.build(values={"nat_gateways": 0})
        self.assertEqual(cfg.nat_gateways, 0)
        self.assertEqual(cfg.max_azs, 3)

    def test_workload_service_accounts(self):
        self.assertEqual(self.build().workload_service_accounts, [])
        workloads = [{"name": "uploader", "namespace": "apps", "policies": ["s3"]}]
        cfg = self.build(values={"workload_service_accounts": workloads})
        self.assertEqual(cfg.workload_service_accounts, workloads)

    def test_admin_role_names_skip_unset(self):
        cfg = self.build(values={"sso_role_name": "AWSReservedSSO_Admin"})
        self.assertEqual(cfg.admin_role_names, ["AWSReservedSSO_Admin"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
