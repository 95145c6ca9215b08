"""
Unit tests for the outputs module
"""

import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.outputs.functions import build_status_outputs, cost_command, kubeconfig_command


class TestStatusOutputs(unittest.TestCase):

    def test_kubeconfig_command(self):
        self.assertEqual(
            kubeconfig_command("shop-dev-cluster", "eu-west-1"),
            "aws eks update-kubeconfig --region eu-west-1 --name shop-dev-cluster"
        )

    def test_cost_command_filters_by_project(self):
        command = cost_command("shop")
        self.assertTrue(command.startswith("aws ce get-cost-and-usage"))
        self.assertIn('"Key":"Project","Values":["shop"]', command)

    def test_devtron_disabled(self):
        outputs = build_status_outputs("shop-dev-cluster", "us-east-1", "shop", enable_devtron=False)
        self.assertIn("Not enabled", outputs["devtron_installation_status"])
        self.assertNotIn("devtron_port_forward_command", outputs)
        self.assertNotIn("auto_mode_command", outputs)

    def test_devtron_enabled(self):
        outputs = build_status_outputs(
            "shop-dev-cluster", "us-east-1", "shop", enable_devtron=True,
            devtron_namespace="devtroncd", devtron_access_type="LoadBalancer",
            devtron_access_url="", auto_mode_command="aws eks update-cluster-config --name x"
        )
        self.assertEqual(outputs["devtron_port_forward_command"], "kubectl port-forward svc/devtron-service -n devtroncd 32000:80")
        self.assertEqual(outputs["devtron_logs_command"], "kubectl logs -f deployment/devtron -n devtroncd")
        self.assertEqual(outputs["devtron_access_type"], "LoadBalancer")
        self.assertIn("not waiting", outputs["devtron_installation_status"])
        self.assertEqual(outputs["auto_mode_command"], "aws eks update-cluster-config --name x")
        self.assertNotIn("devtron_url", outputs)
        self.assertEqual(outputs["devtron_load_balancer_command"], "kubectl get svc -n devtroncd | grep devtron")

    def test_devtron_ingress_url(self):
        outputs = build_status_outputs(
            "shop-dev-cluster", "us-east-1", "shop", enable_devtron=True,
            devtron_namespace="devtroncd", devtron_access_type="Ingress",
            devtron_access_url="https://devtron.acme.io", devtron_wait=True
        )
        self.assertEqual(outputs["devtron_url"], "https://devtron.acme.io")
        self.assertEqual(outputs["devtron_installation_status"], "Installed (release ready)")


if __name__ == "__main__":
    unittest.main(verbosity=2)
