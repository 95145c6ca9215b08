"""
Unit tests for the Devtron module
"""

import json
import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.devtron.functions import (
    DEVTRON_NAMESPACE,
    REDACTED,
    AccessMethod,
    DevtronSettings,
    StorageBackend,
    build_devtron_values,
    create_devtron_resources,
    is_placeholder_domain,
    render_values,
    resolve_access_method,
)


class TestAccessMethod(unittest.TestCase):

    def test_precedence(self):
        self.assertEqual(resolve_access_method(False, False), AccessMethod.LOAD_BALANCER)
        self.assertEqual(resolve_access_method(True, False), AccessMethod.LOAD_BALANCER)
        self.assertEqual(resolve_access_method(True, True), AccessMethod.LOAD_BALANCER)
        self.assertEqual(resolve_access_method(False, True), AccessMethod.INGRESS)


class TestPlaceholderDomains(unittest.TestCase):

    def test_placeholders(self):
        for domain in ("devtron.local", "localhost", "app.test", "corp.example", "x.invalid",
                       "example.com", "ci.example.org", "EXAMPLE.NET."):
            with self.subTest(domain=domain):
                self.assertTrue(is_placeholder_domain(domain))

    def test_real_domains(self):
        for domain in ("devtron.io", "platform.acme.com", "myexample.com", "local.dev"):
            with self.subTest(domain=domain):
                self.assertFalse(is_placeholder_domain(domain))


class TestDevtronValues(unittest.TestCase):

    def test_defaults(self):
        values = build_devtron_values(DevtronSettings())

        self.assertEqual(values["installer"]["modules"], ["cicd"])
        self.assertTrue(values["argo-cd"]["enabled"])
        self.assertEqual(values["global"]["storageClass"], "gp2")
        self.assertEqual(values["service"]["type"], "LoadBalancer")
        self.assertEqual(
            values["service"]["annotations"]["service.beta.kubernetes.io/aws-load-balancer-scheme"],
            "internet-facing"
        )
        self.assertNotIn("ingress", values)
        self.assertTrue(values["minio"]["enabled"])
        self.assertNotIn("configs", values)
        self.assertTrue(values["monitoring"]["enabled"])

    def test_ingress_with_tls(self):
        settings = DevtronSettings(use_load_balancer=False, enable_ingress=True, domain="acme.io")
        values = build_devtron_values(settings)

        self.assertNotIn("service", values)
        ingress = values["ingress"]
        self.assertEqual(ingress["className"], "nginx")
        self.assertEqual(ingress["hosts"][0]["host"], "devtron.acme.io")
        self.assertEqual(ingress["tls"], [{"secretName": "devtron-tls", "hosts": ["devtron.acme.io"]}])
        self.assertEqual(settings.access_url, "https://devtron.acme.io")

    def test_ingress_placeholder_skips_tls(self):
        settings = DevtronSettings(use_load_balancer=False, enable_ingress=True, domain="devtron.local")
        values = build_devtron_values(settings)

        self.assertNotIn("tls", values["ingress"])
        self.assertEqual(settings.access_url, "http://devtron.devtron.local")

    def test_forced_load_balancer_ignores_ingress(self):
        settings = DevtronSettings(use_load_balancer=True, enable_ingress=True, domain="acme.io")
        values = build_devtron_values(settings)
        self.assertEqual(settings.access_url, "")
        self.assertIn("service", values)
        self.assertNotIn("ingress", values)

    def test_s3_backend_replaces_minio(self):
        settings = DevtronSettings(storage_backend="S3", region="us-west-2")
        values = build_devtron_values(settings, "devtron-logs")

        self.assertEqual(values["minio"], {"enabled": False})
        self.assertEqual(values["configs"]["BLOB_STORAGE_PROVIDER"], "S3")
        self.assertEqual(values["configs"]["DEFAULT_BUILD_LOGS_BUCKET"], "devtron-logs")
        self.assertEqual(values["configs"]["DEFAULT_CACHE_BUCKET_REGION"], "us-west-2")

    def test_s3_backend_needs_bucket(self):
        with self.assertRaises(ValueError):
            build_devtron_values(DevtronSettings(storage_backend=StorageBackend.S3))

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            DevtronSettings(storage_backend="gcs")

    def test_monitoring_disabled(self):
        values = build_devtron_values(DevtronSettings(enable_monitoring=False))
        self.assertFalse(values["monitoring"]["enabled"])
        self.assertFalse(values["monitoring"]["grafana"]["enabled"])

    def test_admin_credentials_and_redaction(self):
        values = build_devtron_values(DevtronSettings(admin_email="ops@acme.io", admin_password="hunter2"))
        self.assertEqual(values["installer"]["adminPassword"], "hunter2")

        rendered = json.loads(render_values(values))
        self.assertEqual(rendered["installer"]["adminPassword"], REDACTED)
        self.assertEqual(rendered["installer"]["adminEmail"], "ops@acme.io")
        self.assertNotIn("hunter2", render_values(values))

    def test_defaults_are_not_shared(self):
        first = build_devtron_values(DevtronSettings(admin_password="secret"))
        second = build_devtron_values(DevtronSettings())
        self.assertIn("adminPassword", first["installer"])
        self.assertNotIn("adminPassword", second["installer"])


class TestDevtronResources(unittest.TestCase):

    def test_namespace_before_chart(self):
        with patch('modules.devtron.functions.k8s') as mock_k8s, \
                patch('modules.devtron.functions.aws') as mock_aws, \
                patch('modules.devtron.functions.pulumi') as mock_pulumi:
            namespace = Mock()
            mock_k8s.core.v1.Namespace.return_value = namespace

            result = create_devtron_resources("test-cluster", Mock(), DevtronSettings())

            mock_aws.s3.Bucket.assert_not_called()
            release = mock_k8s.helm.v3.Release.call_args.kwargs
            self.assertEqual(release["chart"], "devtron-operator")
            self.assertTrue(release["skip_await"])
            mock_k8s.helm.v3.RepositoryOptsArgs.assert_called_once_with(repo="https://helm.devtron.ai")
            depends_on = mock_pulumi.ResourceOptions.call_args.kwargs["depends_on"]
            self.assertIs(depends_on[0], namespace)
            self.assertEqual(result["namespace"], DEVTRON_NAMESPACE)
            self.assertEqual(result["access_method"], AccessMethod.LOAD_BALANCER)

    def test_wait_for_release(self):
        with patch('modules.devtron.functions.k8s') as mock_k8s, \
                patch('modules.devtron.functions.aws'), \
                patch('modules.devtron.functions.pulumi'):
            create_devtron_resources("test-cluster", Mock(), DevtronSettings(wait=True))

            self.assertFalse(mock_k8s.helm.v3.Release.call_args.kwargs["skip_await"])

    def test_s3_backend_creates_private_bucket(self):
        with patch('modules.devtron.functions.k8s'), \
                patch('modules.devtron.functions.aws') as mock_aws, \
                patch('modules.devtron.functions.pulumi'), \
                patch('modules.devtron.functions.create_service_account_role') as mock_role:
            mock_role.return_value = {"role": Mock(), "role_arn": "arn:ci-role"}

            result = create_devtron_resources(
                "test-cluster", Mock(), DevtronSettings(storage_backend="s3", region="us-east-1"),
                oidc_provider_arn="arn:oidc", oidc_issuer_url="https://oidc.example"
            )

            mock_aws.s3.Bucket.assert_called_once()
            public_access = mock_aws.s3.BucketPublicAccessBlock.call_args.kwargs
            self.assertTrue(public_access["block_public_acls"])
            self.assertTrue(public_access["restrict_public_buckets"])
            self.assertEqual(mock_role.call_args.kwargs["namespace"], "devtron-ci")
            self.assertEqual(result["ci_role_arn"], "arn:ci-role")
            self.assertIn("<devtron-bucket>", result["rendered_values"])

    def test_s3_backend_requires_oidc(self):
        with patch('modules.devtron.functions.k8s'), \
                patch('modules.devtron.functions.aws'), \
                patch('modules.devtron.functions.pulumi'):
            with self.assertRaises(ValueError):
                create_devtron_resources("test-cluster", Mock(), DevtronSettings(storage_backend="s3"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
