"""
Unit tests for the security group module
"""

import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.security_groups.functions import (
    ALB,
    ANYWHERE,
    CLUSTER,
    NODE,
    EndpointAccess,
    SecurityGroupConfig,
    create_security_group_resources,
    custom_rule_spec,
    endpoint_access_args,
    plan_security_group_rules,
    resolve_endpoint_access,
)


def rules_for(specs, group, direction=None):
    return [s for s in specs if s.group == group and (direction is None or s.direction == direction)]


class TestEndpointAccess(unittest.TestCase):

    def test_default_is_private(self):
        self.assertEqual(resolve_endpoint_access(SecurityGroupConfig()), EndpointAccess.PRIVATE)

    def test_cidrs_open_public_endpoint(self):
        config = SecurityGroupConfig(allow_inbound_cidrs=["203.0.113.0/24"])
        self.assertEqual(resolve_endpoint_access(config), EndpointAccess.PUBLIC_AND_PRIVATE)

    def test_vpc_endpoint_wins_over_cidrs(self):
        config = SecurityGroupConfig(allow_inbound_cidrs=["203.0.113.0/24"], enable_vpc_endpoint_access=True)
        self.assertEqual(resolve_endpoint_access(config), EndpointAccess.PRIVATE)

    def test_public_endpoint_limited_to_cidrs(self):
        args = endpoint_access_args(EndpointAccess.PUBLIC_AND_PRIVATE, ["203.0.113.0/24"])
        self.assertTrue(args["endpoint_public_access"])
        self.assertEqual(args["public_access_cidrs"], ["203.0.113.0/24"])

        private = endpoint_access_args(EndpointAccess.PRIVATE, ["203.0.113.0/24"])
        self.assertFalse(private["endpoint_public_access"])
        self.assertNotIn("public_access_cidrs", private)


class TestRulePlanning(unittest.TestCase):

    def test_every_group_allows_all_egress(self):
        specs = plan_security_group_rules(SecurityGroupConfig(), "10.0.0.0/16")
        for group in (CLUSTER, NODE, ALB):
            egress = [s for s in rules_for(specs, group, "egress") if s.cidr == ANYWHERE]
            self.assertEqual(len(egress), 1, group)
            self.assertEqual(egress[0].protocol, "-1")

    def test_no_ssh_from_anywhere(self):
        config = SecurityGroupConfig(
            allow_inbound_cidrs=["203.0.113.0/24"],
            restrict_node_access=True,
            enable_vpc_endpoint_access=True,
        )
        specs = plan_security_group_rules(config, "10.0.0.0/16", allow_cluster_to_nodes=True)
        for spec in specs:
            if spec.direction == "ingress" and spec.cidr == ANYWHERE:
                self.assertFalse(spec.covers_port(22), spec.key)

    def test_ssh_only_from_cluster_when_restricted(self):
        specs = plan_security_group_rules(SecurityGroupConfig(restrict_node_access=True), "10.0.0.0/16")
        ssh = [s for s in specs if s.key == "cluster-ssh"]
        self.assertEqual(len(ssh), 1)
        self.assertEqual(ssh[0].peer_group, CLUSTER)

        unrestricted = plan_security_group_rules(SecurityGroupConfig(), "10.0.0.0/16")
        self.assertFalse([s for s in unrestricted if s.key == "cluster-ssh"])

    def test_load_balancer_open_on_web_ports(self):
        specs = plan_security_group_rules(SecurityGroupConfig(), "10.0.0.0/16")
        internet = [s for s in rules_for(specs, ALB, "ingress") if s.cidr == ANYWHERE]
        self.assertEqual(sorted(s.from_port for s in internet), [80, 443])

    def test_inbound_cidrs_reach_api_and_nodeports(self):
        config = SecurityGroupConfig(allow_inbound_cidrs=["203.0.113.0/24", "198.51.100.0/24"])
        specs = plan_security_group_rules(config, "10.0.0.0/16")
        https = [s for s in rules_for(specs, CLUSTER, "ingress") if s.key.startswith("https-cidr")]
        nodeports = [s for s in rules_for(specs, ALB, "ingress") if s.key.startswith("nodeport-cidr")]
        self.assertEqual([s.cidr for s in https], ["203.0.113.0/24", "198.51.100.0/24"])
        self.assertEqual({(s.from_port, s.to_port) for s in nodeports}, {(30000, 32767)})

    def test_vpc_endpoint_rule_uses_vpc_range(self):
        specs = plan_security_group_rules(SecurityGroupConfig(enable_vpc_endpoint_access=True), "10.0.0.0/16")
        vpc_rule = [s for s in specs if s.key == "https-vpc"]
        self.assertEqual(vpc_rule[0].cidr, "10.0.0.0/16")

    def test_node_self_rules(self):
        specs = plan_security_group_rules(SecurityGroupConfig(), "10.0.0.0/16")
        self_rules = [s for s in specs if s.is_self]
        self.assertEqual({s.key for s in self_rules}, {"self-all", "self-kubelet"})
        self.assertTrue(all(s.group == NODE for s in self_rules))

    def test_unowned_groups_receive_nothing(self):
        specs = plan_security_group_rules(SecurityGroupConfig(restrict_node_access=True), "10.0.0.0/16",
                                          owned_roles=[CLUSTER, ALB], allow_cluster_to_nodes=True)
        self.assertFalse(rules_for(specs, NODE))
        self.assertTrue(rules_for(specs, CLUSTER))

    def test_custom_rule_requires_source(self):
        with self.assertRaises(ValueError):
            custom_rule_spec({"port": 8443}, 0)
        with self.assertRaises(ValueError):
            custom_rule_spec({"cidr": "10.1.0.0/16"}, 0)

        spec = custom_rule_spec({"port": 8443, "cidr": "10.1.0.0/16"}, 1)
        self.assertEqual((spec.key, spec.group, spec.from_port, spec.to_port), ("custom-2", CLUSTER, 8443, 8443))


class TestSecurityGroupResources(unittest.TestCase):

    def test_supplied_groups_are_untouched(self):
        with patch('modules.security_groups.functions.aws') as mock_aws, \
                patch('modules.security_groups.functions.pulumi'):
            mock_aws.ec2.SecurityGroup.side_effect = lambda name, **kwargs: Mock(id=f"id-{name}")

            result = create_security_group_resources(
                cluster_name="test-cluster",
                vpc_id="vpc-12345",
                vpc_cidr="10.0.0.0/16",
                existing_security_group_ids={NODE: "sg-existing"},
                allow_cluster_to_nodes=True
            )

            self.assertEqual(result["node_group_security_group_id"], "sg-existing")
            self.assertEqual(mock_aws.ec2.SecurityGroup.call_count, 2)
            targets = [c.kwargs["security_group_id"] for c in mock_aws.ec2.SecurityGroupRule.call_args_list]
            self.assertNotIn("sg-existing", targets)
            self.assertEqual(result["endpoint_access"], EndpointAccess.PRIVATE)

    def test_cross_group_rules_reference_peer_ids(self):
        with patch('modules.security_groups.functions.aws') as mock_aws, \
                patch('modules.security_groups.functions.pulumi'):
            mock_aws.ec2.SecurityGroup.side_effect = lambda name, **kwargs: Mock(id=f"id-{name}")

            create_security_group_resources("test-cluster", "vpc-12345", "10.0.0.0/16")

            calls = {c.args[0]: c.kwargs for c in mock_aws.ec2.SecurityGroupRule.call_args_list}
            nodeport = calls["test-cluster-node-ingress-alb-nodeport"]
            self.assertEqual(nodeport["source_security_group_id"], "id-test-cluster-alb-sg")
            self.assertEqual(nodeport["security_group_id"], "id-test-cluster-node-sg")
            self.assertTrue(calls["test-cluster-node-ingress-self-all"]["self"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
