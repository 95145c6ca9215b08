"""
Security Group Module for EKS
Cluster, node and load balancer security groups and the rules between them
"""

from .functions import (
    ALB,
    CLUSTER,
    NODE,
    EndpointAccess,
    RuleSpec,
    SecurityGroupConfig,
    create_security_group_resources,
    endpoint_access_args,
    plan_security_group_rules,
    resolve_endpoint_access,
)

__all__ = [
    "ALB",
    "CLUSTER",
    "NODE",
    "EndpointAccess",
    "RuleSpec",
    "SecurityGroupConfig",
    "create_security_group_resources",
    "endpoint_access_args",
    "plan_security_group_rules",
    "resolve_endpoint_access",
]
