"""
IAM Module for EKS
Creates IAM roles and policies for the cluster, node groups and Fargate
"""

from .functions import (
    AUTO_MODE_CLUSTER_POLICY_ARNS,
    AUTO_MODE_NODE_POLICY_ARNS,
    NODE_POLICY_ARNS,
    create_auto_mode_node_role,
    create_iam_resources,
    create_node_group_role,
    get_existing_role,
)

__all__ = [
    "AUTO_MODE_CLUSTER_POLICY_ARNS",
    "AUTO_MODE_NODE_POLICY_ARNS",
    "NODE_POLICY_ARNS",
    "create_auto_mode_node_role",
    "create_iam_resources",
    "create_node_group_role",
    "get_existing_role",
]
