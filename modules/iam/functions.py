"""
IAM Module Functions
Creates IAM roles and policies for the EKS control plane, node groups and Fargate
"""

import json

import pulumi
import pulumi_aws as aws
from typing import Dict


CLUSTER_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"
FARGATE_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKSFargatePodExecutionRolePolicy"

# Auto Mode manages compute, storage, load balancing and networking from the cluster role
AUTO_MODE_CLUSTER_POLICY_ARNS = {
    "compute": "arn:aws:iam::aws:policy/AmazonEKSComputePolicy",
    "block_storage": "arn:aws:iam::aws:policy/AmazonEKSBlockStoragePolicy",
    "load_balancing": "arn:aws:iam::aws:policy/AmazonEKSLoadBalancingPolicy",
    "networking": "arn:aws:iam::aws:policy/AmazonEKSNetworkingPolicy",
}

AUTO_MODE_NODE_POLICY_ARNS = {
    "worker_minimal": "arn:aws:iam::aws:policy/AmazonEKSWorkerNodeMinimalPolicy",
    "registry_pull": "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryPullOnly",
}

# Worker identities get exactly these three policies
NODE_POLICY_ARNS = {
    "worker": "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "cni": "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
    "registry": "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
}


def service_assume_role_policy(service: str, tag_session: bool = False) -> str:
    """Trust policy allowing an AWS service principal to assume the role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": ["sts:AssumeRole", "sts:TagSession"] if tag_session else "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def create_cluster_role(name: str, auto_mode: bool = False, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role for EKS cluster

    Args:
        name: Role name
        auto_mode: Trust sts:TagSession and attach the Auto Mode policies
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-cluster-role",
        name=f"{name}-cluster-role",
        assume_role_policy=service_assume_role_policy("eks.amazonaws.com", tag_session=auto_mode),
        tags={
            **tags,
            "Name": f"{name}-cluster-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn=CLUSTER_POLICY_ARN,
        role=role.name
    )

    auto_mode_attachments = attach_auto_mode_cluster_policies(name, role.name) if auto_mode else {}

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "auto_mode_policy_attachments": auto_mode_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_node_group_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role for EKS worker nodes

    Args:
        name: Role name prefix
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-ng-role",
        name=f"{name}-ng-role",
        assume_role_policy=service_assume_role_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-node-group-role",
            "Module": "iam"
        }
    )

    policy_attachments = {}
    for policy_name, policy_arn in NODE_POLICY_ARNS.items():
        attachment = aws.iam.RolePolicyAttachment(
            f"{name}-node-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name
        )
        policy_attachments[f"{policy_name}_policy"] = attachment

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_fargate_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create pod execution role for Fargate profiles

    Args:
        name: Role name prefix
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-fargate-role",
        name=f"{name}-fargate-role",
        assume_role_policy=service_assume_role_policy("eks-fargate-pods.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-fargate-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-fargate-policy",
        policy_arn=FARGATE_POLICY_ARN,
        role=role.name
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }


def attach_auto_mode_cluster_policies(name: str, role_name: pulumi.Input[str]) -> Dict[str, any]:
    """Attach the managed policies Auto Mode needs on the cluster role"""
    attachments = {}
    for policy_name, policy_arn in AUTO_MODE_CLUSTER_POLICY_ARNS.items():
        attachments[f"{policy_name}_policy"] = aws.iam.RolePolicyAttachment(
            f"{name}-cluster-{policy_name.replace('_', '-')}-policy",
            policy_arn=policy_arn,
            role=role_name
        )
    return attachments


def create_auto_mode_node_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the node role EKS Auto Mode launches its instances with

    Args:
        name: Role name prefix
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-auto-node-role",
        name=f"{name}-auto-node-role",
        assume_role_policy=service_assume_role_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-auto-node-role",
            "Module": "iam"
        }
    )

    policy_attachments = {}
    for policy_name, policy_arn in AUTO_MODE_NODE_POLICY_ARNS.items():
        policy_attachments[f"{policy_name}_policy"] = aws.iam.RolePolicyAttachment(
            f"{name}-auto-node-{policy_name.replace('_', '-')}-policy",
            policy_arn=policy_arn,
            role=role.name
        )

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def get_existing_role(role_name: str) -> Dict[str, any]:
    """
    Get existing IAM role

    Args:
        role_name: Name of existing role

    Returns:
        Dict with role information
    """
    role = aws.iam.get_role(name=role_name)

    return {
        "role": role,
        "role_arn": pulumi.Output.from_input(role.arn),
        "role_name": pulumi.Output.from_input(role.name)
    }


def create_iam_resources(cluster_name: str,
                        existing_cluster_role_name: str = "",
                        create_node_role: bool = True,
                        create_fargate: bool = False,
                        auto_mode: bool = False,
                        tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create or reference IAM resources for EKS

    Args:
        cluster_name: EKS cluster name
        existing_cluster_role_name: Name of an existing cluster role to reuse
        create_node_role: Create the worker node role (managed node groups)
        create_fargate: Create the Fargate pod execution role
        auto_mode: Prepare the cluster role and a node role for EKS Auto Mode
        tags: Additional tags

    Returns:
        Dict with all IAM resources and outputs
    """
    tags = tags or {}

    if existing_cluster_role_name:
        cluster_role_result = get_existing_role(existing_cluster_role_name)
        if auto_mode:
            pulumi.log.warn(
                f"Existing cluster role {existing_cluster_role_name} must trust sts:TagSession for Auto Mode; "
                "attaching the Auto Mode policies only"
            )
            cluster_role_result["auto_mode_policy_attachments"] = attach_auto_mode_cluster_policies(
                cluster_name, existing_cluster_role_name
            )
    else:
        cluster_role_result = create_cluster_role(cluster_name, auto_mode=auto_mode, tags=tags)

    node_role_result = create_node_group_role(cluster_name, tags) if create_node_role else {}
    fargate_role_result = create_fargate_role(cluster_name, tags) if create_fargate else {}
    auto_node_role_result = create_auto_mode_node_role(cluster_name, tags) if auto_mode else {}

    return {
        "cluster_role_arn": cluster_role_result["role_arn"],
        "cluster_role_name": cluster_role_result["role_name"],
        "node_group_role_arn": node_role_result.get("role_arn"),
        "node_group_role_name": node_role_result.get("role_name"),
        "fargate_role_arn": fargate_role_result.get("role_arn"),
        "auto_mode_node_role_arn": auto_node_role_result.get("role_arn"),
        # Keep references to resources for dependencies
        "_cluster_role": cluster_role_result.get("role"),
        "_node_role": node_role_result.get("role"),
        "_fargate_role": fargate_role_result.get("role"),
        "_auto_mode_node_role": auto_node_role_result.get("role"),
        "_cluster_policy_attachment": cluster_role_result.get("policy_attachment"),
        "_auto_mode_policy_attachments": cluster_role_result.get("auto_mode_policy_attachments", {}),
        "_node_policy_attachments": node_role_result.get("policy_attachments", {}),
        "_fargate_policy_attachment": fargate_role_result.get("policy_attachment")
    }
