"""
EKS Module Functions
Creates the EKS control plane and exactly one compute strategy for it:
a managed node group, a Fargate profile, or delegated Auto Mode
"""

import dataclasses
import enum
import json

import pulumi
import pulumi_aws as aws
from typing import Any, Dict, List, Optional

from modules.iam.functions import create_node_group_role


CONTROL_PLANE_LOG_TYPES = ["api", "audit", "authenticator", "controllerManager", "scheduler"]
DEFAULT_FARGATE_NAMESPACES = ["default", "kube-system"]
AUTO_MODE_NODE_POOLS = ["general-purpose", "system"]


class ComputeStrategy(enum.Enum):
    MANAGED_NODE_GROUP = "managed-node-group"
    AUTO_MODE = "auto-mode"
    FARGATE = "fargate"


def resolve_compute_strategy(enable_auto_mode: bool = False, enable_fargate: bool = False) -> ComputeStrategy:
    """
    Pick the single compute strategy for the cluster

    Raises:
        ValueError: both Auto Mode and Fargate were requested
    """
    if enable_auto_mode and enable_fargate:
        raise ValueError("enable_auto_mode and enable_fargate are mutually exclusive; pick one compute strategy")
    if enable_auto_mode:
        return ComputeStrategy.AUTO_MODE
    if enable_fargate:
        return ComputeStrategy.FARGATE
    return ComputeStrategy.MANAGED_NODE_GROUP


@dataclasses.dataclass
class WorkerPoolSpec:
    instance_types: List[str] = dataclasses.field(default_factory=lambda: ["t3.medium"])
    min_size: int = 1
    max_size: int = 5
    desired_size: int = 2
    disk_size: int = 20
    capacity_type: str = "ON_DEMAND"
    ami_type: str = "AL2023_x86_64_STANDARD"
    labels: Dict[str, str] = dataclasses.field(default_factory=lambda: {"node-type": "managed"})
    taints: List[Dict[str, str]] = dataclasses.field(default_factory=list)

    def __post_init__(self):
        if self.max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {self.max_size}")
        if self.min_size < 0:
            raise ValueError(f"min_size must not be negative, got {self.min_size}")
        if not self.min_size <= self.desired_size <= self.max_size:
            raise ValueError(
                f"desired_size {self.desired_size} must be within "
                f"[min_size {self.min_size}, max_size {self.max_size}]"
            )
        if not self.instance_types:
            raise ValueError("instance_types must not be empty")


def auto_mode_activation_command(cluster_name: str, node_role_arn: str) -> str:
    """Operator command that hands compute over to EKS Auto Mode after deployment"""
    compute_config = json.dumps(
        {"enabled": True, "nodeRoleArn": node_role_arn, "nodePools": AUTO_MODE_NODE_POOLS},
        separators=(",", ":")
    )
    return (
        f"aws eks update-cluster-config --name {cluster_name} "
        f"--compute-config '{compute_config}' "
        "--kubernetes-network-config '{\"elasticLoadBalancing\":{\"enabled\":true}}' "
        "--storage-config '{\"blockStorage\":{\"enabled\":true}}'"
    )


def create_cloudwatch_log_group(name: str, retention_days: int = 30, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create CloudWatch log group for EKS cluster

    Args:
        name: Cluster name
        retention_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with log group resource and outputs
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-eks-log-group",
        name=f"/aws/eks/{name}/cluster",
        retention_in_days=retention_days,
        tags={
            **tags,
            "Name": f"{name}-eks-log-group",
            "Module": "eks"
        }
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name
    }


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                      subnet_ids: List[pulumi.Output[str]], security_group_ids: List[pulumi.Output[str]],
                      endpoint_config: Dict[str, Any],
                      enable_logging: bool = True,
                      auto_mode: bool = False,
                      depends_on: Optional[List[pulumi.Resource]] = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS cluster

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for cluster
        subnet_ids: Private subnet IDs for the control plane ENIs
        security_group_ids: Security group IDs attached to the control plane
        endpoint_config: endpoint_private_access / endpoint_public_access /
            public_access_cidrs, see security_groups.endpoint_access_args
        enable_logging: Ship all control plane log types to CloudWatch
        auto_mode: Tag the cluster for delegated Auto Mode compute
        depends_on: Resources the cluster must wait for
        tags: Additional tags

    Returns:
        Dict with cluster resource and outputs
    """
    tags = tags or {}
    cluster_tags = {
        **tags,
        "Name": f"{name}-cluster",
        "Module": "eks"
    }
    if auto_mode:
        cluster_tags["eks:compute-type"] = "auto"

    cluster = aws.eks.Cluster(
        f"{name}-cluster",
        name=name,
        version=version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=subnet_ids,
            security_group_ids=security_group_ids,
            **endpoint_config
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True
        ),
        enabled_cluster_log_types=CONTROL_PLANE_LOG_TYPES if enable_logging else [],
        tags=cluster_tags,
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "cluster": cluster,
        "cluster_id": cluster.id,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_version": cluster.version,
        "cluster_certificate_authority_data": cluster.certificate_authority.data
    }


def create_node_group(name: str, cluster_name: pulumi.Output[str], role_arn: pulumi.Output[str],
                     subnet_ids: List[pulumi.Output[str]], spec: WorkerPoolSpec,
                     depends_on: Optional[List[pulumi.Resource]] = None,
                     tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed node group

    Args:
        name: Node group name prefix
        cluster_name: EKS cluster name
        role_arn: IAM role ARN for node group
        subnet_ids: List of subnet IDs
        spec: Validated worker pool sizing and shape
        depends_on: Resources the node group must wait for
        tags: Additional tags

    Returns:
        Dict with node group resource and outputs
    """
    tags = tags or {}

    node_group = aws.eks.NodeGroup(
        f"{name}-node-group",
        cluster_name=cluster_name,
        node_group_name=f"{name}-nodes",
        node_role_arn=role_arn,
        subnet_ids=subnet_ids,
        ami_type=spec.ami_type,
        capacity_type=spec.capacity_type,
        instance_types=spec.instance_types,
        disk_size=spec.disk_size,
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=spec.desired_size,
            max_size=spec.max_size,
            min_size=spec.min_size
        ),
        update_config=aws.eks.NodeGroupUpdateConfigArgs(
            max_unavailable_percentage=25
        ),
        force_update_version=False,
        labels=spec.labels,
        taints=[aws.eks.NodeGroupTaintArgs(**taint) for taint in spec.taints],
        tags={
            **tags,
            "Name": f"{name}-node-group",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "node_group": node_group,
        "node_group_arn": node_group.arn,
        "node_group_status": node_group.status
    }


def add_managed_node_group(cluster_name: str, pool_name: str, cluster,
                           subnet_ids: List[pulumi.Output[str]], spec: WorkerPoolSpec,
                           cluster_security_group_id: pulumi.Output[str],
                           security_group_id: Optional[pulumi.Output[str]] = None,
                           tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Add another managed node group with its own three-policy node role

    When ``security_group_id`` is given, that group is opened to all traffic
    from the cluster security group.

    Returns:
        Dict with node group, role and optional rule
    """
    tags = tags or {}
    prefix = f"{cluster_name}-{pool_name}"

    role_result = create_node_group_role(prefix, tags)
    node_group_result = create_node_group(
        name=prefix,
        cluster_name=cluster.name,
        role_arn=role_result["role_arn"],
        subnet_ids=subnet_ids,
        spec=spec,
        depends_on=[cluster],
        tags=tags
    )

    rule = None
    if security_group_id is not None:
        rule = aws.ec2.SecurityGroupRule(
            f"{prefix}-cluster-ingress",
            type="ingress",
            protocol="-1",
            from_port=0,
            to_port=0,
            description=f"Allow cluster to communicate with {pool_name} nodes",
            source_security_group_id=cluster_security_group_id,
            security_group_id=security_group_id
        )

    return {
        **node_group_result,
        "role_arn": role_result["role_arn"],
        "_role": role_result["role"],
        "_rule": rule
    }


def create_fargate_profile(name: str, cluster_name: pulumi.Output[str], role_arn: pulumi.Output[str],
                           subnet_ids: List[pulumi.Output[str]],
                           namespaces: Optional[List[str]] = None,
                           tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create a Fargate profile so pods in the selected namespaces run serverless

    Returns:
        Dict with the profile resource
    """
    tags = tags or {}
    namespaces = namespaces or DEFAULT_FARGATE_NAMESPACES

    profile = aws.eks.FargateProfile(
        f"{name}-fargate-profile",
        cluster_name=cluster_name,
        fargate_profile_name="default-fargate-profile",
        pod_execution_role_arn=role_arn,
        subnet_ids=subnet_ids,
        selectors=[aws.eks.FargateProfileSelectorArgs(namespace=ns) for ns in namespaces],
        tags={
            **tags,
            "Name": f"{name}-fargate-profile",
            "Module": "eks"
        }
    )

    return {
        "fargate_profile": profile,
        "fargate_profile_arn": profile.arn
    }


def create_eks_addons(name: str, cluster_name: pulumi.Output[str],
                     enable_vpc_cni: bool = True,
                     enable_coredns: bool = True,
                     enable_kube_proxy: bool = True,
                     enable_pod_identity_agent: bool = True,
                     compute=None,
                     coredns_compute_type: Optional[str] = None,
                     tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS add-ons

    Args:
        name: Cluster name
        cluster_name: EKS cluster name
        enable_vpc_cni: Enable VPC CNI addon
        enable_coredns: Enable CoreDNS addon
        enable_kube_proxy: Enable kube-proxy addon
        enable_pod_identity_agent: Enable EKS Pod Identity Agent addon
        compute: Node group or Fargate profile CoreDNS must wait for
        coredns_compute_type: Set to "Fargate" when CoreDNS has no EC2 nodes to run on
        tags: Additional tags

    Returns:
        Dict with addon resources
    """
    tags = tags or {}
    addons = {}

    wanted = [
        ("vpc_cni", "vpc-cni", enable_vpc_cni),
        ("coredns", "coredns", enable_coredns),
        ("kube_proxy", "kube-proxy", enable_kube_proxy),
        ("pod_identity_agent", "eks-pod-identity-agent", enable_pod_identity_agent),
    ]

    for key, addon_name, enabled in wanted:
        if not enabled:
            continue

        opts = pulumi.ResourceOptions()
        extra_args = {}
        if key == "coredns":
            if compute is not None:
                opts = pulumi.ResourceOptions(depends_on=[compute])
            if coredns_compute_type:
                extra_args["configuration_values"] = json.dumps({"computeType": coredns_compute_type})

        addons[key] = aws.eks.Addon(
            f"{name}-{addon_name}-addon",
            cluster_name=cluster_name,
            addon_name=addon_name,
            resolve_conflicts_on_create="OVERWRITE",
            resolve_conflicts_on_update="OVERWRITE",
            tags={
                **tags,
                "Name": f"{name}-{addon_name}-addon",
                "Module": "eks"
            },
            opts=opts,
            **extra_args
        )

    return {"addons": addons}


def create_eks_resources(cluster_name: str, cluster_version: str,
                        cluster_role_arn: pulumi.Output[str],
                        subnet_ids: List[pulumi.Output[str]],
                        cluster_security_group_id: pulumi.Output[str],
                        endpoint_config: Dict[str, Any],
                        strategy: ComputeStrategy,
                        node_group_role_arn: Optional[pulumi.Output[str]] = None,
                        fargate_role_arn: Optional[pulumi.Output[str]] = None,
                        auto_mode_node_role_arn: Optional[pulumi.Output[str]] = None,
                        fargate_namespaces: Optional[List[str]] = None,
                        worker_pool: Optional[WorkerPoolSpec] = None,
                        enable_logging: bool = True,
                        cloudwatch_log_group_retention_in_days: int = 30,
                        tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create complete EKS infrastructure

    Args:
        cluster_name: EKS cluster name
        cluster_version: Kubernetes version
        cluster_role_arn: IAM role ARN for cluster
        subnet_ids: Private subnet IDs
        cluster_security_group_id: Cluster security group ID
        endpoint_config: API endpoint exposure arguments
        strategy: Compute strategy; exactly one is provisioned
        node_group_role_arn: Node role ARN, required for MANAGED_NODE_GROUP
        fargate_role_arn: Pod execution role ARN, required for FARGATE
        auto_mode_node_role_arn: Node role ARN handed to Auto Mode, required for AUTO_MODE
        fargate_namespaces: Namespaces scheduled on Fargate besides default and kube-system
        worker_pool: Worker pool spec, required for MANAGED_NODE_GROUP
        enable_logging: Enable control plane logging
        cloudwatch_log_group_retention_in_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with all EKS resources and outputs
    """
    tags = tags or {}

    if strategy is ComputeStrategy.MANAGED_NODE_GROUP and (worker_pool is None or node_group_role_arn is None):
        raise ValueError("A managed node group needs a worker_pool and a node_group_role_arn")
    if strategy is ComputeStrategy.FARGATE and fargate_role_arn is None:
        raise ValueError("A Fargate profile needs a fargate_role_arn")
    if strategy is ComputeStrategy.AUTO_MODE and auto_mode_node_role_arn is None:
        raise ValueError("Auto Mode needs an auto_mode_node_role_arn")

    pulumi.log.info(f"Provisioning {cluster_name} with compute strategy {strategy.value}")

    log_group_result = create_cloudwatch_log_group(
        cluster_name,
        cloudwatch_log_group_retention_in_days,
        tags
    )

    cluster_result = create_eks_cluster(
        name=cluster_name,
        version=cluster_version,
        role_arn=cluster_role_arn,
        subnet_ids=subnet_ids,
        security_group_ids=[cluster_security_group_id],
        endpoint_config=endpoint_config,
        enable_logging=enable_logging,
        auto_mode=strategy is ComputeStrategy.AUTO_MODE,
        depends_on=[log_group_result["log_group"]],
        tags=tags
    )
    cluster = cluster_result["cluster"]

    node_group_result = {}
    fargate_result = {}
    auto_mode_command = None
    compute = None

    if strategy is ComputeStrategy.MANAGED_NODE_GROUP:
        node_group_result = create_node_group(
            name=cluster_name,
            cluster_name=cluster.name,
            role_arn=node_group_role_arn,
            subnet_ids=subnet_ids,
            spec=worker_pool,
            depends_on=[cluster],
            tags=tags
        )
        compute = node_group_result["node_group"]
    elif strategy is ComputeStrategy.FARGATE:
        fargate_result = create_fargate_profile(
            name=cluster_name,
            cluster_name=cluster.name,
            role_arn=fargate_role_arn,
            subnet_ids=subnet_ids,
            namespaces=list(dict.fromkeys(DEFAULT_FARGATE_NAMESPACES + list(fargate_namespaces or []))),
            tags=tags
        )
        compute = fargate_result["fargate_profile"]
    else:
        auto_mode_command = pulumi.Output.from_input(auto_mode_node_role_arn).apply(
            lambda role_arn: auto_mode_activation_command(cluster_name, role_arn)
        )
        pulumi.log.warn("No node group created; enable Auto Mode after deployment with the auto_mode_command output")

    # Auto Mode ships its own networking and DNS components once activated
    addons_result = {"addons": {}}
    if strategy is not ComputeStrategy.AUTO_MODE:
        addons_result = create_eks_addons(
            name=cluster_name,
            cluster_name=cluster.name,
            compute=compute,
            coredns_compute_type="Fargate" if strategy is ComputeStrategy.FARGATE else None,
            tags=tags
        )

    return {
        "cluster_name": cluster_name,
        "cluster_id": cluster_result["cluster_id"],
        "cluster_arn": cluster_result["cluster_arn"],
        "cluster_endpoint": cluster_result["cluster_endpoint"],
        "cluster_version_output": cluster_result["cluster_version"],
        "cluster_certificate_authority_data": cluster_result["cluster_certificate_authority_data"],
        "compute_strategy": strategy,
        "node_group_arn": node_group_result.get("node_group_arn"),
        "fargate_profile_arn": fargate_result.get("fargate_profile_arn"),
        "auto_mode_command": auto_mode_command,
        # Keep references to resources for dependencies
        "_log_group": log_group_result["log_group"],
        "_cluster": cluster,
        "_node_group": node_group_result.get("node_group"),
        "_fargate_profile": fargate_result.get("fargate_profile"),
        "_compute": compute,
        "_addons": addons_result["addons"]
    }
