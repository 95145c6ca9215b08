"""
EKS Module
Creates the EKS cluster and its compute: managed node group, Fargate or Auto Mode
"""

from .functions import (
    ComputeStrategy,
    WorkerPoolSpec,
    add_managed_node_group,
    auto_mode_activation_command,
    create_eks_resources,
    resolve_compute_strategy,
)

__all__ = [
    "ComputeStrategy",
    "WorkerPoolSpec",
    "add_managed_node_group",
    "auto_mode_activation_command",
    "create_eks_resources",
    "resolve_compute_strategy",
]
