"""
Pulumi modules for the EKS + Devtron platform
Simple function-based approach, one package per concern
"""

from .vpc import create_vpc_resources
from .security_groups import create_security_group_resources
from .iam import create_iam_resources
from .eks import create_eks_resources
from .identity import create_identity_resources, create_workload_identities
from .addons import create_addons_resources
from .devtron import create_devtron_resources

__all__ = [
    "create_vpc_resources",
    "create_security_group_resources",
    "create_iam_resources",
    "create_eks_resources",
    "create_identity_resources",
    "create_workload_identities",
    "create_addons_resources",
    "create_devtron_resources"
]
