"""
VPC Module for EKS
Creates VPC, public/private subnets, NAT gateways and route tables
"""

from .functions import (
    create_vpc_resources,
    lookup_existing_network,
    plan_subnet_cidrs,
    validate_non_overlapping,
)

__all__ = [
    "create_vpc_resources",
    "lookup_existing_network",
    "plan_subnet_cidrs",
    "validate_non_overlapping",
]
