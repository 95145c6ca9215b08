"""
VPC Module Functions
Creates the VPC, public and private subnets, NAT gateways and route tables for EKS
"""

import ipaddress

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any, Tuple


def plan_subnet_cidrs(vpc_cidr: str, az_count: int, cidr_mask: int = 24) -> Tuple[List[str], List[str]]:
    """
    Carve one public and one private subnet per AZ out of the VPC range

    Public subnets take the first ``az_count`` blocks, private subnets the next
    ``az_count`` blocks.

    Returns:
        (public_cidrs, private_cidrs)
    """
    network = ipaddress.ip_network(vpc_cidr)
    if cidr_mask < network.prefixlen:
        raise ValueError(f"Subnet mask /{cidr_mask} is larger than the VPC range {vpc_cidr}")

    blocks = network.subnets(new_prefix=cidr_mask)
    carved = []
    for _ in range(az_count * 2):
        try:
            carved.append(str(next(blocks)))
        except StopIteration:
            raise ValueError(
                f"VPC range {vpc_cidr} cannot hold {az_count * 2} /{cidr_mask} subnets"
            ) from None

    public_cidrs, private_cidrs = carved[:az_count], carved[az_count:]
    validate_non_overlapping(public_cidrs, private_cidrs)
    return public_cidrs, private_cidrs


def validate_non_overlapping(public_cidrs: List[str], private_cidrs: List[str]) -> None:
    """Raise ValueError if any public range overlaps any private range"""
    for public in public_cidrs:
        for private in private_cidrs:
            if ipaddress.ip_network(public).overlaps(ipaddress.ip_network(private)):
                raise ValueError(f"Public subnet {public} overlaps private subnet {private}")


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: VPC name
        cidr: VPC CIDR block
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": f"{name}-vpc",
            f"kubernetes.io/cluster/{name}": "shared",
            "Module": "vpc"
        }
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block
    }


def create_internet_gateway(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create Internet Gateway for VPC

    Args:
        name: Resource name prefix
        vpc_id: VPC ID to attach to
        tags: Additional tags

    Returns:
        Dict with igw resource and outputs
    """
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "vpc"
        }
    )

    return {
        "igw": igw,
        "igw_id": igw.id
    }


def create_subnets(name: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                   availability_zones: List[str], public: bool,
                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per CIDR, spread across the given availability zones

    Public subnets map public IPs and carry the internet-facing ELB role tag,
    private subnets carry the internal ELB role tag.

    Returns:
        Dict with subnet resources and outputs
    """
    tags = tags or {}
    kind = "public" if public else "private"
    role_tag = "kubernetes.io/role/elb" if public else "kubernetes.io/role/internal-elb"

    subnets = []
    for i, cidr in enumerate(subnet_cidrs):
        subnet = aws.ec2.Subnet(
            f"{name}-{kind}-subnet-{i+1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=availability_zones[i],
            map_public_ip_on_launch=public,
            tags={
                **tags,
                "Name": f"{name}-{kind}-subnet-{i+1}",
                "Type": kind,
                f"kubernetes.io/cluster/{name}": "shared",
                role_tag: "1",
                "Module": "vpc"
            }
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
        "availability_zones": availability_zones
    }


def create_public_route_table(name: str, vpc_id: pulumi.Output[str], igw_id: pulumi.Output[str],
                             subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create route table for public subnets

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        igw_id: Internet Gateway ID
        subnet_ids: List of subnet IDs to associate
        tags: Additional tags

    Returns:
        Dict with route table resources and outputs
    """
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-public-rt",
            "Module": "vpc"
        }
    )

    route = aws.ec2.Route(
        f"{name}-public-route",
        route_table_id=route_table.id,
        destination_cidr_block="0.0.0.0/0",
        gateway_id=igw_id
    )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        association = aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        associations.append(association)

    return {
        "route_table": route_table,
        "route": route,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_nat_gateways(name: str, public_subnet_ids: List[pulumi.Output[str]], count: int,
                        igw=None, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create NAT gateways (with elastic IPs) in the first ``count`` public subnets

    Returns:
        Dict with NAT gateway resources and ids
    """
    tags = tags or {}
    if count < 1:
        raise ValueError(f"Private subnets need at least one NAT gateway, got {count}")
    count = min(count, len(public_subnet_ids))
    opts = pulumi.ResourceOptions(depends_on=[igw]) if igw else None

    nat_gateways = []
    for i in range(count):
        eip = aws.ec2.Eip(
            f"{name}-nat-eip-{i+1}",
            domain="vpc",
            tags={
                **tags,
                "Name": f"{name}-nat-eip-{i+1}",
                "Module": "vpc"
            },
            opts=opts
        )
        nat_gateway = aws.ec2.NatGateway(
            f"{name}-nat-{i+1}",
            allocation_id=eip.id,
            subnet_id=public_subnet_ids[i],
            tags={
                **tags,
                "Name": f"{name}-nat-{i+1}",
                "Module": "vpc"
            },
            opts=opts
        )
        nat_gateways.append(nat_gateway)

    return {
        "nat_gateways": nat_gateways,
        "nat_gateway_ids": [nat.id for nat in nat_gateways]
    }


def create_private_route_tables(name: str, vpc_id: pulumi.Output[str],
                                nat_gateway_ids: List[pulumi.Output[str]],
                                subnet_ids: List[pulumi.Output[str]],
                                tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one route table per private subnet, egressing through NAT ``i % len(nat)``

    Returns:
        Dict with route table resources
    """
    tags = tags or {}

    route_tables = []
    for i, subnet_id in enumerate(subnet_ids):
        route_table = aws.ec2.RouteTable(
            f"{name}-private-rt-{i+1}",
            vpc_id=vpc_id,
            tags={
                **tags,
                "Name": f"{name}-private-rt-{i+1}",
                "Module": "vpc"
            }
        )
        aws.ec2.Route(
            f"{name}-private-route-{i+1}",
            route_table_id=route_table.id,
            destination_cidr_block="0.0.0.0/0",
            nat_gateway_id=nat_gateway_ids[i % len(nat_gateway_ids)]
        )
        aws.ec2.RouteTableAssociation(
            f"{name}-private-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        route_tables.append(route_table)

    return {
        "route_tables": route_tables,
        "route_table_ids": [rt.id for rt in route_tables]
    }


def lookup_existing_network(vpc_id: str) -> Dict[str, Any]:
    """
    Reference an existing VPC instead of creating one

    Subnets are discovered by their Kubernetes ELB role tags.

    Args:
        vpc_id: ID of the existing VPC

    Returns:
        Dict with the same public keys as create_vpc_resources
    """
    vpc = aws.ec2.get_vpc(id=vpc_id)

    private = aws.ec2.get_subnets(filters=[
        aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[vpc_id]),
        aws.ec2.GetSubnetsFilterArgs(name="tag:kubernetes.io/role/internal-elb", values=["1"]),
    ])
    public = aws.ec2.get_subnets(filters=[
        aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[vpc_id]),
        aws.ec2.GetSubnetsFilterArgs(name="tag:kubernetes.io/role/elb", values=["1"]),
    ])

    if not private.ids:
        raise ValueError(f"VPC {vpc_id} has no subnets tagged kubernetes.io/role/internal-elb")

    pulumi.log.info(f"Using existing VPC {vpc_id} with {len(private.ids)} private subnets")

    return {
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block,
        "public_subnet_ids": list(public.ids),
        "private_subnet_ids": list(private.ids),
        "availability_zones": [],
    }


def create_vpc_resources(cluster_name: str, vpc_cidr: str, max_azs: int = 3,
                        nat_gateway_count: int = 2, cidr_mask: int = 24,
                        tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete VPC infrastructure for EKS

    Args:
        cluster_name: EKS cluster name
        vpc_cidr: VPC CIDR block
        max_azs: Maximum number of availability zones to span
        nat_gateway_count: Number of NAT gateways shared by the private subnets
        cidr_mask: Prefix length of every subnet
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC resources and outputs
    """
    tags = tags or {}
    if nat_gateway_count < 1:
        raise ValueError(f"nat_gateway_count must be at least 1, got {nat_gateway_count}")

    azs = aws.get_availability_zones(state="available")
    zone_names = list(azs.names)[:max_azs]

    public_cidrs, private_cidrs = plan_subnet_cidrs(vpc_cidr, len(zone_names), cidr_mask)

    vpc_result = create_vpc(cluster_name, vpc_cidr, tags)

    igw_result = create_internet_gateway(cluster_name, vpc_result["vpc_id"], tags)

    public_result = create_subnets(
        cluster_name,
        vpc_result["vpc_id"],
        public_cidrs,
        zone_names,
        public=True,
        tags=tags
    )

    private_result = create_subnets(
        cluster_name,
        vpc_result["vpc_id"],
        private_cidrs,
        zone_names,
        public=False,
        tags=tags
    )

    route_table_result = create_public_route_table(
        cluster_name,
        vpc_result["vpc_id"],
        igw_result["igw_id"],
        public_result["subnet_ids"],
        tags
    )

    nat_result = create_nat_gateways(
        cluster_name,
        public_result["subnet_ids"],
        nat_gateway_count,
        igw=igw_result["igw"],
        tags=tags
    )

    private_rt_result = create_private_route_tables(
        cluster_name,
        vpc_result["vpc_id"],
        nat_result["nat_gateway_ids"],
        private_result["subnet_ids"],
        tags
    )

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": public_result["subnet_ids"],
        "private_subnet_ids": private_result["subnet_ids"],
        "availability_zones": zone_names,
        # Keep references to all resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": igw_result["igw"],
        "_public_subnets": public_result["subnets"],
        "_private_subnets": private_result["subnets"],
        "_route_table": route_table_result["route_table"],
        "_nat_gateways": nat_result["nat_gateways"],
        "_private_route_tables": private_rt_result["route_tables"]
    }
