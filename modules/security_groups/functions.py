"""
Security Group Module Functions
Builds the cluster, node and load balancer security groups and the rules between them

Rules are planned first as plain RuleSpec values, then declared as
aws.ec2.SecurityGroupRule resources. Groups supplied by the caller are
referenced as-is and never receive rules from this module.
"""

import dataclasses
import enum

import pulumi
import pulumi_aws as aws
from typing import Any, Dict, Iterable, List, Optional


CLUSTER = "cluster"
NODE = "node"
ALB = "alb"

ROLES = (CLUSTER, NODE, ALB)

ROLE_DESCRIPTIONS = {
    CLUSTER: "EKS Cluster Security Group",
    NODE: "EKS Node Group Security Group",
    ALB: "ALB Security Group for EKS",
}

ANYWHERE = "0.0.0.0/0"
HTTPS_PORT = 443
HTTP_PORT = 80
SSH_PORT = 22
KUBELET_PORTS = (1025, 65535)
NODE_PORTS = (30000, 32767)


class EndpointAccess(enum.Enum):
    PRIVATE = "private"
    PUBLIC_AND_PRIVATE = "public-and-private"


@dataclasses.dataclass(frozen=True)
class RuleSpec:
    """One directional rule owned by ``group``; the peer is a CIDR, a role or a raw group id"""

    key: str
    group: str
    direction: str
    protocol: str
    from_port: int
    to_port: int
    cidr: Any = None
    peer_group: Optional[str] = None
    peer_security_group_id: Optional[str] = None
    description: str = ""

    @property
    def is_self(self) -> bool:
        return self.peer_group == self.group

    def covers_port(self, port: int) -> bool:
        if self.protocol == "-1":
            return True
        return self.from_port <= port <= self.to_port


@dataclasses.dataclass
class SecurityGroupConfig:
    allow_inbound_cidrs: List[str] = dataclasses.field(default_factory=list)
    custom_ingress_rules: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    restrict_node_access: bool = False
    enable_vpc_endpoint_access: bool = False

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> "SecurityGroupConfig":
        values = values or {}
        return cls(
            allow_inbound_cidrs=list(values.get("allow_inbound_cidrs") or []),
            custom_ingress_rules=list(values.get("custom_ingress_rules") or []),
            restrict_node_access=bool(values.get("restrict_node_access", False)),
            enable_vpc_endpoint_access=bool(values.get("enable_vpc_endpoint_access", False)),
        )


def resolve_endpoint_access(config: SecurityGroupConfig) -> EndpointAccess:
    """
    Decide how the Kubernetes API endpoint is exposed

    Priority order: VPC endpoint access, then explicit inbound CIDRs, then the
    private-only default.
    """
    if config.enable_vpc_endpoint_access:
        return EndpointAccess.PRIVATE
    if config.allow_inbound_cidrs:
        return EndpointAccess.PUBLIC_AND_PRIVATE
    return EndpointAccess.PRIVATE


def endpoint_access_args(access: EndpointAccess, allow_inbound_cidrs: Iterable[str]) -> Dict[str, Any]:
    """Translate an EndpointAccess into aws.eks.ClusterVpcConfigArgs keyword arguments"""
    if access is EndpointAccess.PUBLIC_AND_PRIVATE:
        return {
            "endpoint_private_access": True,
            "endpoint_public_access": True,
            "public_access_cidrs": list(allow_inbound_cidrs),
        }
    return {
        "endpoint_private_access": True,
        "endpoint_public_access": False,
    }


def _all_traffic(key: str, group: str, direction: str, description: str, **peer) -> RuleSpec:
    return RuleSpec(key=key, group=group, direction=direction, protocol="-1",
                    from_port=0, to_port=0, description=description, **peer)


def _tcp(key: str, group: str, direction: str, ports, description: str, **peer) -> RuleSpec:
    if isinstance(ports, int):
        ports = (ports, ports)
    return RuleSpec(key=key, group=group, direction=direction, protocol="tcp",
                    from_port=ports[0], to_port=ports[1], description=description, **peer)


def custom_rule_spec(rule: Dict[str, Any], index: int) -> RuleSpec:
    """
    Build a cluster ingress RuleSpec from a user-supplied rule

    Accepted keys: port, to_port, protocol, cidr or source_security_group_id,
    description.
    """
    if "port" not in rule:
        raise ValueError(f"Custom ingress rule {index + 1} has no port")
    if not rule.get("cidr") and not rule.get("source_security_group_id"):
        raise ValueError(f"Custom ingress rule {index + 1} needs a cidr or source_security_group_id")

    from_port = int(rule["port"])
    to_port = int(rule.get("to_port", from_port))
    return RuleSpec(
        key=f"custom-{index + 1}",
        group=CLUSTER,
        direction="ingress",
        protocol=rule.get("protocol", "tcp"),
        from_port=from_port,
        to_port=to_port,
        cidr=rule.get("cidr"),
        peer_security_group_id=rule.get("source_security_group_id"),
        description=rule.get("description") or f"Custom rule {index + 1}",
    )


def plan_security_group_rules(config: SecurityGroupConfig, vpc_cidr: Any,
                              owned_roles: Iterable[str] = ROLES,
                              allow_cluster_to_nodes: bool = False) -> List[RuleSpec]:
    """
    Plan every rule for the security groups this module owns

    Args:
        config: Security group configuration
        vpc_cidr: VPC range, used for VPC endpoint access
        owned_roles: Roles whose groups are created here; rules owned by any
            other role are never planned
        allow_cluster_to_nodes: Open all traffic from the cluster group to the
            nodes (used when a managed node group is attached)

    Returns:
        Ordered list of RuleSpec
    """
    owned = set(owned_roles)
    rules: List[RuleSpec] = []

    if CLUSTER in owned:
        rules.append(_all_traffic("egress-all", CLUSTER, "egress", "Allow all outbound", cidr=ANYWHERE))
        for index, rule in enumerate(config.custom_ingress_rules):
            rules.append(custom_rule_spec(rule, index))
        for index, cidr in enumerate(config.allow_inbound_cidrs):
            rules.append(_tcp(f"https-cidr-{index + 1}", CLUSTER, "ingress", HTTPS_PORT,
                              f"Allow HTTPS from {cidr}", cidr=cidr))
        if config.enable_vpc_endpoint_access:
            rules.append(_tcp("https-vpc", CLUSTER, "ingress", HTTPS_PORT,
                              "Allow VPC endpoint access", cidr=vpc_cidr))

    if NODE in owned:
        rules.append(_all_traffic("egress-all", NODE, "egress", "Allow all outbound", cidr=ANYWHERE))
        rules.append(_all_traffic("self-all", NODE, "ingress",
                                  "Allow nodes to communicate with each other", peer_group=NODE))
        rules.append(_tcp("self-kubelet", NODE, "ingress", KUBELET_PORTS,
                          "Allow kubelet and kube-proxy communication", peer_group=NODE))

    if ALB in owned:
        rules.append(_all_traffic("egress-all", ALB, "egress", "Allow all outbound", cidr=ANYWHERE))
        rules.append(_tcp("http-internet", ALB, "ingress", HTTP_PORT,
                          "Allow HTTP from internet", cidr=ANYWHERE))
        rules.append(_tcp("https-internet", ALB, "ingress", HTTPS_PORT,
                          "Allow HTTPS from internet", cidr=ANYWHERE))
        for index, cidr in enumerate(config.allow_inbound_cidrs):
            rules.append(_tcp(f"nodeport-cidr-{index + 1}", ALB, "ingress", NODE_PORTS,
                              f"Allow NodePort range from {cidr}", cidr=cidr))

    # Cross-group wiring
    if CLUSTER in owned:
        rules.append(_tcp("nodes-https", CLUSTER, "egress", HTTPS_PORT,
                          "Allow cluster to communicate with nodes on HTTPS", peer_group=NODE))
        rules.append(_tcp("nodes-kubelet", CLUSTER, "egress", KUBELET_PORTS,
                          "Allow cluster to communicate with nodes on kubelet ports", peer_group=NODE))
    if NODE in owned:
        rules.append(_tcp("cluster-https", NODE, "egress", HTTPS_PORT,
                          "Allow nodes to communicate with cluster API", peer_group=CLUSTER))
        rules.append(_tcp("alb-nodeport", NODE, "ingress", NODE_PORTS,
                          "Allow ALB to reach NodePort services", peer_group=ALB))
        if config.restrict_node_access:
            rules.append(_tcp("cluster-ssh", NODE, "ingress", SSH_PORT,
                              "Allow SSH only from cluster security group", peer_group=CLUSTER))
        if allow_cluster_to_nodes:
            rules.append(_all_traffic("cluster-all", NODE, "ingress",
                                      "Allow cluster to communicate with nodes", peer_group=CLUSTER))
    if ALB in owned:
        rules.append(_tcp("nodes-nodeport", ALB, "egress", NODE_PORTS,
                          "Allow ALB to communicate with NodePort services", peer_group=NODE))

    return rules


def create_security_group(name: str, role: str, vpc_id: pulumi.Output[str],
                          tags: Dict[str, str] = None) -> aws.ec2.SecurityGroup:
    """
    Create an empty security group for one role

    Args:
        name: Cluster name used as resource prefix
        role: One of cluster, node, alb
        vpc_id: VPC ID
        tags: Additional tags

    Returns:
        The security group resource
    """
    tags = tags or {}

    return aws.ec2.SecurityGroup(
        f"{name}-{role}-sg",
        name_prefix=f"{name}-{role}-",
        description=ROLE_DESCRIPTIONS[role],
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-{role}-sg",
            "Module": "security_groups"
        }
    )


def create_security_group_rule(name: str, spec: RuleSpec,
                               group_ids: Dict[str, Any]) -> aws.ec2.SecurityGroupRule:
    """Declare one planned rule against the resolved group ids"""
    peer: Dict[str, Any] = {}
    if spec.cidr is not None:
        peer["cidr_blocks"] = [spec.cidr]
    elif spec.is_self:
        peer["self"] = True
    elif spec.peer_group:
        peer["source_security_group_id"] = group_ids[spec.peer_group]
    elif spec.peer_security_group_id:
        peer["source_security_group_id"] = spec.peer_security_group_id

    return aws.ec2.SecurityGroupRule(
        f"{name}-{spec.group}-{spec.direction}-{spec.key}",
        type=spec.direction,
        protocol=spec.protocol,
        from_port=spec.from_port,
        to_port=spec.to_port,
        description=spec.description,
        security_group_id=group_ids[spec.group],
        **peer
    )


def create_security_group_resources(cluster_name: str, vpc_id: pulumi.Output[str], vpc_cidr: Any,
                                    security_group_config: Optional[Dict[str, Any]] = None,
                                    existing_security_group_ids: Optional[Dict[str, str]] = None,
                                    allow_cluster_to_nodes: bool = False,
                                    tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the three EKS security groups and wire the rules between them

    Args:
        cluster_name: EKS cluster name
        vpc_id: VPC ID
        vpc_cidr: VPC CIDR block
        security_group_config: allow_inbound_cidrs, custom_ingress_rules,
            restrict_node_access, enable_vpc_endpoint_access
        existing_security_group_ids: Optional pre-existing group id per role
        allow_cluster_to_nodes: Open all traffic from the cluster group to the nodes
        tags: Additional tags

    Returns:
        Dict with group ids, endpoint access decision and the created resources
    """
    tags = tags or {}
    config = SecurityGroupConfig.from_dict(security_group_config)
    existing = existing_security_group_ids or {}

    groups = {}
    group_ids = {}
    for role in ROLES:
        if existing.get(role):
            pulumi.log.info(f"Using existing {role} security group {existing[role]}; no rules will be added to it")
            group_ids[role] = existing[role]
        else:
            groups[role] = create_security_group(cluster_name, role, vpc_id, tags)
            group_ids[role] = groups[role].id

    specs = plan_security_group_rules(config, vpc_cidr, owned_roles=groups.keys(),
                                      allow_cluster_to_nodes=allow_cluster_to_nodes)
    rules = [create_security_group_rule(cluster_name, spec, group_ids) for spec in specs]

    endpoint_access = resolve_endpoint_access(config)
    pulumi.log.info(f"Cluster API endpoint access: {endpoint_access.value}")

    return {
        "cluster_security_group_id": group_ids[CLUSTER],
        "node_group_security_group_id": group_ids[NODE],
        "alb_security_group_id": group_ids[ALB],
        "endpoint_access": endpoint_access,
        "endpoint_config": endpoint_access_args(endpoint_access, config.allow_inbound_cidrs),
        "rule_specs": specs,
        # Keep references to resources for dependencies
        "_groups": groups,
        "_rules": rules
    }
