"""
Identity Module Functions
Cluster access entries for human roles and IRSA bindings for workloads
"""

import dataclasses
import json
import re

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s
from typing import Any, Dict, List, Optional

from modules.identity.policies import shared_policy_statements


CLUSTER_ADMIN_POLICY_ARN = "arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy"
OIDC_CLIENT_ID = "sts.amazonaws.com"
OIDC_THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"
ROLE_ARN_ANNOTATION = "eks.amazonaws.com/role-arn"
DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def role_principal_arn(account_id: str, role_name: str) -> str:
    """Role ARN without its IAM path, the form EKS access entries accept"""
    return f"arn:aws:iam::{account_id}:role/{role_name}"


def build_irsa_trust_policy(oidc_provider_arn: str, oidc_issuer_url: str,
                            namespace: str, service_account: str) -> str:
    """
    Trust policy letting exactly one Kubernetes service account assume a role

    Args:
        oidc_provider_arn: ARN of the cluster's IAM OIDC provider
        oidc_issuer_url: Cluster OIDC issuer, with or without scheme
        namespace: Service account namespace
        service_account: Service account name

    Returns:
        JSON policy document
    """
    issuer = oidc_issuer_url.replace("https://", "", 1)
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Federated": oidc_provider_arn},
            "Action": "sts:AssumeRoleWithWebIdentity",
            "Condition": {
                "StringEquals": {
                    f"{issuer}:sub": f"system:serviceaccount:{namespace}:{service_account}",
                    f"{issuer}:aud": OIDC_CLIENT_ID
                }
            }
        }]
    })


def create_admin_access_entries(cluster_name: str, cluster: aws.eks.Cluster, account_id: str,
                                role_names: List[str], tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Grant cluster admin to existing IAM roles through EKS access entries

    Args:
        cluster_name: Cluster name used for resource naming
        cluster: EKS cluster
        account_id: Account owning the roles
        role_names: IAM role names to grant admin
        tags: Additional tags

    Returns:
        Dict with access entries and policy associations keyed by role name
    """
    tags = tags or {}
    entries = {}
    associations = {}

    for role_name in role_names:
        principal_arn = role_principal_arn(account_id, role_name)

        entry = aws.eks.AccessEntry(
            f"{cluster_name}-{role_name}-access-entry",
            cluster_name=cluster.name,
            principal_arn=principal_arn,
            type="STANDARD",
            tags={
                **tags,
                "Module": "identity"
            }
        )
        entries[role_name] = entry

        associations[role_name] = aws.eks.AccessPolicyAssociation(
            f"{cluster_name}-{role_name}-cluster-admin",
            cluster_name=cluster.name,
            principal_arn=principal_arn,
            policy_arn=CLUSTER_ADMIN_POLICY_ARN,
            access_scope=aws.eks.AccessPolicyAssociationAccessScopeArgs(
                type="cluster"
            ),
            opts=pulumi.ResourceOptions(depends_on=[entry])
        )
        pulumi.log.info(f"Granting cluster admin to role {role_name}")

    return {
        "access_entries": entries,
        "policy_associations": associations
    }


def create_oidc_provider(cluster_name: str, cluster: aws.eks.Cluster,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Register the cluster's OIDC issuer with IAM

    Returns:
        Dict with the provider resource, its ARN and the issuer URL
    """
    tags = tags or {}

    issuer_url = cluster.identities.apply(lambda identities: identities[0].oidcs[0].issuer)

    provider = aws.iam.OpenIdConnectProvider(
        f"{cluster_name}-oidc-provider",
        url=issuer_url,
        client_id_lists=[OIDC_CLIENT_ID],
        thumbprint_lists=[OIDC_THUMBPRINT],
        tags={
            **tags,
            "Name": f"{cluster_name}-oidc-provider",
            "Module": "identity"
        }
    )

    return {
        "oidc_provider": provider,
        "oidc_provider_arn": provider.arn,
        "oidc_issuer_url": issuer_url
    }


def create_service_account_role(name: str, oidc_provider_arn: pulumi.Output[str],
                                oidc_issuer_url: pulumi.Output[str],
                                namespace: str, service_account: str,
                                statements: List[Dict[str, Any]],
                                tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create an IAM role assumable only by one Kubernetes service account

    Args:
        name: Role name
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_url: Cluster OIDC issuer URL
        namespace: Service account namespace
        service_account: Service account name
        statements: Inline policy statements granted to the role
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    trust_policy = pulumi.Output.all(oidc_provider_arn, oidc_issuer_url).apply(
        lambda args: build_irsa_trust_policy(args[0], args[1], namespace, service_account)
    )

    role = aws.iam.Role(
        f"{name}-irsa-role",
        name=f"{name}-irsa-role",
        assume_role_policy=trust_policy,
        tags={
            **tags,
            "Name": f"{name}-irsa-role",
            "Module": "identity"
        }
    )

    role_policy = None
    if statements:
        role_policy = aws.iam.RolePolicy(
            f"{name}-irsa-policy",
            role=role.id,
            policy=json.dumps({
                "Version": "2012-10-17",
                "Statement": statements
            })
        )

    return {
        "role": role,
        "role_policy": role_policy,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_service_account(name: str, namespace: Any, service_account: str,
                           role_arn: pulumi.Output[str], provider: k8s.Provider,
                           depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, any]:
    """
    Declare a Kubernetes service account annotated with its IAM role

    Returns:
        Dict with the service account resource
    """
    sa = k8s.core.v1.ServiceAccount(
        f"{name}-service-account",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=service_account,
            namespace=namespace,
            annotations={ROLE_ARN_ANNOTATION: role_arn},
            labels={"managed-by": "pulumi"}
        ),
        opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
    )

    return {
        "service_account": sa,
        "service_account_name": sa.metadata.name
    }


def create_identity_resources(cluster_name: str, cluster: aws.eks.Cluster,
                              account_id: str = "",
                              admin_role_names: Optional[List[str]] = None,
                              tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create cluster access entries and the OIDC provider used by IRSA

    Args:
        cluster_name: EKS cluster name
        cluster: EKS cluster resource
        account_id: Account owning the admin roles; looked up when empty
        admin_role_names: Existing IAM roles granted cluster admin
        tags: Additional tags

    Returns:
        Dict with identity resources and outputs
    """
    tags = tags or {}
    admin_role_names = [n for n in (admin_role_names or []) if n]

    access_result = {"access_entries": {}, "policy_associations": {}}
    if admin_role_names:
        if not account_id:
            account_id = aws.get_caller_identity().account_id
        access_result = create_admin_access_entries(cluster_name, cluster, account_id, admin_role_names, tags)

    oidc_result = create_oidc_provider(cluster_name, cluster, tags)

    return {
        "oidc_provider_arn": oidc_result["oidc_provider_arn"],
        "oidc_issuer_url": oidc_result["oidc_issuer_url"],
        "admin_role_names": admin_role_names,
        # Keep references to resources for dependencies
        "_oidc_provider": oidc_result["oidc_provider"],
        "_access_entries": access_result["access_entries"],
        "_policy_associations": access_result["policy_associations"]
    }


@dataclasses.dataclass
class WorkloadIdentity:
    """A service account whose pods get the named shared policies through IRSA"""
    name: str
    namespace: str
    policies: List[str]
    service_account: str = ""
    create_namespace: bool = False

    def __post_init__(self):
        self.service_account = self.service_account or self.name
        for label in (self.name, self.namespace, self.service_account):
            if not DNS_LABEL.match(label or ""):
                raise ValueError(f"Workload identity {self.name!r}: {label!r} is not a valid Kubernetes name")
        if not self.policies:
            raise ValueError(f"Workload identity {self.name!r} grants no policies")
        # Fails early on unknown policy names
        shared_policy_statements(self.policies)

    @property
    def statements(self) -> List[Dict[str, Any]]:
        return shared_policy_statements(self.policies)

    @classmethod
    def from_config(cls, entry: Dict[str, Any]) -> "WorkloadIdentity":
        return cls(
            name=entry.get("name", ""),
            namespace=entry.get("namespace", ""),
            policies=list(entry.get("policies") or []),
            service_account=entry.get("service_account", ""),
            create_namespace=bool(entry.get("create_namespace", False)),
        )


def plan_workload_identities(entries: List[Dict[str, Any]]) -> List[WorkloadIdentity]:
    """
    Validate workload service account settings before any resource is declared

    Raises:
        ValueError: an entry is invalid or two entries bind the same service account
    """
    workloads = [WorkloadIdentity.from_config(entry) for entry in entries]
    names = set()
    bindings = set()
    for workload in workloads:
        binding = (workload.namespace, workload.service_account)
        if workload.name in names or binding in bindings:
            raise ValueError(f"Workload identity {workload.name!r} is declared twice")
        names.add(workload.name)
        bindings.add(binding)
    return workloads


def create_workload_identities(cluster_name: str, provider: k8s.Provider,
                               oidc_provider_arn: pulumi.Output[str],
                               oidc_issuer_url: pulumi.Output[str],
                               workloads: List[WorkloadIdentity],
                               depends_on: Optional[List[pulumi.Resource]] = None,
                               tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create an IRSA role and annotated service account for each workload

    Args:
        cluster_name: EKS cluster name used for resource naming
        provider: Kubernetes provider for the cluster
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_url: Cluster OIDC issuer URL
        workloads: Validated workload identities
        depends_on: Resources the service accounts must wait for
        tags: Additional tags

    Returns:
        Dict with role ARNs keyed by workload name
    """
    tags = tags or {}
    roles = {}
    service_accounts = {}
    namespaces = {}

    for workload in workloads:
        prefix = f"{cluster_name}-{workload.name}"
        pulumi.log.info(f"Binding {workload.namespace}/{workload.service_account} to {', '.join(workload.policies)}")

        role_result = create_service_account_role(
            prefix,
            oidc_provider_arn,
            oidc_issuer_url,
            workload.namespace,
            workload.service_account,
            workload.statements,
            tags
        )
        roles[workload.name] = role_result

        sa_dependencies = list(depends_on or [])
        if workload.create_namespace and workload.namespace not in namespaces:
            namespaces[workload.namespace] = k8s.core.v1.Namespace(
                f"{cluster_name}-{workload.namespace}-namespace",
                metadata=k8s.meta.v1.ObjectMetaArgs(
                    name=workload.namespace,
                    labels={"managed-by": "pulumi"}
                ),
                opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
            )
        if workload.namespace in namespaces:
            sa_dependencies.append(namespaces[workload.namespace])

        service_accounts[workload.name] = create_service_account(
            prefix,
            workload.namespace,
            workload.service_account,
            role_result["role_arn"],
            provider,
            depends_on=sa_dependencies
        )

    return {
        "role_arns": {name: result["role_arn"] for name, result in roles.items()},
        # Keep references to resources for dependencies
        "_roles": {name: result["role"] for name, result in roles.items()},
        "_service_accounts": {name: result["service_account"] for name, result in service_accounts.items()},
        "_namespaces": namespaces
    }
