"""
Addons Module Functions
Kubernetes provider and cluster-level add-ons installed through Helm
"""

import json

import pulumi
import pulumi_kubernetes as k8s
from typing import Any, Dict, List, Optional

from modules.identity.functions import create_service_account, create_service_account_role
from modules.identity.policies import LOAD_BALANCER_CONTROLLER_STATEMENTS


LOAD_BALANCER_CONTROLLER_REPO = "https://aws.github.io/eks-charts"
LOAD_BALANCER_CONTROLLER_CHART = "aws-load-balancer-controller"
LOAD_BALANCER_CONTROLLER_SA = "aws-load-balancer-controller"


def build_kubeconfig(cluster_name: str, endpoint: str, ca_data: str, region: str = "") -> str:
    """Kubeconfig document that authenticates through `aws eks get-token`"""
    token_args = ["eks", "get-token", "--cluster-name", cluster_name]
    if region:
        token_args += ["--region", region]

    return json.dumps({
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {"server": endpoint, "certificate-authority-data": ca_data}
        }],
        "contexts": [{"name": cluster_name, "context": {"cluster": cluster_name, "user": cluster_name}}],
        "current-context": cluster_name,
        "users": [{
            "name": cluster_name,
            "user": {
                "exec": {
                    "apiVersion": "client.authentication.k8s.io/v1beta1",
                    "command": "aws",
                    "args": token_args
                }
            }
        }]
    })


def create_kubernetes_provider(name: str, cluster_endpoint: 'pulumi.Output[str]',
                              cluster_ca_data: 'pulumi.Output[str]',
                              region: str = "",
                              depends_on: Optional[List[pulumi.Resource]] = None) -> k8s.Provider:
    """
    Create Kubernetes provider for EKS cluster

    Args:
        name: Cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        region: Region passed to `aws eks get-token`
        depends_on: Resources that must exist before the provider is used

    Returns:
        Kubernetes provider instance
    """
    kubeconfig = pulumi.Output.all(cluster_endpoint, cluster_ca_data).apply(
        lambda args: build_kubeconfig(name, args[0], args[1], region)
    )

    return k8s.Provider(
        f"{name}-k8s-provider",
        kubeconfig=kubeconfig,
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )


def load_balancer_controller_values(cluster_name: str, region: str = "", vpc_id: Any = None) -> Dict[str, Any]:
    """Helm values binding the controller to a pre-created service account"""
    values = {
        "clusterName": cluster_name,
        "serviceAccount": {
            "create": False,
            "name": LOAD_BALANCER_CONTROLLER_SA
        }
    }
    if region:
        values["region"] = region
    if vpc_id is not None:
        values["vpcId"] = vpc_id
    return values


def deploy_load_balancer_controller(name: str, provider: k8s.Provider,
                                    oidc_provider_arn: pulumi.Output[str],
                                    oidc_issuer_url: pulumi.Output[str],
                                    region: str = "",
                                    vpc_id: Optional[pulumi.Output[str]] = None,
                                    wait: bool = True,
                                    depends_on: Optional[List[pulumi.Resource]] = None,
                                    tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Deploy the AWS Load Balancer Controller with its IRSA role

    Args:
        name: Cluster name
        provider: Kubernetes provider
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_url: Cluster OIDC issuer URL
        region: AWS region
        vpc_id: VPC the controller manages load balancers in
        wait: Wait for the controller pods to become ready
        depends_on: Resources the release must wait for (compute, addons)
        tags: Additional tags

    Returns:
        Dict with controller resources
    """
    role_result = create_service_account_role(
        name=f"{name}-alb-controller",
        oidc_provider_arn=oidc_provider_arn,
        oidc_issuer_url=oidc_issuer_url,
        namespace="kube-system",
        service_account=LOAD_BALANCER_CONTROLLER_SA,
        statements=LOAD_BALANCER_CONTROLLER_STATEMENTS,
        tags=tags
    )

    sa_result = create_service_account(
        name=f"{name}-alb-controller",
        namespace="kube-system",
        service_account=LOAD_BALANCER_CONTROLLER_SA,
        role_arn=role_result["role_arn"],
        provider=provider
    )

    release = k8s.helm.v3.Release(
        f"{name}-aws-load-balancer-controller",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo=LOAD_BALANCER_CONTROLLER_REPO
        ),
        chart=LOAD_BALANCER_CONTROLLER_CHART,
        name="aws-load-balancer-controller",
        namespace="kube-system",
        values=load_balancer_controller_values(name, region, vpc_id),
        skip_await=not wait,
        opts=pulumi.ResourceOptions(
            provider=provider,
            depends_on=[sa_result["service_account"], *(depends_on or [])]
        )
    )

    return {
        "release": release,
        "role_arn": role_result["role_arn"],
        "_role": role_result["role"],
        "_service_account": sa_result["service_account"],
        "status": "Enabled"
    }


def create_addons_resources(cluster_name: str, cluster_endpoint: pulumi.Output[str],
                           cluster_ca_data: pulumi.Output[str],
                           oidc_provider_arn: pulumi.Output[str],
                           oidc_issuer_url: pulumi.Output[str],
                           region: str = "",
                           vpc_id: Optional[pulumi.Output[str]] = None,
                           enable_load_balancer_controller: bool = True,
                           wait: bool = True,
                           depends_on: Optional[List[pulumi.Resource]] = None,
                           tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the Kubernetes provider and cluster add-ons

    Args:
        cluster_name: EKS cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        oidc_provider_arn: Cluster OIDC provider ARN
        oidc_issuer_url: Cluster OIDC issuer URL
        region: AWS region
        vpc_id: Cluster VPC ID
        enable_load_balancer_controller: Install the AWS Load Balancer Controller
        wait: Wait for Helm releases to become ready
        depends_on: Resources add-ons must wait for
        tags: Additional tags

    Returns:
        Dict with all addon resources and outputs
    """
    tags = tags or {}

    k8s_provider = create_kubernetes_provider(
        cluster_name,
        cluster_endpoint,
        cluster_ca_data,
        region=region,
        depends_on=depends_on
    )

    controller_result = {"status": "Disabled"}
    if enable_load_balancer_controller:
        controller_result = deploy_load_balancer_controller(
            name=cluster_name,
            provider=k8s_provider,
            oidc_provider_arn=oidc_provider_arn,
            oidc_issuer_url=oidc_issuer_url,
            region=region,
            vpc_id=vpc_id,
            wait=wait,
            depends_on=depends_on,
            tags=tags
        )

    return {
        "k8s_provider": k8s_provider,
        "load_balancer_controller_status": controller_result["status"],
        "load_balancer_controller_role_arn": controller_result.get("role_arn"),
        # Keep references to resources for dependencies
        "_load_balancer_controller": controller_result.get("release")
    }
