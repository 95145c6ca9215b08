"""
EKS + Devtron Platform
Network, security groups, IAM, cluster compute and the Devtron installation
"""
import pulumi
from config import get_config
from modules.vpc import create_vpc_resources, lookup_existing_network
from modules.security_groups import create_security_group_resources
from modules.iam import create_iam_resources
from modules.eks import ComputeStrategy, WorkerPoolSpec, create_eks_resources, resolve_compute_strategy
from modules.identity import create_identity_resources, create_workload_identities, plan_workload_identities
from modules.addons import create_addons_resources
from modules.devtron import DEVTRON_CI_NAMESPACE, DEVTRON_NAMESPACE, DevtronSettings, create_devtron_resources
from modules.outputs import build_status_outputs

# Configuration
config = get_config()
tags = config.common_tags
cluster_name = config.cluster_name

pulumi.log.info(f"Deploying {config.stack_label} ({cluster_name}) in {config.aws_region}")

strategy = resolve_compute_strategy(config.enable_auto_mode, config.enable_fargate)
worker_pool = None
if strategy is ComputeStrategy.MANAGED_NODE_GROUP:
    worker_pool = WorkerPoolSpec(
        instance_types=config.node_instance_types,
        min_size=config.node_min_size,
        max_size=config.node_max_size,
        desired_size=config.node_desired_size,
        disk_size=config.node_disk_size
    )

devtron_settings = DevtronSettings.from_config(config) if config.enable_devtron else None
workloads = plan_workload_identities(config.workload_service_accounts)

# Pods must match a Fargate selector to schedule at all
fargate_namespaces = [DEVTRON_NAMESPACE, DEVTRON_CI_NAMESPACE] if devtron_settings is not None else []
fargate_namespaces += [workload.namespace for workload in workloads]

# 1. Network
if config.existing_vpc_id:
    network = lookup_existing_network(config.existing_vpc_id)
else:
    network = create_vpc_resources(
        cluster_name,
        config.vpc_cidr,
        max_azs=config.max_azs,
        nat_gateway_count=config.nat_gateways,
        cidr_mask=config.subnet_cidr_mask,
        tags=tags
    )

# 2. Security groups
security_groups = create_security_group_resources(
    cluster_name,
    network["vpc_id"],
    network["vpc_cidr_block"],
    security_group_config=config.security_group_config,
    existing_security_group_ids=config.existing_security_group_ids,
    allow_cluster_to_nodes=strategy is ComputeStrategy.MANAGED_NODE_GROUP,
    tags=tags
)

# 3. IAM
iam = create_iam_resources(
    cluster_name,
    existing_cluster_role_name=config.existing_cluster_role_name,
    create_node_role=strategy is ComputeStrategy.MANAGED_NODE_GROUP,
    create_fargate=strategy is ComputeStrategy.FARGATE,
    auto_mode=strategy is ComputeStrategy.AUTO_MODE,
    tags=tags
)

# 4. Cluster, compute and managed add-ons
eks = create_eks_resources(
    cluster_name=cluster_name,
    cluster_version=config.cluster_version,
    cluster_role_arn=iam["cluster_role_arn"],
    subnet_ids=network["private_subnet_ids"],
    cluster_security_group_id=security_groups["cluster_security_group_id"],
    endpoint_config=security_groups["endpoint_config"],
    strategy=strategy,
    node_group_role_arn=iam["node_group_role_arn"],
    fargate_role_arn=iam["fargate_role_arn"],
    auto_mode_node_role_arn=iam["auto_mode_node_role_arn"],
    fargate_namespaces=fargate_namespaces,
    worker_pool=worker_pool,
    enable_logging=config.enable_logging,
    cloudwatch_log_group_retention_in_days=config.cloudwatch_log_group_retention_in_days,
    tags=tags
)

# 5. Access entries and OIDC provider
identity = create_identity_resources(
    cluster_name,
    eks["_cluster"],
    account_id=config.aws_account,
    admin_role_names=config.admin_role_names,
    tags=tags
)

# Workloads need compute and cluster networking before charts can schedule
workload_dependencies = [r for r in [eks["_compute"], *eks["_addons"].values()] if r is not None]
wait_for_charts = strategy is not ComputeStrategy.AUTO_MODE

# 6. Kubernetes provider and load balancer controller
addons = create_addons_resources(
    cluster_name,
    eks["cluster_endpoint"],
    eks["cluster_certificate_authority_data"],
    identity["oidc_provider_arn"],
    identity["oidc_issuer_url"],
    region=config.aws_region,
    vpc_id=network["vpc_id"],
    wait=wait_for_charts,
    depends_on=workload_dependencies,
    tags=tags
)

# 7. Workload service accounts
workload_identities = None
if workloads:
    workload_identities = create_workload_identities(
        cluster_name,
        addons["k8s_provider"],
        identity["oidc_provider_arn"],
        identity["oidc_issuer_url"],
        workloads,
        depends_on=workload_dependencies,
        tags=tags
    )

# 8. Devtron
devtron = None
if devtron_settings is not None:
    devtron_dependencies = list(workload_dependencies)
    if addons["_load_balancer_controller"] is not None:
        devtron_dependencies.append(addons["_load_balancer_controller"])

    devtron = create_devtron_resources(
        cluster_name,
        addons["k8s_provider"],
        devtron_settings,
        oidc_provider_arn=identity["oidc_provider_arn"],
        oidc_issuer_url=identity["oidc_issuer_url"],
        depends_on=devtron_dependencies,
        tags=tags
    )

# Exports
pulumi.export("cluster_endpoint", eks["cluster_endpoint"])
pulumi.export("cluster_arn", eks["cluster_arn"])
pulumi.export("vpc_id", network["vpc_id"])
pulumi.export("private_subnet_ids", network["private_subnet_ids"])
pulumi.export("cluster_security_group_id", security_groups["cluster_security_group_id"])
pulumi.export("node_group_security_group_id", security_groups["node_group_security_group_id"])
pulumi.export("alb_security_group_id", security_groups["alb_security_group_id"])
pulumi.export("endpoint_access", security_groups["endpoint_access"].value)
pulumi.export("compute_strategy", strategy.value)
pulumi.export("oidc_provider_arn", identity["oidc_provider_arn"])
pulumi.export("load_balancer_controller", addons["load_balancer_controller_status"])
if workload_identities is not None:
    pulumi.export("workload_role_arns", workload_identities["role_arns"])
if iam["auto_mode_node_role_arn"] is not None:
    pulumi.export("auto_mode_node_role_arn", iam["auto_mode_node_role_arn"])

ci_role_command = None
if devtron is not None and devtron["ci_role_arn"] is not None:
    ci_role_command = pulumi.Output.concat(
        f"kubectl annotate serviceaccount ci-runner -n {DEVTRON_CI_NAMESPACE} --overwrite eks.amazonaws.com/role-arn=",
        devtron["ci_role_arn"]
    )
    pulumi.export("devtron_bucket_name", devtron["bucket_name"])

status = build_status_outputs(
    cluster_name=cluster_name,
    region=config.aws_region,
    project_name=config.project_name,
    enable_devtron=devtron is not None,
    devtron_namespace=devtron["namespace"] if devtron else "",
    devtron_access_type=devtron["access_method"].value if devtron else "",
    devtron_access_url=devtron["access_url"] if devtron else "",
    devtron_wait=config.devtron_wait,
    auto_mode_command=eks["auto_mode_command"],
    ci_role_arn_command=ci_role_command
)
for output_name, value in status.items():
    pulumi.export(output_name, value)

if devtron is not None:
    pulumi.export("devtron_values", devtron["rendered_values"])
