"""
Configuration management for the Devtron EKS deployment
Environment variables first, Pulumi stack config second, defaults last
"""

import os
import sys

import pulumi
from typing import Dict, Any, List, Optional


REQUIRED_VARIABLES = ("PROJECT_NAME", "ENV_NAME")


def capitalize_first_letter(value: str) -> str:
    return value[:1].upper() + value[1:]


def load_environment(config: Optional[pulumi.Config] = None) -> Dict[str, Any]:
    """
    Read the deployment parameters from the environment

    Args:
        config: Stack config used as a fallback for unset variables

    Returns:
        Dict with "env" (account, region) and "params" (names, is_prod, roles)
    """
    config = config or pulumi.Config()

    project_name = os.environ.get("PROJECT_NAME") or config.get("project_name")
    env_name = os.environ.get("ENV_NAME") or config.get("env_name")

    if not project_name or not env_name:
        message = "Error: The environment variable (ENV_NAME or PROJECT_NAME) is not defined"
        pulumi.log.error(message)
        sys.exit(message)

    env = {
        "account": os.environ.get("AWS_ACCOUNT") or config.get("aws_account"),
        "region": os.environ.get("AWS_REGION") or pulumi.Config("aws").get("region"),
    }

    params = {
        "env_name": env_name,
        "project_name": project_name,
        "is_prod": env_name == "prod",
        "sso_role_name": os.environ.get("SSO_ROLE_NAME") or config.get("sso_role_name"),
        "access_role_name": os.environ.get("ACCESS_ROLE_NAME") or config.get("access_role_name"),
    }

    return {"env": env, "params": params}


class Config:
    """Centralized configuration management for the EKS + Devtron deployment"""

    def __init__(self):
        self.config = pulumi.Config()

        environment = load_environment(self.config)
        self.env = environment["env"]
        self.params = environment["params"]

        self.project_name = self.params["project_name"]
        self.env_name = self.params["env_name"]
        self.is_prod = self.params["is_prod"]
        self.sso_role_name = self.params["sso_role_name"]
        self.access_role_name = self.params["access_role_name"]
        self.aws_account = self.env["account"]
        self.aws_region = self.env["region"] or "us-east-1"

        # Cluster Configuration
        self.cluster_name = f"{self.project_name}-{self.env_name}-cluster"
        self.cluster_version = self.config.get("cluster_version") or "1.31"
        self.enable_logging = self.config.get_bool("enable_logging")
        if self.enable_logging is None:
            self.enable_logging = True
        self.cloudwatch_log_group_retention_in_days = self._get_int("cloudwatch_log_group_retention_in_days", 30)

        # Compute Configuration
        self.enable_fargate = self.config.get_bool("enable_fargate") or False
        self.enable_auto_mode = self.config.get_bool("enable_auto_mode") or False

        # Node Configuration
        self.node_instance_types = self.config.get_object("node_instance_types") or (
            ["t3.xlarge"] if self.is_prod else ["t3.large"]
        )
        base_min, base_max = 2, 5
        scale = 2 if self.is_prod else 1
        self.node_min_size = self._get_int("node_min_size", base_min * scale)
        self.node_max_size = self._get_int("node_max_size", base_max * scale)
        self.node_desired_size = self._get_int("node_desired_size", 4 if self.is_prod else 2)
        self.node_disk_size = self._get_int("node_disk_size", 20)

        # VPC Configuration
        self.existing_vpc_id = self.config.get("existing_vpc_id") or ""
        self.vpc_cidr = self.config.get("vpc_cidr") or "10.0.0.0/16"
        self.max_azs = self._get_int("max_azs", 3)
        self.nat_gateways = self._get_int("nat_gateways", 2)
        self.subnet_cidr_mask = self._get_int("subnet_cidr_mask", 24)

        # Security Group Configuration
        self.allow_inbound_cidrs = self.config.get_object("allow_inbound_cidrs") or []
        self.custom_ingress_rules = self.config.get_object("custom_ingress_rules") or []
        self.restrict_node_access = self.config.get_bool("restrict_node_access") or False
        self.enable_vpc_endpoint_access = self.config.get_bool("enable_vpc_endpoint_access") or False
        self.existing_security_group_ids = self.config.get_object("existing_security_group_ids") or {}

        # Resource Management
        self.existing_cluster_role_name = self.config.get("existing_cluster_role_name") or ""

        # Workload service accounts bound to IAM roles, e.g.
        # [{"name": "uploader", "namespace": "apps", "policies": ["s3", "dynamodb"]}]
        self.workload_service_accounts = self.config.get_object("workload_service_accounts") or []

        # Devtron Configuration
        self.enable_devtron = self.config.get_bool("enable_devtron")
        if self.enable_devtron is None:
            self.enable_devtron = True
        self.devtron_admin_email = self.config.get("devtron_admin_email") or ""
        self.devtron_admin_password = self.config.get_secret("devtron_admin_password")
        self.devtron_enable_ingress = self.config.get_bool("devtron_enable_ingress") or False
        self.devtron_ingress_class = self.config.get("devtron_ingress_class") or "nginx"
        self.devtron_domain = self.config.get("devtron_domain") or "devtron.local"
        self.devtron_use_load_balancer = self.config.get_bool("devtron_use_load_balancer")
        if self.devtron_use_load_balancer is None:
            self.devtron_use_load_balancer = True
        self.devtron_storage_class = self.config.get("devtron_storage_class") or "gp2"
        self.devtron_enable_monitoring = self.config.get_bool("devtron_enable_monitoring")
        if self.devtron_enable_monitoring is None:
            self.devtron_enable_monitoring = True
        self.devtron_storage_backend = self.config.get("devtron_storage_backend") or "minio"
        self.devtron_bucket_name = self.config.get("devtron_bucket_name") or ""
        self.devtron_wait = self.config.get_bool("devtron_wait") or False

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    def _get_int(self, key: str, default: int) -> int:
        """Integer stack setting; an explicit 0 is kept"""
        value = self.config.get_int(key)
        return default if value is None else value

    @property
    def stack_label(self) -> str:
        """Deployment label, e.g. ``ShopProdStack``"""
        return f"{capitalize_first_letter(self.project_name)}{capitalize_first_letter(self.env_name)}Stack"

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": self.project_name,
            "Environment": self.env_name,
            "Component": "EKS",
            "Purpose": "Devtron-Platform",
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def security_group_config(self) -> Dict[str, Any]:
        return {
            "allow_inbound_cidrs": list(self.allow_inbound_cidrs),
            "custom_ingress_rules": list(self.custom_ingress_rules),
            "restrict_node_access": self.restrict_node_access,
            "enable_vpc_endpoint_access": self.enable_vpc_endpoint_access,
        }

    @property
    def admin_role_names(self) -> List[str]:
        """Roles granted cluster admin through access entries"""
        return [name for name in (self.sso_role_name, self.access_role_name) if name]


def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
