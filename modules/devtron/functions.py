"""
Devtron Module Functions
Builds the Devtron Helm values and installs the devtron-operator chart
"""

import copy
import dataclasses
import enum
import json

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s
from typing import Any, Dict, List, Optional

from modules.identity.functions import create_service_account_role
from modules.identity.policies import bucket_access_statements


DEVTRON_NAMESPACE = "devtroncd"
DEVTRON_RELEASE = "devtron"
DEVTRON_CHART = "devtron-operator"
DEVTRON_REPO = "https://helm.devtron.ai"
DEVTRON_CI_NAMESPACE = "devtron-ci"
DEVTRON_CI_SERVICE_ACCOUNT = "ci-runner"
REDACTED = "********"

PLACEHOLDER_SUFFIXES = (".local", ".localhost", ".test", ".example", ".invalid")
PLACEHOLDER_DOMAINS = ("example.com", "example.net", "example.org")

SMALL_RESOURCES = {
    "requests": {"memory": "256Mi", "cpu": "250m"},
    "limits": {"memory": "512Mi", "cpu": "500m"}
}

LOAD_BALANCER_ANNOTATIONS = {
    "service.beta.kubernetes.io/aws-load-balancer-type": "external",
    "service.beta.kubernetes.io/aws-load-balancer-nlb-target-type": "ip",
    "service.beta.kubernetes.io/aws-load-balancer-scheme": "internet-facing",
    "service.beta.kubernetes.io/aws-load-balancer-cross-zone-load-balancing-enabled": "true",
    "service.beta.kubernetes.io/aws-load-balancer-healthcheck-healthy-threshold": "2",
    "service.beta.kubernetes.io/aws-load-balancer-healthcheck-unhealthy-threshold": "2",
    "service.beta.kubernetes.io/aws-load-balancer-healthcheck-interval": "10",
    "service.beta.kubernetes.io/aws-load-balancer-healthcheck-timeout": "5",
}

# PostgreSQL and Prometheus run without volumes so teardown leaves no orphaned EBS
DEFAULT_VALUES: Dict[str, Any] = {
    "installer": {
        "release": DEVTRON_RELEASE,
        "modules": ["cicd"]
    },
    "argo-cd": {"enabled": True},
    "components": {
        "dashboard": {"enabled": True},
        "devtron": {"enabled": True},
        "argocd": {"enabled": True}
    },
    "postgresql": {
        "persistence": {"enabled": False},
        "resources": SMALL_RESOURCES
    },
    "prometheus": {
        "persistence": {"enabled": False},
        "resources": SMALL_RESOURCES
    },
    "global": {}
}


class AccessMethod(enum.Enum):
    LOAD_BALANCER = "LoadBalancer"
    INGRESS = "Ingress"


class StorageBackend(enum.Enum):
    MINIO = "minio"
    S3 = "s3"


def resolve_access_method(use_load_balancer: bool = False, enable_ingress: bool = False) -> AccessMethod:
    """Load balancer unless ingress is requested and the load balancer is not forced"""
    if use_load_balancer:
        return AccessMethod.LOAD_BALANCER
    if enable_ingress:
        return AccessMethod.INGRESS
    return AccessMethod.LOAD_BALANCER


def is_placeholder_domain(domain: str) -> bool:
    """True for reserved local or documentation domains no CA will issue for"""
    domain = (domain or "").strip().lower().rstrip(".")
    if not domain:
        return True
    bare_suffixes = tuple(suffix.lstrip(".") for suffix in PLACEHOLDER_SUFFIXES)
    if domain in bare_suffixes or domain.endswith(PLACEHOLDER_SUFFIXES):
        return True
    return any(domain == d or domain.endswith(f".{d}") for d in PLACEHOLDER_DOMAINS)


@dataclasses.dataclass
class DevtronSettings:
    admin_email: str = ""
    admin_password: Any = None
    enable_ingress: bool = False
    ingress_class: str = "nginx"
    domain: str = "devtron.local"
    use_load_balancer: bool = True
    storage_class: str = "gp2"
    enable_monitoring: bool = True
    storage_backend: StorageBackend = StorageBackend.MINIO
    bucket_name: str = ""
    region: str = ""
    wait: bool = False

    def __post_init__(self):
        if not isinstance(self.storage_backend, StorageBackend):
            try:
                self.storage_backend = StorageBackend(str(self.storage_backend).lower())
            except ValueError:
                raise ValueError(
                    f"Unsupported Devtron storage backend {self.storage_backend!r}; "
                    f"expected one of {[b.value for b in StorageBackend]}"
                )

    @classmethod
    def from_config(cls, config) -> "DevtronSettings":
        return cls(
            admin_email=config.devtron_admin_email,
            admin_password=config.devtron_admin_password,
            enable_ingress=config.devtron_enable_ingress,
            ingress_class=config.devtron_ingress_class,
            domain=config.devtron_domain,
            use_load_balancer=config.devtron_use_load_balancer,
            storage_class=config.devtron_storage_class,
            enable_monitoring=config.devtron_enable_monitoring,
            storage_backend=config.devtron_storage_backend,
            bucket_name=config.devtron_bucket_name,
            region=config.aws_region,
            wait=config.devtron_wait,
        )

    @property
    def access_method(self) -> AccessMethod:
        return resolve_access_method(self.use_load_balancer, self.enable_ingress)

    @property
    def ingress_host(self) -> str:
        return f"devtron.{self.domain}"

    @property
    def access_url(self) -> str:
        """Dashboard URL, empty until a LoadBalancer hostname exists"""
        if self.access_method is AccessMethod.INGRESS:
            scheme = "http" if is_placeholder_domain(self.domain) else "https"
            return f"{scheme}://{self.ingress_host}"
        return ""


def _access_values(settings: DevtronSettings) -> Dict[str, Any]:
    if settings.access_method is AccessMethod.LOAD_BALANCER:
        return {
            "service": {
                "type": "LoadBalancer",
                "annotations": dict(LOAD_BALANCER_ANNOTATIONS)
            }
        }

    ingress = {
        "enabled": True,
        "className": settings.ingress_class,
        "hosts": [{
            "host": settings.ingress_host,
            "paths": [{"path": "/", "pathType": "Prefix"}]
        }]
    }
    if not is_placeholder_domain(settings.domain):
        ingress["tls"] = [{
            "secretName": "devtron-tls",
            "hosts": [settings.ingress_host]
        }]
    return {"ingress": ingress}


def _storage_values(settings: DevtronSettings, bucket_name: Any = None) -> Dict[str, Any]:
    if settings.storage_backend is StorageBackend.MINIO:
        return {
            "minio": {
                "enabled": True,
                "persistence": {"enabled": False},
                "resources": copy.deepcopy(SMALL_RESOURCES)
            }
        }

    bucket = bucket_name if bucket_name is not None else settings.bucket_name
    if not bucket:
        raise ValueError("S3 storage backend requires a bucket name")
    return {
        "minio": {"enabled": False},
        "configs": {
            "BLOB_STORAGE_PROVIDER": "S3",
            "DEFAULT_CACHE_BUCKET": bucket,
            "DEFAULT_CACHE_BUCKET_REGION": settings.region,
            "DEFAULT_BUILD_LOGS_BUCKET": bucket,
            "DEFAULT_CD_LOGS_BUCKET_REGION": settings.region
        }
    }


def build_devtron_values(settings: DevtronSettings, bucket_name: Any = None) -> Dict[str, Any]:
    """
    Assemble the devtron-operator values document

    Args:
        settings: Devtron settings
        bucket_name: Bucket to use for the S3 backend, overrides settings.bucket_name

    Returns:
        Values dict for the Helm release
    """
    values = copy.deepcopy(DEFAULT_VALUES)

    if settings.storage_class:
        values["global"]["storageClass"] = settings.storage_class

    values.update(_access_values(settings))
    values.update(_storage_values(settings, bucket_name))

    values["monitoring"] = {
        "enabled": settings.enable_monitoring,
        "prometheus": {"enabled": settings.enable_monitoring},
        "grafana": {"enabled": settings.enable_monitoring}
    }

    if settings.admin_email:
        values["installer"]["adminEmail"] = settings.admin_email
    if settings.admin_password is not None:
        values["installer"]["adminPassword"] = settings.admin_password

    return values


def redact_values(values: Any) -> Any:
    """Copy of a values document with password fields masked"""
    if isinstance(values, dict):
        return {
            key: REDACTED if "password" in key.lower() else redact_values(value)
            for key, value in values.items()
        }
    if isinstance(values, list):
        return [redact_values(item) for item in values]
    return values


def render_values(values: Dict[str, Any]) -> str:
    """JSON rendering of a values document safe to export"""
    return json.dumps(redact_values(values), indent=2, sort_keys=True)


def create_devtron_bucket(name: str, bucket_name: str = "", log_retention_days: int = 90,
                          tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the private, encrypted bucket Devtron uses for build cache and logs

    Returns:
        Dict with bucket resources and outputs
    """
    tags = tags or {}
    bucket_args = {"bucket": bucket_name} if bucket_name else {"bucket_prefix": f"{name}-devtron-"}

    bucket = aws.s3.Bucket(
        f"{name}-devtron-bucket",
        force_destroy=True,
        tags={
            **tags,
            "Name": f"{name}-devtron-blob-storage",
            "Purpose": "Devtron CI cache and logs",
            "Module": "devtron"
        },
        **bucket_args
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-devtron-bucket-encryption",
        bucket=bucket.id,
        rules=[
            aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm="AES256"
                ),
                bucket_key_enabled=True
            )
        ]
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{name}-devtron-bucket-pab",
        bucket=bucket.id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{name}-devtron-bucket-lifecycle",
        bucket=bucket.id,
        rules=[
            aws.s3.BucketLifecycleConfigurationRuleArgs(
                id="expire_ci_artifacts",
                status="Enabled",
                filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(
                    prefix=""
                ),
                expiration=aws.s3.BucketLifecycleConfigurationRuleExpirationArgs(
                    days=log_retention_days
                ),
                abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                    days_after_initiation=1
                )
            )
        ]
    )

    return {
        "bucket": bucket,
        "bucket_id": bucket.id,
        "bucket_name": bucket.bucket,
        "encryption": encryption,
        "public_access_block": public_access_block,
        "lifecycle": lifecycle
    }


def create_devtron_namespace(name: str, provider: k8s.Provider,
                             depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, any]:
    namespace = k8s.core.v1.Namespace(
        f"{name}-devtron-namespace",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=DEVTRON_NAMESPACE,
            labels={
                "name": DEVTRON_NAMESPACE,
                "managed-by": "pulumi"
            }
        ),
        opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
    )

    return {
        "namespace": namespace,
        "namespace_name": namespace.metadata.name
    }


def create_devtron_resources(cluster_name: str, provider: k8s.Provider,
                             settings: DevtronSettings,
                             oidc_provider_arn: Optional[pulumi.Output[str]] = None,
                             oidc_issuer_url: Optional[pulumi.Output[str]] = None,
                             depends_on: Optional[List[pulumi.Resource]] = None,
                             tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Install Devtron on the cluster

    Args:
        cluster_name: EKS cluster name
        provider: Kubernetes provider
        settings: Devtron settings
        oidc_provider_arn: Cluster OIDC provider ARN, needed for the S3 backend
        oidc_issuer_url: Cluster OIDC issuer URL, needed for the S3 backend
        depends_on: Resources the installation must wait for
        tags: Additional tags

    Returns:
        Dict with Devtron resources and outputs
    """
    tags = tags or {}
    access = settings.access_method

    bucket_result = {}
    ci_role_result = {}
    if settings.storage_backend is StorageBackend.S3:
        if oidc_provider_arn is None or oidc_issuer_url is None:
            raise ValueError("S3 storage backend requires the cluster OIDC provider")
        bucket_result = create_devtron_bucket(cluster_name, settings.bucket_name, tags=tags)
        statements = bucket_result["bucket_name"].apply(bucket_access_statements)
        ci_role_result = create_service_account_role(
            name=f"{cluster_name}-devtron-ci",
            oidc_provider_arn=oidc_provider_arn,
            oidc_issuer_url=oidc_issuer_url,
            namespace=DEVTRON_CI_NAMESPACE,
            service_account=DEVTRON_CI_SERVICE_ACCOUNT,
            statements=[],
            tags=tags
        )
        aws.iam.RolePolicy(
            f"{cluster_name}-devtron-ci-bucket-policy",
            role=ci_role_result["role"].id,
            policy=statements.apply(lambda s: json.dumps({"Version": "2012-10-17", "Statement": s}))
        )

    values = build_devtron_values(settings, bucket_result.get("bucket_name"))
    # Bucket name is only known after apply; render with a marker instead
    rendered_bucket = "<devtron-bucket>" if bucket_result else None

    namespace_result = create_devtron_namespace(cluster_name, provider, depends_on)

    if access is AccessMethod.INGRESS and is_placeholder_domain(settings.domain):
        pulumi.log.warn(f"Skipping TLS for {settings.ingress_host}: {settings.domain} is a reserved placeholder domain")

    pulumi.log.info(
        f"Installing Devtron into {DEVTRON_NAMESPACE} with {access.value} access, "
        f"{settings.storage_backend.value} storage, wait={settings.wait}"
    )

    release = k8s.helm.v3.Release(
        f"{cluster_name}-devtron",
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(
            repo=DEVTRON_REPO
        ),
        chart=DEVTRON_CHART,
        name=DEVTRON_RELEASE,
        namespace=namespace_result["namespace_name"],
        values=values,
        skip_await=not settings.wait,
        timeout=1800,
        opts=pulumi.ResourceOptions(
            provider=provider,
            depends_on=[namespace_result["namespace"], *(depends_on or [])]
        )
    )

    return {
        "namespace": DEVTRON_NAMESPACE,
        "release_name": DEVTRON_RELEASE,
        "access_method": access,
        "access_url": settings.access_url,
        "values": values,
        "rendered_values": render_values(build_devtron_values(settings, rendered_bucket)),
        "bucket_name": bucket_result.get("bucket_name"),
        "ci_role_arn": ci_role_result.get("role_arn"),
        # Keep references to resources for dependencies
        "_namespace": namespace_result["namespace"],
        "_release": release,
        "_bucket": bucket_result.get("bucket")
    }
