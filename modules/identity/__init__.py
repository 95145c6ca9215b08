"""
Identity Module
Access entries for operators and IAM roles for Kubernetes service accounts
"""

from .functions import (
    WorkloadIdentity,
    build_irsa_trust_policy,
    create_identity_resources,
    create_service_account,
    create_service_account_role,
    create_workload_identities,
    plan_workload_identities,
    role_principal_arn,
)
from .policies import (
    LOAD_BALANCER_CONTROLLER_STATEMENTS,
    SHARED_POLICIES,
    bucket_access_statements,
    shared_policy_statements,
)

__all__ = [
    "LOAD_BALANCER_CONTROLLER_STATEMENTS",
    "SHARED_POLICIES",
    "WorkloadIdentity",
    "bucket_access_statements",
    "build_irsa_trust_policy",
    "create_identity_resources",
    "create_service_account",
    "create_service_account_role",
    "create_workload_identities",
    "plan_workload_identities",
    "role_principal_arn",
    "shared_policy_statements",
]
