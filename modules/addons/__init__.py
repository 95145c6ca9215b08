"""
Addons Module
Kubernetes provider and the AWS Load Balancer Controller
"""

from .functions import (
    build_kubeconfig,
    create_addons_resources,
    create_kubernetes_provider,
    load_balancer_controller_values,
)

__all__ = [
    "build_kubeconfig",
    "create_addons_resources",
    "create_kubernetes_provider",
    "load_balancer_controller_values",
]
