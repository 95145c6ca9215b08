"""
Devtron Module
Values assembly and Helm installation of the Devtron platform
"""

from .functions import (
    DEVTRON_CI_NAMESPACE,
    DEVTRON_NAMESPACE,
    AccessMethod,
    DevtronSettings,
    StorageBackend,
    build_devtron_values,
    create_devtron_resources,
    is_placeholder_domain,
    render_values,
    resolve_access_method,
)

__all__ = [
    "DEVTRON_CI_NAMESPACE",
    "DEVTRON_NAMESPACE",
    "AccessMethod",
    "DevtronSettings",
    "StorageBackend",
    "build_devtron_values",
    "create_devtron_resources",
    "is_placeholder_domain",
    "render_values",
    "resolve_access_method",
]
