"""
Outputs Module
Operator-facing commands and status strings
"""

from .functions import build_status_outputs, cost_command, devtron_commands, kubeconfig_command

__all__ = [
    "build_status_outputs",
    "cost_command",
    "devtron_commands",
    "kubeconfig_command",
]
