"""
Outputs Module Functions
Human-readable commands and status strings exported from the stack
"""

from typing import Any, Dict, Optional


def kubeconfig_command(cluster_name: str, region: str) -> str:
    return f"aws eks update-kubeconfig --region {region} --name {cluster_name}"


def cost_command(project_name: str, start: str = "$(date -d '-30 days' +%Y-%m-%d)",
                 end: str = "$(date +%Y-%m-%d)") -> str:
    """Cost Explorer query for everything tagged with this project"""
    return (
        "aws ce get-cost-and-usage "
        f"--time-period Start={start},End={end} "
        "--granularity MONTHLY --metrics UnblendedCost "
        f"--filter '{{\"Tags\":{{\"Key\":\"Project\",\"Values\":[\"{project_name}\"]}}}}'"
    )


def devtron_commands(namespace: str) -> Dict[str, str]:
    """kubectl commands for reaching and inspecting a Devtron installation"""
    return {
        "devtron_port_forward_command": f"kubectl port-forward svc/devtron-service -n {namespace} 32000:80",
        "devtron_logs_command": f"kubectl logs -f deployment/devtron -n {namespace}",
        "devtron_status_command": f"kubectl get all -n {namespace}",
        "devtron_rollout_command": f"kubectl rollout status deployment/devtron -n {namespace} --timeout=30m",
        "devtron_verification_commands": f"kubectl get pods -n {namespace} && kubectl get svc -n {namespace}",
        "devtron_load_balancer_command": f"kubectl get svc -n {namespace} | grep devtron",
        "devtron_admin_password_command": (
            f"kubectl -n {namespace} get secret devtron-secret "
            "-o jsonpath='{.data.ADMIN_PASSWORD}' | base64 -d"
        ),
    }


def build_status_outputs(cluster_name: str, region: str, project_name: str,
                         enable_devtron: bool,
                         devtron_namespace: str = "",
                         devtron_access_type: str = "",
                         devtron_access_url: str = "",
                         devtron_wait: bool = False,
                         auto_mode_command: Optional[Any] = None,
                         ci_role_arn_command: Optional[str] = None) -> Dict[str, str]:
    """
    Assemble the plain-string outputs operators use after a deployment

    Args:
        cluster_name: EKS cluster name
        region: AWS region
        project_name: Project tag value used for cost filtering
        enable_devtron: Whether Devtron was installed
        devtron_namespace: Devtron namespace
        devtron_access_type: LoadBalancer or Ingress
        devtron_access_url: Dashboard URL, empty when the LoadBalancer hostname is not known yet
        devtron_wait: Whether the install waited for readiness
        auto_mode_command: Command that activates Auto Mode, when applicable
        ci_role_arn_command: Command that binds the CI service account to its role

    Returns:
        Dict of output name to string value
    """
    outputs = {
        "cluster_name": cluster_name,
        "kubeconfig_command": kubeconfig_command(cluster_name, region),
        "cost_command": cost_command(project_name),
    }

    if auto_mode_command:
        outputs["auto_mode_command"] = auto_mode_command

    if not enable_devtron:
        outputs["devtron_installation_status"] = "Not enabled (set enable_devtron=true to install)"
        return outputs

    outputs.update({
        "devtron_namespace": devtron_namespace,
        "devtron_access_type": devtron_access_type,
        "devtron_installation_status": (
            "Installed (release ready)" if devtron_wait
            else "Install requested (not waiting for readiness, track with the rollout command)"
        ),
    })
    if devtron_access_url:
        outputs["devtron_url"] = devtron_access_url
    outputs.update(devtron_commands(devtron_namespace))

    if ci_role_arn_command:
        outputs["devtron_ci_role_command"] = ci_role_arn_command

    return outputs
