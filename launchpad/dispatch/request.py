"""Deployment request assembly."""
from typing import Any, Dict, Mapping

from ..errors import MissingRequiredField
from .models import DeploymentRequest


def check_required(resource_group: str, deployment_name: str, location: str) -> None:
    """Raise ``MissingRequiredField`` naming every empty target field."""
    required = {
        "resourceGroup": resource_group,
        "deploymentName": deployment_name,
        "location": location,
    }
    missing = [name for name, value in required.items() if not (value or "").strip()]
    if missing:
        raise MissingRequiredField(missing)


def build_request(resource_group: str, deployment_name: str, location: str,
                  final_parameters: Mapping[str, Any], template_body: Dict[str, Any]) -> DeploymentRequest:
    """Assemble a deployment request.

    Parameter values are kept as-is; each backend wraps them in its own format.

    Raises:
        MissingRequiredField: If resource group, deployment name or location is empty.
    """
    check_required(resource_group, deployment_name, location)
    return DeploymentRequest(
        target_location=location.strip(),
        resource_group_name=resource_group.strip(),
        deployment_name=deployment_name.strip(),
        final_parameters=dict(final_parameters),
        template_body=template_body,
    )
