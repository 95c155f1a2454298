"""Deployment backends: direct Azure Resource Manager calls or GitHub workflow dispatch."""
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import requests
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ServiceRequestError,
    ServiceRequestTimeoutError,
    ServiceResponseError,
    ServiceResponseTimeoutError,
)
from azure.identity import ClientSecretCredential
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import Deployment, DeploymentMode, DeploymentProperties, ResourceGroup
from rich.console import Console

from ..config import AzureSettings, BackendKind, GitHubSettings, Settings
from ..errors import BackendUnavailable, LaunchpadError, Unauthorized
from .models import DeploymentRequest, DispatchResult, Failure, Success

console = Console(stderr=True)

AZURE_REMEDIATION = (
    "The service principal was rejected. Verify AZURE_TENANT_ID, AZURE_CLIENT_ID and "
    "AZURE_CLIENT_SECRET, and check whether the client secret has expired."
)
GITHUB_REMEDIATION = (
    "The PERSONAL_ACCESS_TOKEN may be expired, revoked, or lack the necessary permissions. "
    "Please verify the token has \"repo\" and \"workflow\" scopes and regenerate if needed."
)


class DispatchBackend(ABC):
    """Base class for deployment backends."""

    kind: BackendKind

    def dispatch(self, request: DeploymentRequest) -> DispatchResult:
        """Submit a deployment, folding backend errors into a ``Failure``.

        Args:
            request: The resolved deployment request.

        Returns:
            DispatchResult: ``Success`` or ``Failure``; nothing is raised for backend errors.
        """
        try:
            return self.submit(request)
        except LaunchpadError as e:
            return Failure.from_error(e)

    @abstractmethod
    def submit(self, request: DeploymentRequest) -> Success:
        """Submit a deployment.

        Raises:
            Unauthorized: If the backend rejects the configured credential.
            BackendUnavailable: For any other unsuccessful outcome.
        """
        pass


class DirectBackend(DispatchBackend):
    """Deploys the template straight through Azure Resource Manager."""

    kind = BackendKind.DIRECT

    def __init__(self, azure: AzureSettings, request_timeout: float = 30.0, deployment_timeout: float = 600.0,
                 client_factory: Optional[Callable[[], Any]] = None, debug: bool = False):
        """Initialize the backend.

        Args:
            azure: Service principal and subscription.
            request_timeout: Seconds to wait on each Resource Manager call.
            deployment_timeout: Seconds to wait for the deployment to finish.
            client_factory: Builds a Resource Manager client; defaults to one
                authenticated with the service principal.
            debug: If True, print verbose debug information.
        """
        self.azure = azure
        self.request_timeout = request_timeout
        self.deployment_timeout = deployment_timeout
        self.client_factory = client_factory or self._build_client
        self.debug = debug

    def _build_client(self) -> ResourceManagementClient:
        # Built for every dispatch; the secret is never kept on the backend.
        credential = ClientSecretCredential(
            self.azure.tenant_id,
            self.azure.client_id,
            self.azure.client_secret.get_secret_value(),
        )
        return ResourceManagementClient(
            credential,
            self.azure.subscription_id,
            connection_timeout=self.request_timeout,
            read_timeout=self.request_timeout,
        )

    @staticmethod
    def wrap_parameters(parameters: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Wrap values in the ``{"value": ...}`` shape Resource Manager expects."""
        return {name: {"value": value} for name, value in parameters.items()}

    def ensure_resource_group(self, client: Any, name: str, location: str) -> Any:
        """Create the resource group, or update it in place if it already exists."""
        if self.debug:
            console.print(f"Debug: Ensuring resource group {name} in {location}")
        return client.resource_groups.create_or_update(name, ResourceGroup(location=location))

    def submit(self, request: DeploymentRequest) -> Success:
        try:
            client = self.client_factory()
            self.ensure_resource_group(client, request.resource_group_name, request.target_location)
            deployment = Deployment(
                properties=DeploymentProperties(
                    mode=DeploymentMode.INCREMENTAL,
                    template=request.template_body,
                    parameters=self.wrap_parameters(request.final_parameters),
                )
            )
            if self.debug:
                console.print(f"Debug: Submitting deployment {request.deployment_name} "
                              f"to {request.resource_group_name}")
            poller = client.deployments.begin_create_or_update(
                request.resource_group_name,
                request.deployment_name,
                deployment,
            )
            result = poller.result(timeout=self.deployment_timeout)
        except ClientAuthenticationError as e:
            raise Unauthorized("Unauthorized: Azure rejected the service principal credentials",
                               AZURE_REMEDIATION, status=e.status_code, raw_body=_azure_body(e))
        except HttpResponseError as e:
            if e.status_code == 401:
                raise Unauthorized("Unauthorized: Azure rejected the service principal credentials",
                                   AZURE_REMEDIATION, status=401, raw_body=_azure_body(e))
            raise BackendUnavailable(f"Azure Resource Manager returned an error: {e.message}",
                                     status=e.status_code, raw_body=_azure_body(e))
        except (ServiceRequestTimeoutError, ServiceResponseTimeoutError) as e:
            raise BackendUnavailable("Timed out waiting for Azure Resource Manager",
                                     raw_body=str(e), timed_out=True)
        except (ServiceRequestError, ServiceResponseError) as e:
            raise BackendUnavailable("Failed to reach Azure Resource Manager", raw_body=str(e))

        payload = result.as_dict() if hasattr(result, "as_dict") else result
        if not poller.done():
            return Success("deployment accepted", backend_response=payload)
        return Success("deployment completed", backend_response=payload)

    @classmethod
    def from_settings(cls, settings: Settings, debug: bool = False) -> "DirectBackend":
        return cls(settings.azure, settings.request_timeout, settings.deployment_timeout, debug=debug)


def _azure_body(error: HttpResponseError) -> str:
    if error.response is None:
        return str(error)
    try:
        return error.response.text()
    except Exception:
        return str(error)


class IndirectBackend(DispatchBackend):
    """Triggers a GitHub Actions workflow that performs the deployment.

    The trigger is fire-and-forget: the workflow run's outcome is not observed.
    """

    kind = BackendKind.INDIRECT

    def __init__(self, github: GitHubSettings, timeout: float = 30.0,
                 session: Optional[requests.Session] = None, debug: bool = False):
        self.github = github
        self.timeout = timeout
        self.session = session or requests.Session()
        self.debug = debug

    @property
    def dispatch_url(self) -> str:
        return (f"{self.github.api_url.rstrip('/')}/repos/{self.github.owner}/{self.github.repo}"
                f"/actions/workflows/{self.github.workflow_file}/dispatches")

    @staticmethod
    def render_inputs(parameters: Dict[str, Any]) -> Dict[str, str]:
        """Workflow inputs are strings; render other values the way workflows read them."""
        inputs = {}
        for name, value in parameters.items():
            if isinstance(value, bool):
                inputs[name] = "true" if value else "false"
            elif isinstance(value, (dict, list)):
                inputs[name] = json.dumps(value)
            elif value is None:
                inputs[name] = ""
            else:
                inputs[name] = str(value)
        return inputs

    def submit(self, request: DeploymentRequest) -> Success:
        body = {"ref": self.github.ref, "inputs": self.render_inputs(request.final_parameters)}
        headers = {
            "Authorization": f"Bearer {self.github.token.get_secret_value()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.debug:
            console.print(f"Debug: POST {self.dispatch_url} ref={self.github.ref} "
                          f"inputs={sorted(body['inputs'])}")
        try:
            response = self.session.post(self.dispatch_url, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise BackendUnavailable("Timed out calling the GitHub API", raw_body=str(e), timed_out=True)
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable("Failed to call GitHub API", raw_body=str(e))

        if 200 <= response.status_code < 300:
            return Success("dispatched")
        if response.status_code == 401:
            raise Unauthorized("Unauthorized: GitHub token is invalid or expired",
                               GITHUB_REMEDIATION, status=401, raw_body=response.text)
        raise BackendUnavailable(f"GitHub API returned {response.status_code}",
                                 status=response.status_code, raw_body=response.text)

    @classmethod
    def from_settings(cls, settings: Settings, debug: bool = False) -> "IndirectBackend":
        return cls(settings.github, settings.request_timeout, debug=debug)


BACKENDS = {
    BackendKind.DIRECT: DirectBackend,
    BackendKind.INDIRECT: IndirectBackend,
}


def create_backend(settings: Settings, debug: bool = False) -> DispatchBackend:
    """Build the backend selected by configuration.

    Raises:
        ConfigurationMissing: If the selected backend lacks required settings.
    """
    settings.require_backend()
    return BACKENDS[settings.backend].from_settings(settings, debug=debug)
