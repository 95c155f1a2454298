"""Tests for the direct and indirect dispatch backends."""
import json
from unittest.mock import MagicMock, patch

import pytest
import requests
from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, ServiceRequestError
from pydantic import SecretStr

from launchpad.config import AzureSettings, BackendKind, GitHubSettings, Settings
from launchpad.dispatch.backends import DirectBackend, IndirectBackend, create_backend
from launchpad.dispatch.models import DeploymentRequest, Failure, Success
from launchpad.errors import ConfigurationMissing, ErrorKind


@pytest.fixture
def request_():
    return DeploymentRequest(
        target_location="eastus",
        resource_group_name="rg-demo",
        deployment_name="demo-1",
        final_parameters={"vmName": "web-01", "dataDiskCount": 2, "enableBackup": True},
        template_body={"parameters": {}, "resources": []},
    )


@pytest.fixture
def github():
    return GitHubSettings(owner="contoso", repo="infra", token=SecretStr("ghp_secret"),
                          workflow_file="deploy-vm.yml", ref="main")


@pytest.fixture
def azure():
    return AzureSettings(tenant_id="tenant", client_id="client",
                         client_secret=SecretStr("azure-secret"), subscription_id="sub-1")


def _http_response(status, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    return response


class TestIndirectBackend:
    def test_dispatch_url(self, github):
        backend = IndirectBackend(github)
        assert backend.dispatch_url == \
            "https://api.github.com/repos/contoso/infra/actions/workflows/deploy-vm.yml/dispatches"

    def test_no_content_is_success(self, github, request_):
        session = MagicMock()
        session.post.return_value = _http_response(204)
        backend = IndirectBackend(github, timeout=12, session=session)

        result = backend.dispatch(request_)

        assert result == Success("dispatched")
        args, kwargs = session.post.call_args
        assert args[0] == backend.dispatch_url
        assert kwargs["json"] == {
            "ref": "main",
            "inputs": {"vmName": "web-01", "dataDiskCount": "2", "enableBackup": "true"},
        }
        assert kwargs["headers"]["Authorization"] == "Bearer ghp_secret"
        assert kwargs["timeout"] == 12

    def test_unauthorized(self, github, request_):
        session = MagicMock()
        session.post.return_value = _http_response(401, '{"message": "Bad credentials"}')

        result = IndirectBackend(github, session=session).dispatch(request_)

        assert isinstance(result, Failure)
        assert result.kind == ErrorKind.UNAUTHORIZED
        assert result.status_code == 401
        assert result.http_status == 401
        assert "workflow" in result.details
        assert "Bad credentials" in result.raw_body

    def test_other_status_is_backend_unavailable(self, github, request_):
        session = MagicMock()
        session.post.return_value = _http_response(422, '{"message": "Unexpected inputs provided"}')

        result = IndirectBackend(github, session=session).dispatch(request_)

        assert result.kind == ErrorKind.BACKEND_UNAVAILABLE
        assert result.http_status == 422
        assert result.status_code == 502
        assert "Unexpected inputs" in result.raw_body

    def test_timeout(self, github, request_):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        result = IndirectBackend(github, session=session).dispatch(request_)

        assert result.kind == ErrorKind.BACKEND_UNAVAILABLE
        assert result.status_code == 504

    def test_connection_error(self, github, request_):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        result = IndirectBackend(github, session=session).dispatch(request_)

        assert result.status_code == 502
        assert result.http_status is None

    def test_render_inputs(self):
        inputs = IndirectBackend.render_inputs({"a": False, "b": None, "c": [1, 2], "d": {"k": "v"}, "e": 1.5})
        assert inputs == {"a": "false", "b": "", "c": "[1, 2]", "d": json.dumps({"k": "v"}), "e": "1.5"}


class TestDirectBackend:
    def test_deploys_incrementally_with_wrapped_parameters(self, azure, request_):
        client = MagicMock()
        poller = client.deployments.begin_create_or_update.return_value
        poller.done.return_value = True
        poller.result.return_value.as_dict.return_value = {"properties": {"provisioning_state": "Succeeded"}}
        backend = DirectBackend(azure, deployment_timeout=60, client_factory=lambda: client)

        result = backend.dispatch(request_)

        assert result == Success("deployment completed", {"properties": {"provisioning_state": "Succeeded"}})
        rg_args = client.resource_groups.create_or_update.call_args.args
        assert rg_args[0] == "rg-demo"
        assert rg_args[1].location == "eastus"

        rg_name, deployment_name, deployment = client.deployments.begin_create_or_update.call_args.args
        assert (rg_name, deployment_name) == ("rg-demo", "demo-1")
        assert deployment.properties.mode == "Incremental"
        assert deployment.properties.template == request_.template_body
        assert deployment.properties.parameters == {
            "vmName": {"value": "web-01"},
            "dataDiskCount": {"value": 2},
            "enableBackup": {"value": True},
        }
        poller.result.assert_called_once_with(timeout=60)

    def test_unfinished_deployment_is_accepted(self, azure, request_):
        client = MagicMock()
        poller = client.deployments.begin_create_or_update.return_value
        poller.done.return_value = False
        poller.result.return_value = None

        result = DirectBackend(azure, client_factory=lambda: client).dispatch(request_)

        assert result == Success("deployment accepted", None)

    def test_ensure_resource_group_is_idempotent(self, azure):
        groups = {}

        def create_or_update(name, group):
            groups[name] = {"location": group.location}
            return groups[name]

        client = MagicMock()
        client.resource_groups.create_or_update.side_effect = create_or_update
        backend = DirectBackend(azure, client_factory=lambda: client)

        first = backend.ensure_resource_group(client, "rg-demo", "eastus")
        second = backend.ensure_resource_group(client, "rg-demo", "eastus")

        assert first == second
        assert groups == {"rg-demo": {"location": "eastus"}}

    def test_authentication_error(self, azure, request_):
        client = MagicMock()
        client.resource_groups.create_or_update.side_effect = ClientAuthenticationError(
            message="AADSTS7000215: Invalid client secret provided.")

        result = DirectBackend(azure, client_factory=lambda: client).dispatch(request_)

        assert result.kind == ErrorKind.UNAUTHORIZED
        assert result.status_code == 401
        assert "AZURE_CLIENT_SECRET" in result.details
        client.deployments.begin_create_or_update.assert_not_called()

    def test_http_error(self, azure, request_):
        response = MagicMock()
        response.status_code = 400
        response.text.return_value = '{"error": {"code": "InvalidTemplate"}}'
        error = HttpResponseError(message="InvalidTemplate", response=response)
        client = MagicMock()
        client.deployments.begin_create_or_update.side_effect = error

        result = DirectBackend(azure, client_factory=lambda: client).dispatch(request_)

        assert result.kind == ErrorKind.BACKEND_UNAVAILABLE
        assert result.http_status == 400
        assert "InvalidTemplate" in result.raw_body

    def test_transport_error(self, azure, request_):
        client = MagicMock()
        client.resource_groups.create_or_update.side_effect = ServiceRequestError("Name resolution failed")

        result = DirectBackend(azure, client_factory=lambda: client).dispatch(request_)

        assert result.kind == ErrorKind.BACKEND_UNAVAILABLE
        assert result.status_code == 502

    @patch("launchpad.dispatch.backends.ResourceManagementClient")
    @patch("launchpad.dispatch.backends.ClientSecretCredential")
    def test_default_client_uses_service_principal(self, mock_credential, mock_client, azure, request_):
        mock_client.return_value.deployments.begin_create_or_update.return_value.done.return_value = True

        DirectBackend(azure, request_timeout=9).dispatch(request_)

        mock_credential.assert_called_once_with("tenant", "client", "azure-secret")
        mock_client.assert_called_once_with(mock_credential.return_value, "sub-1",
                                            connection_timeout=9, read_timeout=9)


class TestCreateBackend:
    def test_selects_indirect(self, github):
        backend = create_backend(Settings(backend=BackendKind.INDIRECT, github=github))
        assert isinstance(backend, IndirectBackend)

    def test_selects_direct(self, azure):
        backend = create_backend(Settings(backend=BackendKind.DIRECT, azure=azure))
        assert isinstance(backend, DirectBackend)

    def test_missing_credentials_fail_fast(self):
        with pytest.raises(ConfigurationMissing) as exc_info:
            create_backend(Settings(backend=BackendKind.DIRECT))
        assert "AZURE_CLIENT_SECRET" in exc_info.value.missing
