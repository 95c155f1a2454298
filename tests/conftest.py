"""Shared fixtures for template and parameters documents."""
import json

import pytest


@pytest.fixture
def vm_template():
    """A trimmed-down VM template with the parameter shapes we care about."""
    return {
        "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
        "contentVersion": "1.0.0.0",
        "parameters": {
            "vmName": {
                "type": "string",
                "metadata": {"description": "Name of the virtual machine"},
            },
            "vmSize": {
                "type": "string",
                "defaultValue": "Standard_B2s",
                "allowedValues": ["Standard_B1s", "Standard_B2s", "Standard_D2s_v3"],
                "metadata": {"description": "Size of the virtual machine"},
            },
            "authenticationType": {
                "type": "string",
                "defaultValue": "sshPublicKey",
                "allowedValues": ["sshPublicKey", "password"],
            },
            "adminPasswordOrKey": {
                "type": "secureString",
                "metadata": {"description": "SSH key or password"},
            },
            "sshPublicKey": {
                "type": "string",
                "defaultValue": "",
            },
            "dataDiskCount": {
                "type": "int",
                "defaultValue": 1,
                "allowedValues": [0, 1, 2],
            },
        },
        "resources": [],
    }


@pytest.fixture
def vm_parameters():
    return {
        "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#",
        "contentVersion": "1.0.0.0",
        "parameters": {
            "vmName": {"value": "web-01"},
            "vmSize": {"value": "Standard_D2s_v3"},
        },
    }


@pytest.fixture
def write_json(tmp_path):
    """Write a document under tmp_path and return its path as a string."""
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return str(path)
    return _write
