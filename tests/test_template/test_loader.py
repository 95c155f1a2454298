"""Tests for the template source loader."""
import json
from unittest.mock import MagicMock

import pytest
import requests

from launchpad.errors import MalformedSource, SourceUnavailable
from launchpad.template.loader import TemplateSourceLoader, is_remote
from launchpad.template.schema import ParameterType


def _response(text, status=200):
    response = MagicMock()
    response.text = text
    response.status_code = status
    if status >= 400:
        error_response = MagicMock(status_code=status, reason="Not Found")
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=error_response)
    return response


def test_load_local_files(write_json, vm_template, vm_parameters):
    """Test loading a template and parameters file from disk."""
    template_path = write_json("azuredeploy.json", vm_template)
    params_path = write_json("azuredeploy.parameters.json", vm_parameters)

    sources = TemplateSourceLoader().load(template_path, params_path)

    assert [p.name for p in sources.schema] == list(vm_template["parameters"])
    assert sources.schema[3].type == ParameterType.SECURE_STRING
    assert sources.values.values == {"vmName": "web-01", "vmSize": "Standard_D2s_v3"}
    assert sources.template.body == vm_template


def test_load_without_parameters_file(write_json, vm_template):
    """A missing parameters location yields an empty values document."""
    sources = TemplateSourceLoader().load(write_json("t.json", vm_template))
    assert sources.values.values == {}


def test_default_value_presence_is_tracked(write_json):
    template = {"parameters": {
        "a": {"type": "string", "defaultValue": None},
        "b": {"type": "string"},
    }}
    schema = TemplateSourceLoader().load(write_json("t.json", template)).schema
    assert schema[0].has_default
    assert not schema[1].has_default


def test_type_names_are_case_insensitive(write_json):
    template = {"parameters": {"secret": {"type": "securestring"}, "count": {"type": "Int"}}}
    schema = TemplateSourceLoader().load(write_json("t.json", template)).schema
    assert schema[0].type == ParameterType.SECURE_STRING
    assert schema[1].type == ParameterType.INT


def test_missing_file():
    with pytest.raises(SourceUnavailable):
        TemplateSourceLoader().load("nonexistent.json")


def test_missing_parameters_file_fails_whole_load(write_json, vm_template):
    with pytest.raises(SourceUnavailable):
        TemplateSourceLoader().load(write_json("t.json", vm_template), "nonexistent.parameters.json")


@pytest.mark.parametrize("content, reason", [
    ("{not json", "not valid JSON"),
    ("[1, 2]", "must be an object"),
    ('{"resources": []}', "parameters"),
    ('{"parameters": {"x": "string"}}', "'x'"),
    ('{"parameters": {"x": {"type": "float"}}}', "type"),
])
def test_malformed_template(write_json, content, reason):
    with pytest.raises(MalformedSource) as exc_info:
        TemplateSourceLoader().load(write_json("t.json", content))
    assert reason in exc_info.value.details


def test_malformed_parameters_file(write_json, vm_template):
    with pytest.raises(MalformedSource):
        TemplateSourceLoader().load(write_json("t.json", vm_template), write_json("p.json", {"values": {}}))


def test_key_vault_references_are_not_values(write_json, vm_template):
    params = {"parameters": {
        "adminPasswordOrKey": {"reference": {"keyVault": {"id": "/subscriptions/x"}, "secretName": "pw"}},
        "vmName": {"value": "web-01"},
    }}
    sources = TemplateSourceLoader().load(write_json("t.json", vm_template), write_json("p.json", params))
    assert sources.values.values == {"vmName": "web-01"}


def test_load_remote_documents(vm_template):
    session = MagicMock()
    session.get.side_effect = lambda url, timeout: _response(
        json.dumps(vm_template) if url.endswith("azuredeploy.json") else '{"parameters": {"vmName": {"value": "x"}}}'
    )

    loader = TemplateSourceLoader(timeout=5, session=session)
    sources = loader.load("https://raw.example.com/azuredeploy.json",
                          "https://raw.example.com/azuredeploy.parameters.json")

    assert sources.values.values == {"vmName": "x"}
    assert session.get.call_count == 2
    for call in session.get.call_args_list:
        assert call.kwargs["timeout"] == 5


def test_remote_http_error():
    session = MagicMock()
    session.get.return_value = _response("", status=404)
    with pytest.raises(SourceUnavailable) as exc_info:
        TemplateSourceLoader(session=session).load("https://raw.example.com/missing.json")
    assert "404" in exc_info.value.details


def test_remote_connection_error():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError("connection refused")
    with pytest.raises(SourceUnavailable):
        TemplateSourceLoader(session=session).load("https://raw.example.com/azuredeploy.json")


def test_cache_and_fresh_bypass(vm_template):
    session = MagicMock()
    session.get.return_value = _response(json.dumps(vm_template))
    loader = TemplateSourceLoader(cache_ttl=300, session=session)
    url = "https://raw.example.com/azuredeploy.json"

    loader.load(url)
    loader.load(url)
    assert session.get.call_count == 1

    loader.load(url, fresh=True)
    assert session.get.call_count == 2


def test_no_cache_by_default(vm_template):
    session = MagicMock()
    session.get.return_value = _response(json.dumps(vm_template))
    loader = TemplateSourceLoader(session=session)

    loader.load("https://raw.example.com/azuredeploy.json")
    loader.load("https://raw.example.com/azuredeploy.json")
    assert session.get.call_count == 2


def test_is_remote():
    assert is_remote("https://raw.githubusercontent.com/org/repo/main/azuredeploy.json")
    assert is_remote("HTTP://example.com/t.json")
    assert not is_remote("templates/azuredeploy.json")


def test_invalid_utf8_is_malformed(tmp_path):
    path = tmp_path / "azuredeploy.json"
    path.write_bytes(b"\xff\xfe{\"parameters\": {}}")
    with pytest.raises(MalformedSource) as exc_info:
        TemplateSourceLoader().load(str(path))
    assert "UTF-8" in exc_info.value.details


def test_fresh_loads_are_not_cached(vm_template):
    session = MagicMock()
    session.get.return_value = _response(json.dumps(vm_template))
    loader = TemplateSourceLoader(cache_ttl=300, session=session)
    url = "https://raw.example.com/other.json"

    loader.load(url, fresh=True)
    loader.load(url)
    assert session.get.call_count == 2
    assert url in loader._cache
